"""
Context assembly: the per-request bundle handed to the answer pipeline.

The bundle is a plain dict: today's tasks, the last week of expenses, study
goals, long-term memories and the preference summary. Its JSON form is held
under a hard character ceiling; on overflow the bulkiest lists are cut in a
fixed order until it fits or there is nothing left to cut.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.pipeline_config import ContextConfig, MemoryConfig
from ..models.base import utcnow
from .domain import DomainDataSource
from .memory import MemoryStore
from .preferences import UserPreferenceService

logger = logging.getLogger(__name__)


def context_size(bundle: Any) -> int:
    """Serialized length in characters, non-ASCII kept as-is."""
    return len(json.dumps(bundle, ensure_ascii=False, default=str))


class ContextAssembler:
    """Builds and size-limits the context bundle for one request."""

    def __init__(
        self,
        db: AsyncSession,
        config: Optional[ContextConfig] = None,
        memory: Optional[MemoryStore] = None,
        domain: Optional[DomainDataSource] = None,
        preferences: Optional[UserPreferenceService] = None,
        memory_config: Optional[MemoryConfig] = None,
    ):
        self.config = config or ContextConfig()
        self.memory = memory or MemoryStore(db, memory_config)
        self.domain = domain or DomainDataSource(db)
        self.preferences = preferences or UserPreferenceService(
            db, self.memory, cache_hours=self.config.preference_cache_hours
        )

    async def build(self, query: Optional[str] = None) -> dict:
        """
        Assemble the bundle. With a query, memories are the ones most related
        to it; without one, a flat key/value dump of general memories.
        """
        bundle: dict[str, Any] = {
            "today": utcnow().date().isoformat(),
            "tasks_today": await self.domain.today_tasks(),
            "expenses_7days": await self.domain.recent_expenses(self.config.expense_window_days),
            "study_goals": await self.domain.study_goals(),
        }
        if query:
            bundle["relevant_memories"] = await self.relevant_memories(query)
        else:
            bundle["long_term_memory"] = await self.long_term_memory()
        bundle["preferences"] = await self._preference_summary()

        return self.apply_size_policy(bundle)

    async def build_daily_summary(self) -> dict:
        expenses_today = await self.domain.expenses_today()
        return {
            "date": utcnow().date().isoformat(),
            "completed_tasks": await self.domain.completed_tasks_today(),
            "total_expenses": round(sum(e["amount"] for e in expenses_today), 2),
            "expenses_today": expenses_today,
        }

    async def relevant_memories(self, query: str) -> list[dict]:
        """Search hits, recently used ones first, then by score."""
        hits = await self.memory.search(query, limit=self.config.query_search_limit)
        cutoff = utcnow() - timedelta(days=self.config.recent_days)

        def is_recent(hit: dict) -> bool:
            stamps = (hit["last_accessed_at"], hit["updated_at"])
            return any(stamp is not None and stamp >= cutoff for stamp in stamps)

        hits.sort(key=lambda hit: (not is_recent(hit), -hit["final_score"]))
        return [
            {
                "key": hit["key"],
                "category": hit["category"],
                "content": hit["content"],
                "value": hit["value"],
                "relevance_score": hit["relevance_score"],
                "final_score": round(hit["final_score"], 4),
            }
            for hit in hits[: self.config.query_keep]
        ]

    async def long_term_memory(self) -> dict:
        memories = await self.memory.get_by_category(
            self.config.legacy_memory_category, limit=self.config.legacy_memory_limit
        )
        return {memory.key: memory.value for memory in memories}

    def apply_size_policy(self, bundle: dict) -> dict:
        """Cut memories, then tasks, then expense items while over the ceiling."""
        limit = self.config.max_chars
        size = context_size(bundle)
        if size <= limit:
            return bundle

        original = size
        steps = (
            self._truncate_memories,
            self._truncate_tasks,
            self._truncate_expenses,
        )
        for step in steps:
            step(bundle)
            size = context_size(bundle)
            if size <= limit:
                break

        logger.info(
            "Context truncated: %d → %d chars (limit %d)%s",
            original, size, limit, "" if size <= limit else ", still over",
        )
        return bundle

    # ── Truncation steps ─────────────────────────────────────────────

    def _truncate_memories(self, bundle: dict) -> None:
        keep = self.config.memory_truncate_to
        if "relevant_memories" in bundle:
            bundle["relevant_memories"] = bundle["relevant_memories"][:keep]
        if "long_term_memory" in bundle:
            bundle["long_term_memory"] = dict(list(bundle["long_term_memory"].items())[:keep])

    def _truncate_tasks(self, bundle: dict) -> None:
        bundle["tasks_today"] = bundle.get("tasks_today", [])[: self.config.tasks_truncate_to]

    def _truncate_expenses(self, bundle: dict) -> None:
        expenses = bundle.get("expenses_7days")
        if isinstance(expenses, dict) and "items" in expenses:
            expenses["items"] = expenses["items"][: self.config.expenses_truncate_to]

    async def _preference_summary(self) -> dict:
        try:
            return await self.preferences.get_summary()
        except Exception as e:
            logger.warning("Preference summary unavailable: %s", e)
            return {}
