"""
Long-term associative memory: store, search, boost and prune memories.

Used by the context assembler and the memory router to pull long-term
context into a request, and by the preference / conversation services to
persist what they learn about the user.

Search ranks every candidate as
    similarity * 0.7 + relevance_score * 0.2 + recency * 0.1
where recency = min(1, days since last access / 30). That term grows with
staleness; it is kept exactly as shipped so rankings stay comparable.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import String, cast, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.pipeline_config import MemoryConfig
from ..models.base import as_utc, utcnow
from ..models.memory import LongTermMemory
from .embedding import cosine_similarity, embed, is_usable

logger = logging.getLogger(__name__)


def serialize_value(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def escape_like(text: str) -> str:
    """Make `%`, `_` and the escape character match literally in a LIKE pattern."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def memory_to_dict(memory: LongTermMemory) -> dict:
    return {
        "id": memory.id,
        "key": memory.key,
        "value": memory.value,
        "content": memory.content,
        "category": memory.category,
        "relevance_score": memory.relevance_score,
        "last_accessed_at": as_utc(memory.last_accessed_at),
        "created_at": as_utc(memory.created_at),
        "updated_at": as_utc(memory.updated_at),
        "metadata": memory.meta or {},
    }


class MemoryStore:
    """Key-addressed memory records with pseudo-embedding similarity search."""

    def __init__(self, db: AsyncSession, config: Optional[MemoryConfig] = None):
        self.db = db
        self.config = config or MemoryConfig()

    def embed(self, text: str) -> list[float]:
        return embed(text, self.config.dimensions)

    # ── Writes ───────────────────────────────────────────────────────

    async def store(
        self,
        key: str,
        value: Any,
        category: str = "general",
        content: str = "",
        metadata: Optional[dict] = None,
    ) -> LongTermMemory:
        """
        Upsert a memory by key.

        The embedding comes from `content`, or from the serialized value when
        content is empty. A new record starts at the initial relevance score;
        an existing one keeps whatever score boosts have given it.

        The insert runs in a savepoint: if another request created the same
        key in the meantime, that row is updated instead and the session
        stays usable.
        """
        embedding = self.embed(content or serialize_value(value))
        now = utcnow()

        existing = await self.get(key)
        if existing is None:
            memory = LongTermMemory(
                key=key,
                value=value,
                category=category,
                content=content,
                embedding=embedding,
                relevance_score=self.config.initial_relevance,
                meta=metadata or {},
                last_accessed_at=now,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(memory)
                    await self.db.flush()
            except IntegrityError:
                existing = await self.get(key)
                if existing is None:
                    raise
                logger.info("Memory %s was created concurrently, updating it", key)
            else:
                logger.debug("Stored memory: %s [%s]", key, category)
                return memory

        existing.value = value
        existing.category = category
        existing.content = content
        existing.embedding = embedding
        existing.meta = metadata or {}
        existing.last_accessed_at = now
        await self.db.flush()
        logger.debug("Updated memory: %s [%s]", key, category)
        return existing

    async def boost_relevance(self, memory_id: str, delta: float = 0.1) -> None:
        """Additive relevance increase, applied atomically in SQL."""
        await self.db.execute(
            update(LongTermMemory)
            .where(LongTermMemory.id == memory_id)
            .values(relevance_score=LongTermMemory.relevance_score + delta)
        )
        await self.db.flush()

    async def clean_old_memories(self, days_unused: Optional[int] = None) -> int:
        """Delete memories untouched for `days_unused` days AND below the relevance floor."""
        days = self.config.cleanup_days if days_unused is None else days_unused
        cutoff = utcnow() - timedelta(days=days)
        result = await self.db.execute(
            delete(LongTermMemory)
            .where(
                LongTermMemory.last_accessed_at < cutoff,
                LongTermMemory.relevance_score < self.config.cleanup_relevance_floor,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        deleted = result.rowcount or 0
        logger.info("Memory cleanup: %d removed (unused >= %d days)", deleted, days)
        return deleted

    # ── Reads ────────────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[LongTermMemory]:
        result = await self.db.execute(
            select(LongTermMemory).where(LongTermMemory.key == key)
        )
        return result.scalar_one_or_none()

    async def list_all(self, limit: int = 200) -> list[LongTermMemory]:
        result = await self.db.execute(
            select(LongTermMemory).order_by(LongTermMemory.key).limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_category(self, category: str, limit: int = 20) -> list[LongTermMemory]:
        result = await self.db.execute(
            select(LongTermMemory)
            .where(LongTermMemory.category == category)
            .order_by(
                LongTermMemory.relevance_score.desc(),
                LongTermMemory.last_accessed_at.desc(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def search(
        self,
        query: str,
        limit: int = 5,
        categories: Optional[list[str]] = None,
    ) -> list[dict]:
        """
        Rank memories against `query` and return at most `limit` of them.

        Falls back to keyword matching when the query has no words to embed.
        Returned records have their last_accessed_at bumped to now; the dicts
        carry the values as they were before that bump.
        """
        if limit <= 0:
            return []

        query_embedding = self.embed(query)
        if not is_usable(query_embedding):
            results = await self.keyword_search(query, limit, categories)
        else:
            stmt = select(LongTermMemory).where(LongTermMemory.embedding.is_not(None))
            if categories:
                stmt = stmt.where(LongTermMemory.category.in_(categories))
            candidates = (await self.db.execute(stmt)).scalars().all()

            now = utcnow()
            scored = []
            for memory in candidates:
                if not memory.embedding:
                    continue
                similarity = cosine_similarity(query_embedding, memory.embedding)
                row = memory_to_dict(memory)
                row["similarity_score"] = similarity
                row["final_score"] = (
                    similarity * self.config.similarity_weight
                    + memory.relevance_score * self.config.relevance_weight
                    + self._recency_boost(row["last_accessed_at"], now) * self.config.recency_weight
                )
                scored.append(row)

            scored.sort(key=lambda r: r["final_score"], reverse=True)
            results = scored[:limit]

        await self._mark_accessed([r["id"] for r in results])
        logger.debug("Memory search '%s': %d results (categories=%s)", query[:50], len(results), categories)
        return results

    async def keyword_search(
        self,
        query: str,
        limit: int,
        categories: Optional[list[str]] = None,
    ) -> list[dict]:
        stmt = select(LongTermMemory)
        if categories:
            stmt = stmt.where(LongTermMemory.category.in_(categories))

        for keyword in query.lower().split():
            pattern = f"%{escape_like(keyword)}%"
            stmt = stmt.where(or_(
                func.lower(LongTermMemory.key).like(pattern, escape="\\"),
                func.lower(LongTermMemory.content).like(pattern, escape="\\"),
                func.lower(cast(LongTermMemory.value, String)).like(pattern, escape="\\"),
            ))

        stmt = stmt.order_by(
            LongTermMemory.relevance_score.desc(),
            LongTermMemory.last_accessed_at.desc(),
        ).limit(limit)
        memories = (await self.db.execute(stmt)).scalars().all()

        results = []
        for memory in memories:
            row = memory_to_dict(memory)
            row["similarity_score"] = 0.0
            row["final_score"] = memory.relevance_score * self.config.relevance_weight
            results.append(row)
        return results

    async def get_statistics(self) -> dict:
        total = await self.db.scalar(select(func.count()).select_from(LongTermMemory))
        by_category = await self.db.execute(
            select(LongTermMemory.category, func.count())
            .group_by(LongTermMemory.category)
        )
        recent_cutoff = utcnow() - timedelta(days=7)
        recently_accessed = await self.db.scalar(
            select(func.count())
            .select_from(LongTermMemory)
            .where(LongTermMemory.last_accessed_at >= recent_cutoff)
        )
        high_relevance = await self.db.scalar(
            select(func.count())
            .select_from(LongTermMemory)
            .where(LongTermMemory.relevance_score >= 1.0)
        )
        return {
            "total_memories": total or 0,
            "by_category": {category: count for category, count in by_category.all()},
            "recently_accessed": recently_accessed or 0,
            "high_relevance": high_relevance or 0,
        }

    # ── Helpers ──────────────────────────────────────────────────────

    def _recency_boost(self, last_accessed_at, now) -> float:
        if last_accessed_at is None:
            return self.config.never_accessed_recency
        days = max(0, (now - last_accessed_at).days)
        return min(1.0, days / self.config.recency_window_days)

    async def _mark_accessed(self, memory_ids: list[str]) -> None:
        if not memory_ids:
            return
        await self.db.execute(
            update(LongTermMemory)
            .where(LongTermMemory.id.in_(memory_ids))
            .values(last_accessed_at=utcnow())
        )
        await self.db.flush()
