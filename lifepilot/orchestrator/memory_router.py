"""
Memory routing: pick the memory categories and how many memories an intent
deserves, then pull them from the memory store in a compact shape.
"""

import json
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..core.pipeline_config import RouterConfig
from ..services.llm import estimate_tokens
from ..services.memory import MemoryStore
from .base_stage import Stage

logger = logging.getLogger(__name__)


class MemoryRouter(Stage):
    name = "memory"
    recoverable = (SQLAlchemyError,)

    def __init__(self, memory: MemoryStore, config: Optional[RouterConfig] = None):
        self.memory = memory
        self.config = config or RouterConfig()

    async def route(self, query: str, intent: str, user_id: Optional[str] = None) -> list[dict]:
        return (await self.execute(query, intent, user_id)).value

    def categories_for(self, intent: str) -> list[str]:
        """Empty list means every category."""
        return list(self.config.categories.get(intent, []))

    def limit_for(self, intent: str) -> int:
        return self.config.limits.get(intent, self.config.default_limit)

    def memory_stats(self, intent: str) -> dict:
        categories = self.categories_for(intent)
        return {
            "total_relevant_categories": len(categories),
            "categories": categories,
            "limit": self.limit_for(intent),
        }

    # ── Stage interface ──────────────────────────────────────────────

    async def run(self, query: str, intent: str, user_id: Optional[str] = None) -> list[dict]:
        categories = self.categories_for(intent)
        limit = self.limit_for(intent)
        logger.info("Memory routing: intent=%s categories=%s limit=%d", intent, categories, limit)

        # user_id is accepted for the caller's bookkeeping; the store is single-user
        hits = await self.memory.search(query, limit=limit, categories=categories or None)
        return [
            {
                "content": hit.get("content") or "",
                "category": hit.get("category") or "general",
                "relevance": round(hit.get("relevance_score") or 0, 2),
            }
            for hit in hits
        ]

    def fallback(self, query: str, intent: str, user_id: Optional[str] = None) -> list[dict]:
        return []

    def estimate_cost(self, value, *args) -> int:
        return estimate_tokens(json.dumps(value, ensure_ascii=False)) if value else 0
