"""
Context compression: squeezes the context bundle into a short bullet summary
before it reaches the reasoning tier, whose per-minute token budget is the
tightest in the pipeline.
"""

import json
import logging
from collections import Counter
from typing import Optional

from ..core.pipeline_config import CompressorConfig
from ..services.llm import ModelTier, estimate_tokens
from .base_stage import CompleteFn, Stage

logger = logging.getLogger(__name__)

COMPRESSOR_PROMPT = """You are a context compressor. Given a large JSON context, compress it into a concise summary while keeping the most important information.

User Intent: {intent}
Focus on: {focus}

Compression rules:
1. Remove unnecessary fields (ids, timestamps, metadata)
2. Aggregate similar items (e.g., "5 tasks: 3 high priority, 2 medium")
3. Keep only actionable data
4. Use compact format (bullet points, abbreviations)
5. Target: 200-400 words maximum

Output format:
- Use markdown bullet points
- Group by category
- Numbers and metrics first
- Keep priority and status info
- Drop verbose descriptions

Example:
Input: {{"tasks": [{{"id":1,"title":"Write report","priority":"high","status":"in_progress","estimated_minutes":120}},...15 more]}}
Output:
• Tasks: 16 total (8 incomplete)
  - High priority: 4 (report, review, planning, meeting)
  - Medium: 6
  - Low: 6
• Due today: 5 tasks (3 high, 2 medium)
• Estimated time: 8.5 hours total"""


def serialize_context(context: dict) -> str:
    return json.dumps(context, ensure_ascii=False, indent=2, default=str)


def _number(value) -> str:
    return f"{value:,.0f}"


class ContextCompressor(Stage):
    name = "compressor"

    def __init__(
        self,
        complete: CompleteFn,
        tier: ModelTier,
        config: Optional[CompressorConfig] = None,
        enabled: bool = True,
    ):
        self.complete = complete
        self.tier = tier
        self.config = config or CompressorConfig()
        self.enabled = enabled

    async def compress(self, context: dict, intent: str = "general") -> str:
        return (await self.execute(context, intent)).value

    def format_compact(self, context: dict) -> str:
        """Bullet summary built locally. Empty string when there is no data."""
        lines = []

        tasks = context.get("tasks_today") or []
        if tasks:
            lines.append(f"• Tasks Today: {len(tasks)}")
            by_priority = Counter(task.get("priority") or "medium" for task in tasks)
            for priority, count in by_priority.items():
                lines.append(f"  - {priority}: {count}")

        expenses = context.get("expenses_7days")
        if isinstance(expenses, dict):
            if "total" in expenses:
                lines.append(f"• Expenses (7d): {_number(expenses['total'])} {self.config.currency}")
            by_category = expenses.get("by_category") or {}
            for category, amount in list(by_category.items())[: self.config.top_expense_categories]:
                lines.append(f"  - {category}: {_number(amount)}")

        goals = context.get("study_goals") or []
        if goals:
            lines.append(f"• Study Goals: {len(goals)}")
            for goal in goals[: self.config.listed_study_goals]:
                lines.append(f"  - {goal.get('name') or 'Unknown'}: {goal.get('progress') or 0}%")

        memories = context.get("relevant_memories") or []
        if memories:
            lines.append(f"• Relevant Memories: {len(memories)}")

        return "\n".join(lines)

    def estimate_savings(self, context: dict) -> int:
        """Tokens saved by sending a target-size summary instead of the raw JSON."""
        original = estimate_tokens(json.dumps(context, ensure_ascii=False, default=str))
        return max(0, original - self.config.target_tokens)

    # ── Stage interface ──────────────────────────────────────────────

    def should_call(self, context: dict, intent: str = "general") -> bool:
        return len(serialize_context(context)) >= self.config.remote_min_chars

    def build_messages(self, context: dict, intent: str = "general") -> list[dict]:
        areas = self.config.focus_areas
        prompt = COMPRESSOR_PROMPT.format(intent=intent, focus=areas.get(intent, areas["general"]))
        return [
            {"role": "system", "content": prompt},
            {"role": "user", "content": "Compress this context:\n\n" + serialize_context(context)},
        ]

    async def run(self, context: dict, intent: str = "general") -> str:
        original = len(serialize_context(context))
        compressed = await self.complete(self.build_messages(context, intent), self.tier)
        ratio = round((1 - len(compressed) / original) * 100, 1) if original else 0
        logger.info(
            "Context compressed [%s]: %d → %d chars (%.1f%% smaller)",
            intent, original, len(compressed), ratio,
        )
        return compressed

    def fallback(self, context: dict, intent: str = "general") -> str:
        return self.format_compact(context)
