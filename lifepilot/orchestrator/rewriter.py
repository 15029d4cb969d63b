"""
Prompt rewriting: turns vague questions into specific, answerable ones.

Long messages that already read like a request ("show ...", "liệt kê ...")
pass through untouched. Everything else goes to the small instant tier,
with per-intent templates as the local fallback.
"""

import logging
from typing import Optional

from ..core.pipeline_config import RewriterConfig
from ..services.llm import ModelTier
from .base_stage import CompleteFn, Stage

logger = logging.getLogger(__name__)

REWRITER_PROMPT = """You are a prompt rewriter. Transform vague questions into clear, structured prompts.

User Intent: {intent}
Guidance: {guidance}

Rewriting rules:
1. Be specific and actionable
2. Include relevant filters (today, this week, high priority, etc.)
3. Specify desired output format
4. Keep the original language (Vietnamese or English)
5. Maximum 2 sentences

Examples:

Vague: "Task gì?"
Clear: "List all tasks due today, ordered by priority, showing title and status."

Vague: "Tiền tháng này?"
Clear: "Show total expenses for this month, grouped by category with percentages."

Vague: "Học được gì?"
Clear: "Display study progress for all active goals with completion percentages."

Now rewrite the user's question below."""


class PromptRewriter(Stage):
    name = "rewriter"

    def __init__(
        self,
        complete: CompleteFn,
        tier: ModelTier,
        config: Optional[RewriterConfig] = None,
        enabled: bool = True,
    ):
        self.complete = complete
        self.tier = tier
        self.config = config or RewriterConfig()
        self.enabled = enabled

    async def rewrite(self, message: str, intent: str) -> str:
        return (await self.execute(message, intent)).value

    def is_clear(self, message: str) -> bool:
        if len(message) <= self.config.clear_min_length:
            return False
        text = message.lower()
        return any(marker in text for marker in self.config.clear_indicators)

    def quick_rewrite(self, message: str, intent: str) -> str:
        """Template for very short messages, otherwise the trimmed message."""
        if len(message) < self.config.template_max_length:
            template = self.config.templates.get(intent)
            return template.format(message=message) if template else message
        return message.strip()

    # ── Stage interface ──────────────────────────────────────────────

    def should_call(self, message: str, intent: str) -> bool:
        return not self.is_clear(message)

    def local(self, message: str, intent: str) -> str:
        if self.is_clear(message):
            return message
        return self.quick_rewrite(message, intent)

    def build_messages(self, message: str, intent: str) -> list[dict]:
        guides = self.config.guides
        prompt = REWRITER_PROMPT.format(intent=intent, guidance=guides.get(intent, guides["general"]))
        return [
            {"role": "system", "content": prompt},
            {"role": "user", "content": message},
        ]

    async def run(self, message: str, intent: str) -> str:
        rewritten = await self.complete(self.build_messages(message, intent), self.tier)
        logger.info("Prompt rewritten [%s]: %r → %r", intent, message[:100], rewritten[:200])
        return rewritten

    def fallback(self, message: str, intent: str) -> str:
        return self.quick_rewrite(message, intent)
