"""
Output formatting: trims the reasoning answer into a tight, scannable reply.

Short answers only get a regex pass that strips filler openers; long ones
go through the formatter tier with an intent-specific style.
"""

import logging
import re
from typing import Optional

from ..core.pipeline_config import FormatterConfig
from ..services.llm import ModelTier, estimate_tokens
from .base_stage import CompleteFn, Stage

logger = logging.getLogger(__name__)

FORMATTER_PROMPT = """You are an output formatter. Take a verbose AI response and make it concise while keeping all important information.

User Intent: {intent}
Output Style: {style}

Formatting rules:
1. Remove redundant phrases ("as you can see", "based on the data")
2. Use bullet points for lists
3. Numbers and key facts must stay
4. Keep action items
5. Target: 150-300 words maximum

Quality requirements:
- Keep the tone friendly and helpful
- Preserve Vietnamese text if present
- Maintain accuracy - don't change facts
- Use markdown formatting (**, -, •)

Example:
Input: "Based on the data provided in your context, I can see that you have 16 tasks today. Looking at the priorities, there are 4 high-priority tasks which include writing a report, reviewing documents, planning next week, and attending a meeting..."

Output:
• High priority: 4 (report, review, planning, meeting)
• Medium: 6
• Low: 6
"""


class OutputFormatter(Stage):
    name = "formatter"

    def __init__(
        self,
        complete: CompleteFn,
        tier: ModelTier,
        config: Optional[FormatterConfig] = None,
        enabled: bool = True,
    ):
        self.complete = complete
        self.tier = tier
        self.config = config or FormatterConfig()
        self.enabled = enabled
        self._fillers = [re.compile(p, re.IGNORECASE) for p in self.config.filler_patterns]

    async def format(self, raw: str, intent: str = "general") -> str:
        return (await self.execute(raw, intent)).value

    def quick_format(self, raw: str) -> str:
        text = raw
        for pattern in self._fillers:
            text = pattern.sub("", text)
        return text.strip()

    def estimate_savings(self, raw: str) -> int:
        return max(0, estimate_tokens(raw) - self.config.target_tokens)

    # ── Stage interface ──────────────────────────────────────────────

    def should_call(self, raw: str, intent: str = "general") -> bool:
        return len(raw) >= self.config.remote_min_chars

    def build_messages(self, raw: str, intent: str = "general") -> list[dict]:
        styles = self.config.styles
        prompt = FORMATTER_PROMPT.format(intent=intent, style=styles.get(intent, styles["general"]))
        return [
            {"role": "system", "content": prompt},
            {"role": "user", "content": "Format this response:\n\n" + raw},
        ]

    async def run(self, raw: str, intent: str = "general") -> str:
        formatted = await self.complete(self.build_messages(raw, intent), self.tier)
        ratio = round((1 - len(formatted) / len(raw)) * 100, 1) if raw else 0
        logger.info(
            "Output formatted [%s]: %d → %d chars (%.1f%% shorter)",
            intent, len(raw), len(formatted), ratio,
        )
        return formatted

    def fallback(self, raw: str, intent: str = "general") -> str:
        return self.quick_format(raw)
