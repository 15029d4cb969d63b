"""
Reasoning: the one call that actually answers the question.

Runs on the highest-capacity tier, which also has the smallest per-minute
token allowance, so everything upstream exists to keep this prompt small.
There is no local fallback: failures propagate to the orchestrator.
"""

import logging
from typing import Optional

from ..core.pipeline_config import ReasoningConfig
from ..services.llm import ModelTier, estimate_messages_tokens
from .base_stage import CompleteFn, Stage

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a personal AI assistant for a life management system.

COMPRESSED CONTEXT:
{context}

Your role:
- Answer questions based on the context above
- Be helpful, concise, and actionable
- Suggest next steps when appropriate
- Use Vietnamese if user asks in Vietnamese
- Cite specific data from context

Response format:
- Direct answer first
- Supporting details second
- Action items last (if applicable)

Keep responses focused and under 300 words unless detail is needed."""


class ReasoningStage(Stage):
    name = "reasoning"
    has_fallback = False

    def __init__(
        self,
        complete: CompleteFn,
        tier: ModelTier,
        config: Optional[ReasoningConfig] = None,
    ):
        self.complete = complete
        self.tier = tier
        self.config = config or ReasoningConfig()

    async def ask(self, prompt: str, context: str, history: Optional[list[dict]] = None) -> str:
        return (await self.execute(prompt, context, history)).value

    def is_within_budget(self, prompt: str, context: str) -> bool:
        """True when system prompt + question fit the input token budget."""
        return estimate_messages_tokens(self.build_messages(prompt, context)) <= self.config.token_budget

    # ── Stage interface ──────────────────────────────────────────────

    def build_messages(self, prompt: str, context: str, history: Optional[list[dict]] = None) -> list[dict]:
        messages = [{"role": "system", "content": SYSTEM_PROMPT.format(context=context)}]
        recent = (history or [])[-self.config.history_turns:] if self.config.history_turns else []
        for turn in recent:
            messages.append({
                "role": turn.get("role") or "user",
                "content": turn.get("content") or "",
            })
        messages.append({"role": "user", "content": prompt})
        return messages

    async def run(self, prompt: str, context: str, history: Optional[list[dict]] = None) -> str:
        messages = self.build_messages(prompt, context, history)
        logger.info(
            "Reasoning request: prompt=%r context=%d chars history=%d estimated_tokens=%d model=%s",
            prompt[:100], len(context), len(messages) - 2,
            estimate_messages_tokens(messages), self.tier.model,
        )
        answer = await self.complete(messages, self.tier)
        logger.info("Reasoning answer: %d chars", len(answer))
        return answer
