"""
Intent classification: the first, cheapest stage.

The intent tier answers with a single keyword; anything it says that is not
a known intent is treated like no answer and the keyword classifier decides.
"""

import logging
import re
from enum import Enum
from typing import Optional

from ..core.pipeline_config import ClassifierConfig
from ..services.llm import CompletionError, ModelTier
from .base_stage import CompleteFn, Stage

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    TASK = "task"
    STUDY = "study"
    EXPENSE = "expense"
    PLANNING = "planning"
    MEMORY = "memory"
    GENERAL = "general"


_NOT_WORD = re.compile(r"[^\w]+")

CLASSIFIER_EXAMPLES = """Examples:
User: "Tôi có task gì hôm nay?"
Response: task

User: "Chi tiêu của tôi tháng này bao nhiêu?"
Response: expense

User: "Tiến độ học của tôi thế nào?"
Response: study

User: "Tôi nên làm gì hôm nay?"
Response: planning"""


class IntentClassifier(Stage):
    name = "intent"

    def __init__(
        self,
        complete: CompleteFn,
        tier: ModelTier,
        config: Optional[ClassifierConfig] = None,
        enabled: bool = True,
    ):
        self.complete = complete
        self.tier = tier
        self.config = config or ClassifierConfig()
        self.enabled = enabled

    async def classify(self, message: str) -> Intent:
        return (await self.execute(message)).value

    async def classify_multiple(self, message: str) -> list[Intent]:
        """Candidate intents in priority order: remote, keyword, general."""
        candidates = [await self.classify(message), self.fallback_classify(message), Intent.GENERAL]
        return list(dict.fromkeys(candidates))

    def fallback_classify(self, message: str) -> Intent:
        """First keyword hit wins, in the configured intent order."""
        text = message.lower()
        for intent, words in self.config.keywords.items():
            if any(word in text for word in words):
                return Intent(intent)
        return Intent(self.config.default_intent)

    def build_prompt(self) -> str:
        intent_list = "\n".join(f"- {key}: {desc}" for key, desc in self.config.descriptions.items())
        keywords = ", ".join(list(self.config.descriptions)[:-1])
        last = list(self.config.descriptions)[-1]
        return (
            "You are an intent classifier. Given a user message, classify it into ONE of these intents:\n\n"
            f"{intent_list}\n\n"
            f"Respond with ONLY the intent keyword ({keywords}, or {last}). No explanation.\n\n"
            f"{CLASSIFIER_EXAMPLES}"
        )

    # ── Stage interface ──────────────────────────────────────────────

    def build_messages(self, message: str) -> list[dict]:
        return [
            {"role": "system", "content": self.build_prompt()},
            {"role": "user", "content": message},
        ]

    async def run(self, message: str) -> Intent:
        reply = await self.complete(self.build_messages(message), self.tier)
        token = _NOT_WORD.sub("", reply.strip().lower())
        try:
            intent = Intent(token)
        except ValueError:
            raise CompletionError(f"unknown intent reply: {reply[:50]!r}") from None

        logger.info("Intent classified: %s (message=%r)", intent.value, message[:100])
        return intent

    def fallback(self, message: str) -> Intent:
        return self.fallback_classify(message)
