"""
Stage: every step of the answer pipeline implements this interface.

No frameworks. A stage has a remote path (`run`) and a local one
(`fallback`); `execute` picks one, times it, and reports which was used so
the orchestrator records the same metric shape either way.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ..services.llm import CompletionError, ModelTier, estimate_messages_tokens, estimate_tokens

logger = logging.getLogger(__name__)

# (messages, tier) -> reply text; raises CompletionError.
CompleteFn = Callable[[list[dict], ModelTier], Awaitable[str]]


@dataclass
class StageOutcome:
    """What a stage returns after executing."""

    value: Any = None
    used_fallback: bool = False      # fallback() produced the value
    elapsed_ms: int = 0
    estimated_tokens: int = 0        # prompt + reply, chars / 4; 0 when nothing was sent


class Stage:
    """
    Base class for pipeline stages. Subclass and implement run() / fallback().

    Attributes:
        name:         Metrics key ("intent", "rewriter", ...)
        enabled:      When False, run() is never attempted (feature flag off)
        recoverable:  Exceptions from run() that trigger fallback()
        has_fallback: When False, recoverable errors propagate to the caller
    """

    name: str = ""
    enabled: bool = True
    recoverable: tuple[type[Exception], ...] = (CompletionError,)
    has_fallback: bool = True

    async def run(self, *args) -> Any:
        raise NotImplementedError(f"{self.__class__.__name__} must implement run()")

    def fallback(self, *args) -> Any:
        raise NotImplementedError(f"{self.__class__.__name__} has no fallback")

    def should_call(self, *args) -> bool:
        """False when the input is small or clear enough to handle locally."""
        return True

    def local(self, *args) -> Any:
        """Value used when run() is not attempted. Defaults to the fallback."""
        return self.fallback(*args)

    def build_messages(self, *args) -> list[dict]:
        return []

    def estimate_cost(self, value: Any, *args) -> int:
        sent = estimate_messages_tokens(self.build_messages(*args))
        return sent + estimate_tokens(value if isinstance(value, str) else "")

    async def execute(self, *args) -> StageOutcome:
        start = time.monotonic()

        if not (self.enabled and self.should_call(*args)):
            value = self.local(*args)
            return StageOutcome(
                value=value,
                used_fallback=not self.enabled,
                elapsed_ms=int((time.monotonic() - start) * 1000),
            )

        try:
            value = await self.run(*args)
            used_fallback = False
        except self.recoverable as e:
            if not self.has_fallback:
                raise
            logger.warning("Stage %s failed, using fallback: %s", self.name, e)
            value = self.fallback(*args)
            used_fallback = True

        return StageOutcome(
            value=value,
            used_fallback=used_fallback,
            elapsed_ms=int((time.monotonic() - start) * 1000),
            estimated_tokens=self.estimate_cost(value, *args),
        )
