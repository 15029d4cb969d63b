"""
In-process usage tracking for the completion tiers.

Counts requests and tokens per model over a rolling minute and day, and
compares them with the provider's published free-tier limits. Process-local
only: restarts reset the counters, and several workers each keep their own.
"""

import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Optional

MINUTE = 60.0
DAY = 86400.0

# Published Groq free-tier limits: requests and tokens per minute / day.
RATE_LIMITS: dict[str, dict] = {
    "llama-3.3-70b-versatile": {"name": "LLaMA 3.3 70B Versatile", "rpm": 30, "rpd": 14400, "tpm": 6000, "tpd": 1000000},
    "llama-3.1-8b-instant": {"name": "LLaMA 3.1 8B Instant", "rpm": 30, "rpd": 14400, "tpm": 250000, "tpd": 25000000},
    "groq/compound": {"name": "Compound (Intent)", "rpm": 30, "rpd": 14400, "tpm": 200000, "tpd": 20000000},
    "groq/compound-mini": {"name": "Compound Mini (Compress)", "rpm": 100, "rpd": 14400, "tpm": 1000000, "tpd": 50000000},
    "allam-2-7b": {"name": "Allam 2 7B", "rpm": 30, "rpd": 14400, "tpm": 100000, "tpd": 10000000},
}
DEFAULT_LIMITS = {"rpm": 30, "rpd": 14400, "tpm": 100000, "tpd": 10000000}


def limits_for(model: str) -> dict:
    limits = RATE_LIMITS.get(model, DEFAULT_LIMITS)
    return {k: limits[k] for k in ("rpm", "rpd", "tpm", "tpd")}


@dataclass
class _Call:
    at: float
    tokens: int
    ok: bool


@dataclass
class UsageTracker:
    """Rolling per-model counters. Thread-safe; cheap enough to call per request."""

    calls: dict[str, deque] = field(default_factory=lambda: defaultdict(deque))
    prompt_tokens: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    completion_tokens: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(
        self,
        model: str,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        ok: bool = True,
        now: Optional[float] = None,
    ) -> None:
        now = time.time() if now is None else now
        with self._lock:
            self.calls[model].append(_Call(now, prompt_tokens + completion_tokens, ok))
            self.prompt_tokens[model] += prompt_tokens
            self.completion_tokens[model] += completion_tokens
            self._prune(model, now)

    def snapshot(self, now: Optional[float] = None) -> dict:
        """Per-model usage with percentages of each limit."""
        now = time.time() if now is None else now
        result = {}
        with self._lock:
            for model in list(self.calls):
                self._prune(model, now)
                calls = self.calls[model]
                last_minute = [c for c in calls if now - c.at <= MINUTE]
                limits = limits_for(model)

                requests_minute = len(last_minute)
                tokens_minute = sum(c.tokens for c in last_minute)
                requests_day = len(calls)
                tokens_day = sum(c.tokens for c in calls)
                failures = sum(1 for c in calls if not c.ok)

                result[model] = {
                    "requests_last_minute": requests_minute,
                    "tokens_last_minute": tokens_minute,
                    "requests_last_day": requests_day,
                    "tokens_last_day": tokens_day,
                    "total_prompt_tokens": self.prompt_tokens[model],
                    "total_completion_tokens": self.completion_tokens[model],
                    "success_rate": round((requests_day - failures) / requests_day * 100, 1) if requests_day else 100.0,
                    "limits": limits,
                    "usage_percentage": {
                        "rpm": round(requests_minute / limits["rpm"] * 100, 1),
                        "tpm": round(tokens_minute / limits["tpm"] * 100, 1),
                        "rpd": round(requests_day / limits["rpd"] * 100, 2),
                        "tpd": round(tokens_day / limits["tpd"] * 100, 2),
                    },
                }
        return result

    def reset(self) -> None:
        with self._lock:
            self.calls.clear()
            self.prompt_tokens.clear()
            self.completion_tokens.clear()

    def _prune(self, model: str, now: float) -> None:
        calls = self.calls[model]
        while calls and now - calls[0].at > DAY:
            calls.popleft()


_tracker: Optional[UsageTracker] = None


def get_usage_tracker() -> UsageTracker:
    global _tracker
    if _tracker is None:
        _tracker = UsageTracker()
    return _tracker
