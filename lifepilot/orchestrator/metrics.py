"""
Per-request pipeline metrics: what each stage produced, how long it took,
roughly how many tokens it spent, and whether its fallback answered.
"""

from dataclasses import dataclass, field
from typing import Any

from .base_stage import StageOutcome


@dataclass
class PipelineMetrics:
    baseline_tokens: int = 3500
    stages: dict[str, dict] = field(default_factory=dict)
    total_elapsed_ms: int = 0

    def record(self, stage: str, outcome: StageOutcome, **summary: Any) -> None:
        self.stages[stage] = {
            **summary,
            "elapsed_ms": outcome.elapsed_ms,
            "estimated_tokens": outcome.estimated_tokens,
            "fallback": outcome.used_fallback,
        }

    @property
    def total_tokens(self) -> int:
        return sum(stage["estimated_tokens"] for stage in self.stages.values())

    @property
    def token_savings(self) -> int:
        return max(0, self.baseline_tokens - self.total_tokens)

    @property
    def fallbacks(self) -> list[str]:
        return [name for name, stage in self.stages.items() if stage["fallback"]]

    def to_dict(self) -> dict:
        return {
            "stages": self.stages,
            "total": {
                "elapsed_ms": self.total_elapsed_ms,
                "estimated_tokens": self.total_tokens,
                "baseline_tokens": self.baseline_tokens,
                "token_savings": self.token_savings,
                "fallbacks": self.fallbacks,
            },
        }
