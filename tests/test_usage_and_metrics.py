from lifepilot.orchestrator.base_stage import StageOutcome
from lifepilot.orchestrator.metrics import PipelineMetrics
from lifepilot.services.usage import DEFAULT_LIMITS, UsageTracker, limits_for

NOW = 1_700_000_000.0


def test_usage_windows() -> None:
    tracker = UsageTracker()
    tracker.record("llama-3.3-70b-versatile", 1000, 200, now=NOW - 3600)
    tracker.record("llama-3.3-70b-versatile", 2000, 400, now=NOW - 10)
    tracker.record("llama-3.3-70b-versatile", ok=False, now=NOW - 5)

    usage = tracker.snapshot(now=NOW)["llama-3.3-70b-versatile"]

    assert usage["requests_last_minute"] == 2
    assert usage["tokens_last_minute"] == 2400
    assert usage["requests_last_day"] == 3
    assert usage["tokens_last_day"] == 3600
    assert usage["success_rate"] == 66.7
    assert usage["usage_percentage"]["tpm"] == 40.0
    assert usage["limits"]["tpm"] == 6000


def test_calls_older_than_a_day_are_pruned() -> None:
    tracker = UsageTracker()
    tracker.record("allam-2-7b", 10, 10, now=NOW - 90000)
    tracker.record("allam-2-7b", 10, 10, now=NOW)

    usage = tracker.snapshot(now=NOW)["allam-2-7b"]

    assert usage["requests_last_day"] == 1
    assert usage["total_prompt_tokens"] == 20


def test_unknown_models_use_default_limits() -> None:
    assert limits_for("some-new-model") == DEFAULT_LIMITS
    assert limits_for("groq/compound-mini")["rpm"] == 100


def test_reset_clears_everything() -> None:
    tracker = UsageTracker()
    tracker.record("allam-2-7b", 1, 1, now=NOW)
    tracker.reset()
    assert tracker.snapshot(now=NOW) == {}


def test_pipeline_metrics_totals() -> None:
    metrics = PipelineMetrics(baseline_tokens=1000)
    metrics.record("intent", StageOutcome("task", used_fallback=False, elapsed_ms=5, estimated_tokens=120), result="task")
    metrics.record("rewrite", StageOutcome("x", used_fallback=True, elapsed_ms=1))
    metrics.record("reasoning", StageOutcome("y", elapsed_ms=900, estimated_tokens=600))
    metrics.total_elapsed_ms = 950

    data = metrics.to_dict()

    assert data["stages"]["intent"] == {
        "result": "task", "elapsed_ms": 5, "estimated_tokens": 120, "fallback": False,
    }
    assert data["total"] == {
        "elapsed_ms": 950,
        "estimated_tokens": 720,
        "baseline_tokens": 1000,
        "token_savings": 280,
        "fallbacks": ["rewrite"],
    }


def test_token_savings_never_negative() -> None:
    metrics = PipelineMetrics(baseline_tokens=100)
    metrics.record("reasoning", StageOutcome("y", estimated_tokens=500))
    assert metrics.token_savings == 0
