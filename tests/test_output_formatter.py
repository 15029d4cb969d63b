import pytest

from lifepilot.orchestrator.formatter import OutputFormatter

VERBOSE = "Based on the data you shared, I can see that you have 3 tasks today."
LONG_ANSWER = "Here is your plan for the day. " * 20


def test_quick_format_strips_filler_openers(tiers, fake_complete) -> None:
    formatter = OutputFormatter(fake_complete(), tiers["formatter"])
    assert formatter.quick_format(VERBOSE) == "you have 3 tasks today."
    assert formatter.quick_format("  Looking at your tasks, two are late.  ") == "two are late."


@pytest.mark.asyncio
async def test_short_answer_never_goes_remote(tiers, fake_complete) -> None:
    complete = fake_complete({"formatter": "unused"})
    formatter = OutputFormatter(complete, tiers["formatter"])
    raw = VERBOSE + " " + "Keep going." * 20
    assert len(raw) < 500

    outcome = await formatter.execute(raw, "task")

    assert outcome.value.startswith("you have 3 tasks today.")
    assert outcome.used_fallback is False
    assert complete.calls == []


@pytest.mark.asyncio
async def test_long_answer_is_formatted_remotely(tiers, fake_complete) -> None:
    complete = fake_complete({"formatter": "• Plan: report, gym"})
    formatter = OutputFormatter(complete, tiers["formatter"])

    result = await formatter.format(LONG_ANSWER, "planning")

    assert result == "• Plan: report, gym"
    messages = complete.calls[0][1]
    assert "Output Style: Timeline format." in messages[0]["content"]
    assert messages[1]["content"] == "Format this response:\n\n" + LONG_ANSWER


@pytest.mark.asyncio
async def test_remote_failure_uses_quick_format(tiers, fake_complete) -> None:
    formatter = OutputFormatter(fake_complete(), tiers["formatter"])

    outcome = await formatter.execute(LONG_ANSWER, "planning")

    assert outcome.used_fallback is True
    assert outcome.value == LONG_ANSWER.strip()


@pytest.mark.asyncio
async def test_disabled_formatter_only_cleans_locally(tiers, fake_complete) -> None:
    complete = fake_complete({"formatter": "unused"})
    formatter = OutputFormatter(complete, tiers["formatter"], enabled=False)

    outcome = await formatter.execute(LONG_ANSWER)

    assert outcome.used_fallback is True
    assert complete.calls == []


def test_estimate_savings(tiers, fake_complete) -> None:
    formatter = OutputFormatter(fake_complete(), tiers["formatter"])
    assert formatter.estimate_savings("x" * 2000) == 300
    assert formatter.estimate_savings("short") == 0
