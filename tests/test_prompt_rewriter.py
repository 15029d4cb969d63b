import pytest

from lifepilot.orchestrator.rewriter import PromptRewriter

CLEAR = "Please show me every task that is due this week for the launch project"


@pytest.mark.asyncio
async def test_short_message_uses_template_when_remote_fails(tiers, fake_complete) -> None:
    rewriter = PromptRewriter(fake_complete(), tiers["rewriter"])

    outcome = await rewriter.execute("Task gì?", "task")

    assert outcome.value == "Show tasks for today with priority and status"
    assert outcome.used_fallback is True


@pytest.mark.asyncio
async def test_clear_message_passes_through_without_remote_call(tiers, fake_complete) -> None:
    complete = fake_complete({"rewriter": "should not be used"})
    rewriter = PromptRewriter(complete, tiers["rewriter"])

    outcome = await rewriter.execute(CLEAR, "task")

    assert outcome.value == CLEAR
    assert outcome.used_fallback is False
    assert outcome.estimated_tokens == 0
    assert complete.calls == []


@pytest.mark.asyncio
async def test_vague_message_goes_remote(tiers, fake_complete) -> None:
    complete = fake_complete({"rewriter": "List all tasks due today, ordered by priority."})
    rewriter = PromptRewriter(complete, tiers["rewriter"])

    result = await rewriter.rewrite("hôm nay làm gì", "task")

    assert result == "List all tasks due today, ordered by priority."
    system = complete.calls[0][1][0]["content"]
    assert "User Intent: task" in system
    assert "Ask for tasks with filters" in system


@pytest.mark.asyncio
async def test_disabled_rewriter_trims_longer_messages(tiers, fake_complete) -> None:
    complete = fake_complete({"rewriter": "unused"})
    rewriter = PromptRewriter(complete, tiers["rewriter"], enabled=False)

    outcome = await rewriter.execute("  what should I focus on  ", "planning")

    assert outcome.value == "what should I focus on"
    assert outcome.used_fallback is True
    assert complete.calls == []


def test_memory_template_embeds_message(tiers, fake_complete) -> None:
    rewriter = PromptRewriter(fake_complete(), tiers["rewriter"])
    assert rewriter.quick_rewrite("sở thích?", "memory") == "Recall relevant information about: sở thích?"
    assert rewriter.quick_rewrite("hi", "general") == "hi"


def test_is_clear_needs_length_and_indicator(tiers, fake_complete) -> None:
    rewriter = PromptRewriter(fake_complete(), tiers["rewriter"])
    assert rewriter.is_clear(CLEAR)
    assert not rewriter.is_clear("show tasks")
    assert not rewriter.is_clear("I wonder about the general state of my week and my plans overall")
