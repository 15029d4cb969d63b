import pytest

from lifepilot.orchestrator.intent import Intent, IntentClassifier
from lifepilot.services.llm import CompletionError


@pytest.mark.asyncio
async def test_remote_reply_is_normalized(tiers, fake_complete) -> None:
    complete = fake_complete({"intent": " Expense.\n"})
    classifier = IntentClassifier(complete, tiers["intent"])

    outcome = await classifier.execute("Tháng này tôi tiêu bao nhiêu?")

    assert outcome.value is Intent.EXPENSE
    assert outcome.used_fallback is False
    assert outcome.estimated_tokens > 0
    assert complete.called("intent") == 1


@pytest.mark.asyncio
async def test_unknown_reply_falls_back_to_keywords(tiers, fake_complete) -> None:
    classifier = IntentClassifier(fake_complete({"intent": "weather"}), tiers["intent"])

    outcome = await classifier.execute("Tôi có task gì hôm nay?")

    assert outcome.value is Intent.TASK
    assert outcome.used_fallback is True


@pytest.mark.asyncio
async def test_service_failure_falls_back_to_keywords(tiers, fake_complete) -> None:
    complete = fake_complete({"intent": CompletionError("timeout")})
    classifier = IntentClassifier(complete, tiers["intent"])

    assert await classifier.classify("Chi tiêu tuần này thế nào?") is Intent.EXPENSE


@pytest.mark.asyncio
async def test_disabled_classifier_never_calls_remote(tiers, fake_complete) -> None:
    complete = fake_complete({"intent": "study"})
    classifier = IntentClassifier(complete, tiers["intent"], enabled=False)

    outcome = await classifier.execute("Bạn còn nhớ sở thích của tôi không?")

    assert outcome.value is Intent.MEMORY
    assert outcome.used_fallback is True
    assert outcome.estimated_tokens == 0
    assert complete.calls == []


@pytest.mark.parametrize("message, expected", [
    ("Tôi có task gì hôm nay?", Intent.TASK),
    ("Tiến độ học của tôi thế nào?", Intent.STUDY),
    ("Ngân sách tháng này còn bao nhiêu?", Intent.EXPENSE),
    ("Giúp tôi lên kế hoạch cuối tuần", Intent.PLANNING),
    ("What insight did you save?", Intent.MEMORY),
    ("hello there", Intent.GENERAL),
])
def test_keyword_classifier(tiers, fake_complete, message, expected) -> None:
    classifier = IntentClassifier(fake_complete(), tiers["intent"])
    assert classifier.fallback_classify(message) is expected


def test_keyword_order_decides_ties(tiers, fake_complete) -> None:
    # "task" is checked before "budget"
    classifier = IntentClassifier(fake_complete(), tiers["intent"])
    assert classifier.fallback_classify("budget task for tomorrow") is Intent.TASK


@pytest.mark.asyncio
async def test_classify_multiple_orders_and_dedupes(tiers, fake_complete) -> None:
    classifier = IntentClassifier(fake_complete({"intent": "planning"}), tiers["intent"])
    assert await classifier.classify_multiple("task list please") == [
        Intent.PLANNING, Intent.TASK, Intent.GENERAL,
    ]

    classifier = IntentClassifier(fake_complete({"intent": "task"}), tiers["intent"])
    assert await classifier.classify_multiple("task list please") == [Intent.TASK, Intent.GENERAL]


def test_prompt_lists_every_intent(tiers, fake_complete) -> None:
    prompt = IntentClassifier(fake_complete(), tiers["intent"]).build_prompt()
    for intent in Intent:
        assert f"- {intent.value}:" in prompt
    assert "or general" in prompt
