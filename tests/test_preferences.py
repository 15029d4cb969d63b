from datetime import timedelta

import pytest

from lifepilot.models.base import utcnow
from lifepilot.models.domain import Expense, StudyGoal, Task
from lifepilot.services.memory import MemoryStore
from lifepilot.services.preferences import UserPreferenceService


def _service(db, cache_hours: int = 6) -> UserPreferenceService:
    return UserPreferenceService(db, MemoryStore(db), cache_hours=cache_hours)


@pytest.mark.asyncio
async def test_empty_history_gives_neutral_summary(db) -> None:
    summary = await _service(db).build_summary()

    prefs = summary["preferences"]
    assert prefs["productivity_pattern"]["pattern"] == "unknown"
    assert prefs["spending_habits"]["spending_style"] == "unknown"
    assert prefs["study_preferences"]["consistency"] == "unknown"
    assert prefs["task_priorities"]["preferred_priority"] == "medium"
    assert prefs["work_style"] == {"style": "unknown"}
    assert summary["insights"] == [
        "You tend to focus on medium priority tasks.",
        "Your work style is developing",
    ]


@pytest.mark.asyncio
async def test_productivity_pattern_from_completion_hours(db) -> None:
    morning = utcnow().replace(hour=9, minute=15)
    evening = utcnow().replace(hour=20, minute=0)
    for stamp in [morning, morning, morning, evening]:
        db.add(Task(title="t", done=True, completed_at=stamp))
    await db.flush()

    service = _service(db)
    pattern = await service.detect_productivity_pattern()

    assert pattern["pattern"] == "morning_person"
    assert pattern["peak_hours"] == [9, 20]
    assert pattern["confidence"] == 1.0
    stored = await service.memory.get("preference_productivity_pattern")
    assert stored.category == "preferences"
    assert "hourly_distribution" not in stored.value


@pytest.mark.asyncio
async def test_spending_style(db) -> None:
    now = utcnow()
    for days_ago in (1, 2, 3):
        db.add(Expense(amount=30000, category="food", spent_at=now - timedelta(days=days_ago)))
    await db.flush()

    habits = await _service(db).detect_spending_habits()
    assert habits["spending_style"] == "consistent"
    assert habits["average_daily"] == 3000
    assert habits["top_categories"] == {"food": 90000}

    db.add(Expense(amount=500000, category="travel", spent_at=now - timedelta(days=4)))
    await db.flush()

    habits = await _service(db).detect_spending_habits()
    assert habits["spending_style"] == "variable"
    assert list(habits["top_categories"]) == ["travel", "food"]


@pytest.mark.asyncio
async def test_study_preferences_and_work_style(db) -> None:
    for progress in (80, 60, 10):
        db.add(StudyGoal(name=f"goal {progress}", study_type="course", progress=progress))
    for minutes in (30, 20, 45, 120):
        db.add(Task(title="t", estimated_minutes=minutes, priority="high", done=minutes < 40))
    await db.flush()

    service = _service(db)
    study = await service.detect_study_preferences()
    style = await service.detect_work_style()
    priorities = await service.detect_task_priorities()

    assert study["consistency"] == "medium"
    assert study["preferred_types"] == {"course": 3}
    assert study["average_progress_rate"] == 50.0
    assert style["style"] == "quick_wins"
    assert style["average_task_duration"] == 54
    assert priorities["preferred_priority"] == "high"
    assert priorities["completion_rate_by_priority"]["high"] == 50.0


@pytest.mark.asyncio
async def test_summary_is_cached_until_stale(db) -> None:
    service = _service(db)
    first = await service.get_summary()
    second = await service.get_summary()
    assert second["last_updated"] == first["last_updated"]

    cached = await service.memory.get("preference_summary")
    stale = (utcnow() - timedelta(hours=7)).isoformat()
    await service.memory.store(
        "preference_summary", {**cached.value, "last_updated": "old"},
        category="preferences", metadata={"cached_at": stale},
    )

    third = await service.get_summary()
    assert third["last_updated"] != "old"
