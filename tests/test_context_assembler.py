from datetime import date, timedelta

import pytest

from sqlalchemy import update

from lifepilot.core.pipeline_config import ContextConfig
from lifepilot.models.base import utcnow
from lifepilot.models.domain import Expense, StudyGoal, Task
from lifepilot.models.memory import LongTermMemory
from lifepilot.services.context import ContextAssembler, context_size
from lifepilot.services.memory import MemoryStore


class _BrokenPreferences:
    async def get_summary(self) -> dict:
        raise RuntimeError("preferences offline")


class _StaticPreferences:
    async def get_summary(self) -> dict:
        return {"insights": ["You tend to focus on high priority tasks."]}


async def _seed_domain(db, tasks: int = 3, expenses: int = 4) -> None:
    now = utcnow()
    for i in range(tasks):
        db.add(Task(
            title=f"Task {i} " + "x" * 40,
            priority=["low", "medium", "high"][i % 3],
            due_at=now.replace(hour=12, minute=0, second=0, microsecond=0),
            done=i == 0,
        ))
    for i in range(expenses):
        db.add(Expense(
            amount=10000 * (i + 1),
            category="food" if i % 2 else "transport",
            note="lunch " + "y" * 40,
            spent_at=now - timedelta(hours=i + 1),
        ))
    db.add(StudyGoal(name="Python", study_type="course", progress=60, deadline=date.today() + timedelta(days=10)))
    await db.flush()


@pytest.mark.asyncio
async def test_build_without_query_uses_legacy_memory_dump(db) -> None:
    await _seed_domain(db)
    memory = MemoryStore(db)
    await memory.store("favorite_color", "blue", category="general", content="favorite color blue")
    await memory.store("ignored", "x", category="insight", content="not general")

    bundle = await ContextAssembler(db, memory=memory, preferences=_StaticPreferences()).build()

    assert bundle["today"] == utcnow().date().isoformat()
    assert len(bundle["tasks_today"]) == 3
    assert bundle["tasks_today"][0]["priority"] == "high"
    assert bundle["expenses_7days"]["total"] == 100000
    assert list(bundle["expenses_7days"]["by_category"]) == ["food", "transport"]
    assert bundle["study_goals"][0]["name"] == "Python"
    assert bundle["long_term_memory"] == {"favorite_color": "blue"}
    assert "relevant_memories" not in bundle
    assert bundle["preferences"]["insights"]


@pytest.mark.asyncio
async def test_build_with_query_keeps_top_five_memories(db) -> None:
    memory = MemoryStore(db)
    for i in range(8):
        await memory.store(f"note_{i}", i, category="insight", content=f"study plan note {i}")

    bundle = await ContextAssembler(db, memory=memory, preferences=_StaticPreferences()).build("study plan")

    assert "long_term_memory" not in bundle
    assert len(bundle["relevant_memories"]) == 5
    assert all(m["key"].startswith("note_") for m in bundle["relevant_memories"])


@pytest.mark.asyncio
async def test_recently_used_memories_outrank_stale_high_scorers(db) -> None:
    memory = MemoryStore(db)
    for i in range(9):
        await memory.store(f"note_{i}", i, category="insight", content=f"study plan note {i}")
    await memory.store("archived", "old", category="insight", content="study plan note archived")

    async def age_archived() -> None:
        long_ago = utcnow() - timedelta(days=40)
        await db.execute(
            update(LongTermMemory)
            .where(LongTermMemory.key == "archived")
            .values(relevance_score=3.0, last_accessed_at=long_ago, updated_at=long_ago)
        )

    await age_archived()
    hits = await memory.search("study plan", limit=10)
    assert len(hits) == 10
    assert hits[0]["key"] == "archived"

    await age_archived()
    kept = await ContextAssembler(db, memory=memory, preferences=_StaticPreferences()).relevant_memories("study plan")

    assert len(kept) == 5
    assert "archived" not in [m["key"] for m in kept]
    scores = [m["final_score"] for m in kept]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_preference_failure_yields_empty_dict(db) -> None:
    bundle = await ContextAssembler(db, preferences=_BrokenPreferences()).build()
    assert bundle["preferences"] == {}


@pytest.mark.asyncio
async def test_preferences_are_computed_and_cached_by_default(db) -> None:
    await _seed_domain(db)
    assembler = ContextAssembler(db)

    first = await assembler.build()
    cached = await assembler.memory.get("preference_summary")

    assert set(first["preferences"]["preferences"]) == {
        "productivity_pattern", "spending_habits", "study_preferences",
        "task_priorities", "work_style",
    }
    assert cached is not None
    assert "cached_at" in cached.meta


@pytest.mark.asyncio
async def test_small_bundle_is_untouched(db) -> None:
    await _seed_domain(db, tasks=2, expenses=2)
    bundle = await ContextAssembler(db, preferences=_StaticPreferences()).build()
    assert len(bundle["tasks_today"]) == 2
    assert len(bundle["expenses_7days"]["items"]) == 2


@pytest.mark.asyncio
async def test_oversized_bundle_is_truncated_in_order(db) -> None:
    await _seed_domain(db, tasks=40, expenses=60)
    memory = MemoryStore(db)
    for i in range(6):
        await memory.store(f"general_{i}", "z" * 200, category="general", content=f"general {i}")

    config = ContextConfig(max_chars=8000)
    bundle = await ContextAssembler(db, config, memory=memory, preferences=_StaticPreferences()).build()

    assert len(bundle["long_term_memory"]) == 3
    assert len(bundle["tasks_today"]) == 10
    assert len(bundle["expenses_7days"]["items"]) == 20


def test_size_policy_stops_once_under_limit() -> None:
    assembler = ContextAssembler.__new__(ContextAssembler)
    assembler.config = ContextConfig(max_chars=1600)
    bundle = {
        "tasks_today": [{"title": "t"}] * 30,
        "expenses_7days": {"total": 0, "by_category": {}, "items": [{"a": 1}] * 40},
        "relevant_memories": [{"content": "m" * 150}] * 8,
    }

    result = assembler.apply_size_policy(bundle)

    assert len(result["relevant_memories"]) == 3
    assert len(result["tasks_today"]) == 30
    assert len(result["expenses_7days"]["items"]) == 40
    assert context_size(result) <= 1600


def test_size_policy_keeps_oversized_bundle_after_all_steps() -> None:
    assembler = ContextAssembler.__new__(ContextAssembler)
    assembler.config = ContextConfig(max_chars=100)
    bundle = {
        "tasks_today": [{"title": "t" * 50}] * 12,
        "expenses_7days": {"total": 0, "by_category": {}, "items": [{"a": 1}] * 25},
        "relevant_memories": [{"content": "m"}] * 4,
    }

    result = assembler.apply_size_policy(bundle)

    assert len(result["relevant_memories"]) == 3
    assert len(result["tasks_today"]) == 10
    assert len(result["expenses_7days"]["items"]) == 20


@pytest.mark.asyncio
async def test_daily_summary_shape(db) -> None:
    await _seed_domain(db, tasks=3, expenses=0)
    now = utcnow()
    today_noon = now.replace(hour=12, minute=0, second=0, microsecond=0)
    db.add(Expense(amount=25000, category="food", spent_at=today_noon.replace(hour=0, minute=30)))
    await db.flush()

    summary = await ContextAssembler(db, preferences=_StaticPreferences()).build_daily_summary()

    assert summary["date"] == now.date().isoformat()
    assert [t["done"] for t in summary["completed_tasks"]] == [True]
    assert summary["total_expenses"] == 25000
    assert len(summary["expenses_today"]) == 1


class _StaleSummaryStore(MemoryStore):
    """Never sees the cached summary row until it has tried to insert it."""

    def __init__(self, db) -> None:
        super().__init__(db)
        self.misses = 2

    async def get(self, key: str):
        if key == "preference_summary" and self.misses:
            self.misses -= 1
            return None
        return await super().get(key)


@pytest.mark.asyncio
async def test_summary_written_by_another_request_keeps_session_usable(db, session_factory) -> None:
    async with session_factory() as other:
        await MemoryStore(other).store("preference_summary", {"insights": []}, category="preferences")
        await MemoryStore(other).store("deep_work", "mornings", category="preference", content="deep work mornings")
        await other.commit()

    memory = _StaleSummaryStore(db)
    bundle = await ContextAssembler(db, memory=memory).build("deep work")

    assert "productivity_pattern" in bundle["preferences"]["preferences"]
    assert "deep_work" in [m["key"] for m in bundle["relevant_memories"]]
    await db.commit()
    assert (await memory.get("preference_summary")).value["insights"]
