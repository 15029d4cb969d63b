import pytest
from sqlalchemy.exc import SQLAlchemyError

from lifepilot.orchestrator.memory_router import MemoryRouter
from lifepilot.services.memory import MemoryStore


class _BrokenStore:
    async def search(self, *args, **kwargs):
        raise SQLAlchemyError("database is locked")


def test_categories_and_limits_per_intent() -> None:
    router = MemoryRouter(memory=None)

    assert router.categories_for("task") == ["preference", "task_pattern", "productivity"]
    assert router.categories_for("memory") == []
    assert router.limit_for("planning") == 3
    assert router.limit_for("memory") == 5
    assert router.limit_for("unknown") == 2
    assert router.memory_stats("expense") == {
        "total_relevant_categories": 3,
        "categories": ["expense", "budget", "finance"],
        "limit": 2,
    }


@pytest.mark.asyncio
async def test_route_restricts_categories_and_projects_results(db) -> None:
    store = MemoryStore(db)
    await store.store("deep_work", "mornings", category="preference", content="prefers deep work mornings")
    await store.store("coffee", 30000, category="expense", content="coffee every morning")

    outcome = await MemoryRouter(store).execute("morning focus", "task", "user-1")

    assert outcome.used_fallback is False
    assert outcome.value == [
        {"content": "prefers deep work mornings", "category": "preference", "relevance": 1.0},
    ]
    assert outcome.estimated_tokens > 0


@pytest.mark.asyncio
async def test_memory_intent_searches_every_category(db) -> None:
    store = MemoryStore(db)
    for i, category in enumerate(["preference", "expense", "study", "insight", "goal", "general"]):
        await store.store(f"m{i}", i, category=category, content=f"note about topic {category}")

    memories = await MemoryRouter(store).route("note about topic", "memory")

    assert len(memories) == 5
    assert len({m["category"] for m in memories}) == 5


@pytest.mark.asyncio
async def test_database_error_yields_no_memories() -> None:
    outcome = await MemoryRouter(_BrokenStore()).execute("anything", "general")

    assert outcome.value == []
    assert outcome.used_fallback is True
    assert outcome.estimated_tokens == 0
