"""
Memory API.

POST   /v1/memory/store                - Upsert a memory by key
POST   /v1/memory/search               - Ranked similarity search
GET    /v1/memory/statistics           - Counts by category and activity
GET    /v1/memory/long-term            - Every memory, by key
GET    /v1/memory/long-term/{key}      - One memory by key
GET    /v1/memory/category/{category}  - Most relevant memories of a category
POST   /v1/memory/{memory_id}/boost    - Raise a memory's relevance
DELETE /v1/memory/clean-old            - Purge stale, low-relevance memories
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select

from ..core.dependencies import get_memory_store
from ..models.memory import LongTermMemory
from ..services.memory import MemoryStore, memory_to_dict

logger = logging.getLogger(__name__)

memory_router = APIRouter(prefix="/memory", tags=["memory"])


class StoreRequest(BaseModel):
    key: str = Field(min_length=1, max_length=255)
    value: Any = None
    category: str = "general"
    content: str = ""
    metadata: dict = {}


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=50)
    categories: Optional[list[str]] = None


class BoostRequest(BaseModel):
    amount: float = Field(default=0.1, ge=0, le=1)


class MemoryOut(BaseModel):
    id: str
    key: str
    value: Any = None
    content: str = ""
    category: str
    relevance_score: float
    last_accessed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: dict = {}
    similarity_score: Optional[float] = None
    final_score: Optional[float] = None


class SearchResponse(BaseModel):
    results: list[MemoryOut]
    count: int


@memory_router.post("/store", response_model=MemoryOut)
async def store_memory(request: StoreRequest, memory: MemoryStore = Depends(get_memory_store)):
    record = await memory.store(
        request.key,
        request.value,
        category=request.category,
        content=request.content,
        metadata=request.metadata,
    )
    return MemoryOut(**memory_to_dict(record))


@memory_router.post("/search", response_model=SearchResponse)
async def search_memories(request: SearchRequest, memory: MemoryStore = Depends(get_memory_store)):
    results = await memory.search(request.query, limit=request.limit, categories=request.categories)
    return SearchResponse(results=[MemoryOut(**r) for r in results], count=len(results))


@memory_router.get("/statistics")
async def memory_statistics(memory: MemoryStore = Depends(get_memory_store)):
    return await memory.get_statistics()


@memory_router.get("/long-term", response_model=list[MemoryOut])
async def long_term_memories(limit: int = 200, memory: MemoryStore = Depends(get_memory_store)):
    records = await memory.list_all(limit=min(max(limit, 1), 1000))
    return [MemoryOut(**memory_to_dict(r)) for r in records]


@memory_router.get("/long-term/{key}", response_model=MemoryOut)
async def memory_by_key(key: str, memory: MemoryStore = Depends(get_memory_store)):
    record = await memory.get(key)
    if record is None:
        raise HTTPException(status_code=404, detail="Memory not found")
    return MemoryOut(**memory_to_dict(record))


@memory_router.get("/category/{category}", response_model=list[MemoryOut])
async def memories_by_category(
    category: str,
    limit: int = 20,
    memory: MemoryStore = Depends(get_memory_store),
):
    records = await memory.get_by_category(category, limit=min(max(limit, 1), 100))
    return [MemoryOut(**memory_to_dict(r)) for r in records]


@memory_router.post("/{memory_id}/boost")
async def boost_memory(
    memory_id: str,
    request: Optional[BoostRequest] = None,
    memory: MemoryStore = Depends(get_memory_store),
):
    exists = await memory.db.scalar(select(LongTermMemory.id).where(LongTermMemory.id == memory_id))
    if exists is None:
        raise HTTPException(status_code=404, detail="Memory not found")

    amount = request.amount if request else 0.1
    await memory.boost_relevance(memory_id, amount)
    score = await memory.db.scalar(
        select(LongTermMemory.relevance_score).where(LongTermMemory.id == memory_id)
    )
    return {"id": memory_id, "relevance_score": score}


@memory_router.delete("/clean-old")
async def clean_old_memories(days: int = 90, memory: MemoryStore = Depends(get_memory_store)):
    if days < 1:
        raise HTTPException(status_code=400, detail="days must be at least 1")
    deleted = await memory.clean_old_memories(days)
    return {"deleted": deleted, "days_unused": days}
