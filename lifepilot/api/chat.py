"""
Assistant API.

POST /v1/chat                    - Answer a message through the pipeline
GET  /v1/assistant/daily-plan    - Timeline for today from the full context
GET  /v1/assistant/daily-summary - Narrated summary of today
"""

import json
import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..core.dependencies import (
    get_complete,
    get_feature_flags,
    get_memory_store,
    get_pipeline,
)
from ..core.flags import FeatureFlags
from ..orchestrator.base_stage import CompleteFn
from ..orchestrator.orchestrator import AssistantPipeline
from ..services.context import ContextAssembler
from ..services.llm import CompletionError, tiers_from_settings
from ..services.memory import MemoryStore
from ..services.memory_updater import MemoryUpdater

logger = logging.getLogger(__name__)

chat_router = APIRouter(tags=["assistant"])

ASSISTANT_SYSTEM = """Bạn là Life Manager AI - trợ lý cá nhân thông minh giúp quản lý cuộc sống.

CONTEXT HIỆN TẠI:
{context}

NHIỆM VỤ:
- Giúp lập kế hoạch ngày hiệu quả
- Theo dõi và phân tích chi tiêu
- Hỗ trợ học tập và phát triển
- Đưa ra lời khuyên dựa trên dữ liệu

HÃY TRẢ LỜI BẰNG TIẾNG VIỆT, NGẮN GỌN VÀ CỤ THỂ."""

DAILY_PLAN_PROMPT = (
    "Dựa trên thông tin hiện tại, hãy tạo một kế hoạch chi tiết cho ngày hôm nay. "
    "Bao gồm timeline cụ thể cho từng task."
)

DAILY_SUMMARY_PROMPT = (
    "Hãy tạo một bản tóm tắt về ngày hôm nay, bao gồm những gì đã hoàn thành, "
    "chi tiêu, và đánh giá tổng quan."
)


class HistoryTurn(BaseModel):
    role: Literal["user", "assistant"] = "user"
    content: str = ""


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    history: list[HistoryTurn] = []
    user_id: str = "default"


class ChatResponse(BaseModel):
    response: str
    intent: str
    metrics: dict = {}


class DailyPlanResponse(BaseModel):
    plan: str


class DailySummaryResponse(BaseModel):
    summary: str
    data: dict


@chat_router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    pipeline: AssistantPipeline = Depends(get_pipeline),
    memory: MemoryStore = Depends(get_memory_store),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    """Answer a message. Never fails on model outages; see metrics for fallbacks."""
    result = await pipeline.chat(
        user_id=request.user_id,
        message=request.message,
        history=[turn.model_dump() for turn in request.history],
    )

    if flags.extract_conversation_memories and not result["metrics"].get("error"):
        await _remember_turn(memory, request.message, result["response"])

    return ChatResponse(
        response=result["response"],
        intent=result["intent"],
        metrics=result["metrics"],
    )


@chat_router.get("/assistant/daily-plan", response_model=DailyPlanResponse)
async def daily_plan(
    memory: MemoryStore = Depends(get_memory_store),
    complete: CompleteFn = Depends(get_complete),
):
    """Plan today with a per-task timeline through the reasoning tier."""
    context = await ContextAssembler(memory.db, memory=memory).build()
    try:
        plan = await complete(_assistant_messages(context, DAILY_PLAN_PROMPT), tiers_from_settings()["reasoning"])
    except CompletionError as e:
        logger.error("Daily plan failed: %s", e)
        raise HTTPException(status_code=502, detail="Failed to generate daily plan")
    return DailyPlanResponse(plan=plan)


@chat_router.get("/assistant/daily-summary", response_model=DailySummaryResponse)
async def daily_summary(
    memory: MemoryStore = Depends(get_memory_store),
    complete: CompleteFn = Depends(get_complete),
):
    """Summarize today's completed tasks and spending through the reasoning tier."""
    data = await ContextAssembler(memory.db, memory=memory).build_daily_summary()
    try:
        summary = await complete(_assistant_messages(data, DAILY_SUMMARY_PROMPT), tiers_from_settings()["reasoning"])
    except CompletionError as e:
        logger.error("Daily summary failed: %s", e)
        raise HTTPException(status_code=502, detail="Failed to generate daily summary")

    await memory.store(
        f"daily_summary_{data['date']}",
        {"summary": summary, "completed_tasks": len(data["completed_tasks"]),
         "total_expenses": data["total_expenses"]},
        category="insight",
        content=summary,
        metadata={"source": "daily_summary"},
    )
    return DailySummaryResponse(summary=summary, data=data)


def _assistant_messages(context: dict, prompt: str) -> list[dict]:
    return [
        {"role": "system", "content": ASSISTANT_SYSTEM.format(
            context=json.dumps(context, ensure_ascii=False, indent=2, default=str),
        )},
        {"role": "user", "content": prompt},
    ]


async def _remember_turn(memory: MemoryStore, message: str, response: str) -> None:
    """Keep the turn and any stated preference. Failures are rolled back and logged."""
    updater = MemoryUpdater(memory)
    try:
        async with memory.db.begin_nested():
            await updater.store_conversation(message, response)
            await updater.update_from_conversation(message, response)
    except Exception as e:
        logger.warning("Conversation memory extraction failed: %s", e)
