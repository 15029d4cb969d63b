"""
Metrics API.

GET /v1/metrics/rate-limits - Published limits per model
GET /v1/metrics/usage       - This process's usage against those limits
GET /v1/metrics/pipeline    - Tier layout of the answer pipeline
"""

from fastapi import APIRouter, Depends

from ..core.dependencies import get_feature_flags
from ..core.flags import FeatureFlags
from ..orchestrator.registry import pipeline_stats
from ..services.usage import RATE_LIMITS, get_usage_tracker

metrics_router = APIRouter(prefix="/metrics", tags=["metrics"])


@metrics_router.get("/rate-limits")
async def rate_limits():
    return {"models": RATE_LIMITS}


@metrics_router.get("/usage")
async def usage():
    return {"models": get_usage_tracker().snapshot()}


@metrics_router.get("/pipeline")
async def pipeline(flags: FeatureFlags = Depends(get_feature_flags)):
    return pipeline_stats(flags=flags)
