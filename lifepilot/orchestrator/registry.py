"""
Pipeline wiring. Builds the stages for one request from settings and flags.
"""

from functools import partial
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, get_settings
from ..core.flags import FeatureFlags, get_flags
from ..core.pipeline_config import PipelineConfig, build_pipeline_config
from ..services import llm
from ..services.context import ContextAssembler
from ..services.memory import MemoryStore
from .base_stage import CompleteFn
from .compressor import ContextCompressor
from .formatter import OutputFormatter
from .intent import IntentClassifier
from .memory_router import MemoryRouter
from .orchestrator import AssistantPipeline
from .reasoning import ReasoningStage
from .rewriter import PromptRewriter

STAGE_ROLES = {
    "intent": "Intent classification",
    "rewriter": "Prompt rewriting",
    "compressor": "Context compression",
    "reasoning": "Main reasoning",
    "formatter": "Output formatting",
}


def build_pipeline(
    db: AsyncSession,
    settings: Optional[Settings] = None,
    flags: Optional[FeatureFlags] = None,
    complete: Optional[CompleteFn] = None,
    config: Optional[PipelineConfig] = None,
) -> AssistantPipeline:
    """One pipeline per request: stages share the request's DB session."""
    settings = settings or get_settings()
    flags = flags or get_flags()
    config = config or build_pipeline_config(settings)
    complete = complete or partial(llm.complete, settings=settings)
    tiers = llm.tiers_from_settings(settings)

    memory = MemoryStore(db, config.memory)
    return AssistantPipeline(
        assembler=ContextAssembler(db, config.context, memory=memory),
        classifier=IntentClassifier(
            complete, tiers["intent"], config.classifier, enabled=flags.use_remote_classifier,
        ),
        rewriter=PromptRewriter(
            complete, tiers["rewriter"], config.rewriter, enabled=flags.use_remote_rewriter,
        ),
        compressor=ContextCompressor(
            complete, tiers["compressor"], config.compressor, enabled=flags.use_remote_compressor,
        ),
        router=MemoryRouter(memory, config.router),
        reasoning=ReasoningStage(complete, tiers["reasoning"], config.reasoning),
        formatter=OutputFormatter(
            complete, tiers["formatter"], config.formatter, enabled=flags.use_remote_formatter,
        ),
        config=config,
        smart=flags.use_smart_pipeline,
    )


def pipeline_stats(settings: Optional[Settings] = None, flags: Optional[FeatureFlags] = None) -> dict:
    """Static description of the tiers, for the metrics endpoint."""
    settings = settings or get_settings()
    flags = flags or get_flags()
    tiers = llm.tiers_from_settings(settings)
    return {
        "pipeline": "FreeTier Multi-Model",
        "version": build_pipeline_config(settings).version,
        "smart_pipeline": flags.use_smart_pipeline,
        "layers": 6,
        "models": {
            name: {
                "model": tier.model,
                "role": STAGE_ROLES[name],
                "timeout_s": tier.timeout,
                "max_tokens": tier.max_tokens,
                "temperature": tier.temperature,
            }
            for name, tier in tiers.items()
        },
        "remote_stages": {
            "intent": flags.use_remote_classifier,
            "rewriter": flags.use_remote_rewriter,
            "compressor": flags.use_remote_compressor,
            "formatter": flags.use_remote_formatter,
        },
        "expected_tokens_per_request": "400-900",
        "baseline_tokens": settings.baseline_tokens,
    }
