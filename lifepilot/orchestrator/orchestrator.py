"""
Answer pipeline.

Message → intent → rewrite → context (build + compress) → memories →
reasoning → format → response.

Stages run strictly one after another. Each stage absorbs its own remote
failures with a local fallback; only reasoning can fail the pipeline, and
then the whole request is retried once on a direct path (full JSON context,
raw message). If that fails too, the user gets a fixed apology. chat()
never raises.
"""

import json
import logging
import time
from typing import Optional

from ..core.pipeline_config import PipelineConfig
from ..services.context import ContextAssembler, context_size
from .compressor import ContextCompressor
from .formatter import OutputFormatter
from .intent import Intent, IntentClassifier
from .memory_router import MemoryRouter
from .metrics import PipelineMetrics
from .reasoning import ReasoningStage
from .rewriter import PromptRewriter

logger = logging.getLogger(__name__)


class AssistantPipeline:

    def __init__(
        self,
        assembler: ContextAssembler,
        classifier: IntentClassifier,
        rewriter: PromptRewriter,
        compressor: ContextCompressor,
        router: MemoryRouter,
        reasoning: ReasoningStage,
        formatter: OutputFormatter,
        config: Optional[PipelineConfig] = None,
        smart: bool = True,
    ):
        self.assembler = assembler
        self.classifier = classifier
        self.rewriter = rewriter
        self.compressor = compressor
        self.router = router
        self.reasoning = reasoning
        self.formatter = formatter
        self.config = config or PipelineConfig()
        self.smart = smart

    async def chat(self, user_id: str, message: str, history: Optional[list[dict]] = None) -> dict:
        """
        Answer one message. Returns {"response", "metrics", "intent"}.
        """
        history = history or []
        if not self.smart:
            return await self.direct(message, history, metrics={"direct": True})

        logger.info(
            "Pipeline start: user=%s message=%r history=%d",
            user_id, message[:100], len(history),
        )
        try:
            return await self._run(user_id, message, history)
        except Exception as e:
            logger.error("Pipeline failed, using direct fallback: %s", e, exc_info=True)
            return await self.direct(message, history, metrics={"fallback": True})

    async def _run(self, user_id: str, message: str, history: list[dict]) -> dict:
        start = time.monotonic()
        metrics = PipelineMetrics(baseline_tokens=self.config.baseline_tokens)

        # 1. Intent
        outcome = await self.classifier.execute(message)
        intent: Intent = outcome.value
        metrics.record("intent", outcome, result=intent.value)

        # 2. Rewrite
        outcome = await self.rewriter.execute(message, intent.value)
        prompt = outcome.value
        metrics.record("rewrite", outcome, original=message, rewritten=prompt)

        # 3. Context build + compress
        build_start = time.monotonic()
        bundle = await self.assembler.build(query=message)
        build_ms = int((time.monotonic() - build_start) * 1000)
        outcome = await self.compressor.execute(bundle, intent.value)
        context = outcome.value
        outcome.elapsed_ms += build_ms
        metrics.record(
            "compression", outcome,
            original_size=context_size(bundle), compressed_size=len(context),
        )

        # 4. Memories for this intent
        outcome = await self.router.execute(message, intent.value, user_id)
        memories = outcome.value
        if memories:
            context += "\n\nRELEVANT MEMORIES:\n" + json.dumps(memories, ensure_ascii=False, indent=2)
        metrics.record("memory", outcome, memories_count=len(memories))

        # 5. Reasoning (raises on failure)
        outcome = await self.reasoning.execute(prompt, context, history)
        raw = outcome.value
        metrics.record(
            "reasoning", outcome,
            response_length=len(raw),
            within_budget=self.reasoning.is_within_budget(prompt, context),
        )

        # 6. Format
        outcome = await self.formatter.execute(raw, intent.value)
        response = outcome.value
        metrics.record("formatting", outcome, original_length=len(raw), formatted_length=len(response))

        metrics.total_elapsed_ms = int((time.monotonic() - start) * 1000)
        result = metrics.to_dict()
        result["pipeline_version"] = self.config.version
        logger.info(
            "Pipeline done: intent=%s %dms ~%d tokens (saved ~%d) fallbacks=%s",
            intent.value, metrics.total_elapsed_ms, metrics.total_tokens,
            metrics.token_savings, metrics.fallbacks or "none",
        )
        return {"response": response, "metrics": result, "intent": intent.value}

    async def direct(self, message: str, history: list[dict], metrics: dict) -> dict:
        """One reasoning call with the raw message and the full JSON context."""
        try:
            bundle = await self.assembler.build()
            context = json.dumps(bundle, ensure_ascii=False, default=str)
            response = await self.reasoning.ask(message, context, history)
            return {"response": response, "metrics": metrics, "intent": Intent.GENERAL.value}
        except Exception as e:
            logger.error("Direct path failed: %s", e)
            return {
                "response": self.config.apology_message,
                "metrics": {"error": True},
                "intent": Intent.GENERAL.value,
            }
