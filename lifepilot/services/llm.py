"""
Completion client for the OpenAI-compatible chat endpoint (Groq by default).

Features:
  - One model tier per pipeline stage (model, timeout, max_tokens, temperature)
  - Optional retry with exponential backoff + jitter (429, 500, 502, 503, 504)
  - Reusable client (connection pooling)
  - Token counting (chars / 4 approximation)
  - Usage recorded per model for the metrics endpoints

Every failure mode (timeout, non-2xx, malformed JSON, empty content) surfaces
as CompletionError so callers have exactly one thing to catch.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..core.config import Settings, get_settings
from .usage import get_usage_tracker

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """The completion service gave no usable answer."""


@dataclass(frozen=True)
class ModelTier:
    name: str
    model: str
    timeout: float
    max_tokens: int
    temperature: float


def tiers_from_settings(settings: Optional[Settings] = None) -> dict[str, ModelTier]:
    """Stage name → tier. Models come from settings; budgets are fixed per stage."""
    s = settings or get_settings()
    return {
        "intent": ModelTier("intent", s.intent_model, timeout=10, max_tokens=50, temperature=0.1),
        "rewriter": ModelTier("rewriter", s.rewriter_model, timeout=15, max_tokens=200, temperature=0.3),
        "compressor": ModelTier("compressor", s.compressor_model, timeout=20, max_tokens=400, temperature=0.2),
        "reasoning": ModelTier("reasoning", s.reasoning_model, timeout=45, max_tokens=1536, temperature=0.7),
        "formatter": ModelTier("formatter", s.formatter_model, timeout=20, max_tokens=1024, temperature=0.3),
    }


# ── Reusable client (connection pool) ────────────────────────────────

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10, read=45, write=15, pool=10),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        )
    return _client


async def close_client():
    """Close the shared HTTP client. Call on app shutdown."""
    global _client
    if _client and not _client.is_closed:
        await _client.aclose()
        _client = None


# ── Retry logic ──────────────────────────────────────────────────────

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
BASE_DELAY = 1.0
MAX_DELAY = 8.0


async def _retry_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    max_retries: int = 0,
    **kwargs,
) -> httpx.Response:
    """Execute request with exponential backoff + jitter. Raises httpx errors."""
    for attempt in range(max_retries + 1):
        final = attempt == max_retries
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            if final:
                raise
            delay = min(MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1))
            logger.warning(
                "LLM timeout (attempt %d/%d), retrying in %.1fs",
                attempt + 1, max_retries + 1, delay,
            )
            await asyncio.sleep(delay)
            continue

        if resp.status_code in RETRYABLE_STATUS and not final:
            retry_after = resp.headers.get("retry-after")
            delay = float(retry_after) if retry_after else min(
                MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1)
            )
            logger.warning(
                "LLM %d (attempt %d/%d), retrying in %.1fs",
                resp.status_code, attempt + 1, max_retries + 1, delay,
            )
            await asyncio.sleep(delay)
            continue

        if resp.status_code >= 400:
            logger.error("LLM API error %d: %s", resp.status_code, resp.text[:500])
        resp.raise_for_status()
        return resp

    raise RuntimeError("unreachable")


# ── Completion ───────────────────────────────────────────────────────

async def complete(
    messages: list[dict],
    tier: ModelTier,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    One chat completion on `tier`. Returns the trimmed reply text.

    Raises CompletionError when the key is missing, the call fails or times
    out, the body is not the expected JSON, or the reply is empty.
    """
    settings = settings or get_settings()
    if not settings.groq_api_key:
        raise CompletionError("GROQ_API_KEY is not set")

    payload: dict[str, Any] = {
        "model": tier.model,
        "messages": messages,
        "temperature": tier.temperature,
        "max_tokens": tier.max_tokens,
    }
    url = f"{settings.groq_base_url.rstrip('/')}/chat/completions"
    headers = {
        "Authorization": f"Bearer {settings.groq_api_key}",
        "Content-Type": "application/json",
    }

    tracker = get_usage_tracker()
    start = time.monotonic()
    try:
        resp = await _retry_request(
            client or _get_client(), "POST", url,
            max_retries=settings.llm_max_retries,
            json=payload, headers=headers, timeout=tier.timeout,
        )
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        tracker.record(tier.model, ok=False)
        logger.warning(
            "LLM %s failed after %dms (model=%s): %s",
            tier.name, int((time.monotonic() - start) * 1000), tier.model, e,
        )
        raise CompletionError(f"{tier.name}: {e}") from e

    elapsed_ms = int((time.monotonic() - start) * 1000)
    usage = (data.get("usage") or {}) if isinstance(data, dict) else {}
    tracker.record(
        tier.model,
        prompt_tokens=usage.get("prompt_tokens", 0),
        completion_tokens=usage.get("completion_tokens", 0),
        ok=True,
    )
    logger.info(
        "LLM %s: %dms | in=%d out=%d tokens | model=%s",
        tier.name, elapsed_ms,
        usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0), tier.model,
    )

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise CompletionError(f"{tier.name}: malformed response") from e

    text = (content or "").strip() if isinstance(content, str) else ""
    if not text:
        raise CompletionError(f"{tier.name}: empty reply")
    return text


# ── Token estimation ─────────────────────────────────────────────────

def estimate_tokens(text: str) -> int:
    """
    Estimate token count without a tokenizer.
    Rule of thumb: ~4 chars per token.
    """
    return len(text or "") // 4


def estimate_messages_tokens(messages: list[dict]) -> int:
    """Estimate total tokens across the message contents."""
    return sum(len(msg.get("content") or "") for msg in messages) // 4
