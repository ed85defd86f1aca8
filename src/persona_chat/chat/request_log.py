"""Audit log of model calls with token usage and estimated cost."""

from __future__ import annotations

from typing import Any, Protocol

from persona_chat.chat.types import RequestContext
from persona_chat.utils.logging import get_logger

log = get_logger(__name__)

# USD per 1M tokens as (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "gpt-4-turbo": (10.00, 30.00),
    "gpt-3.5-turbo": (0.50, 1.50),
}
DEFAULT_PRICING_MODEL = "gpt-4o-mini"


def _pricing_for(model: str) -> tuple[float, float]:
    if model in MODEL_PRICING:
        return MODEL_PRICING[model]
    # Dated snapshots such as gpt-4o-2024-08-06; longest prefix wins
    for name in sorted(MODEL_PRICING, key=len, reverse=True):
        if model.startswith(name):
            return MODEL_PRICING[name]
    return MODEL_PRICING[DEFAULT_PRICING_MODEL]


def estimate_price(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Estimate the USD cost of a call. Unknown models are priced as gpt-4o-mini."""
    input_price, output_price = _pricing_for(model)
    return (prompt_tokens * input_price + completion_tokens * output_price) / 1_000_000


class RequestLogStore(Protocol):
    async def add_request_log(
        self,
        context: RequestContext,
        model: str,
        request: dict[str, Any],
        response: dict[str, Any],
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        total_tokens: int = 0,
        estimated_price: float = 0.0,
    ) -> int: ...


class RequestLogger:
    """Writes one request log row per model call.

    Logging never fails the call it describes: a write error is logged
    and dropped.

    Args:
        store: Storage for request log rows.
    """

    def __init__(self, store: RequestLogStore) -> None:
        self.store = store

    async def record(
        self,
        context: RequestContext,
        request: dict[str, Any],
        response: dict[str, Any],
    ) -> None:
        """Record a call from its provider payload and response."""
        usage = response.get("usage") or {}
        prompt_tokens = int(usage.get("prompt_tokens") or 0)
        completion_tokens = int(usage.get("completion_tokens") or 0)
        total_tokens = int(usage.get("total_tokens") or prompt_tokens + completion_tokens)
        model = request.get("model") or response.get("model") or DEFAULT_PRICING_MODEL

        try:
            await self.store.add_request_log(
                context,
                model=model,
                request=request,
                response=response,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=total_tokens,
                estimated_price=estimate_price(model, prompt_tokens, completion_tokens),
            )
        except Exception as e:
            log.warning(
                "Request log write failed",
                kind=context.kind.value,
                model=model,
                error=str(e),
            )
