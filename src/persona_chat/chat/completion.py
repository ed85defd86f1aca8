"""Language model invocation and provider error classification."""

from __future__ import annotations

from typing import Any, Sequence

from persona_chat.chat.persona import AgentConfig
from persona_chat.chat.request_log import RequestLogger
from persona_chat.chat.types import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    RequestContext,
    Role,
)
from persona_chat.errors import (
    ModelFailureKind,
    ModelInvocationError,
    NoModelResponseError,
    PersonaChatError,
)
from persona_chat.utils.logging import get_logger
from persona_chat.utils.openai_clients import OpenAIClientPool

log = get_logger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7

_UNAVAILABLE_STATUSES = {500, 502, 503}


def build_request(
    messages: Sequence[ChatMessage],
    config: AgentConfig,
    default_model: str = DEFAULT_MODEL,
    default_temperature: float = DEFAULT_TEMPERATURE,
) -> CompletionRequest:
    """Build a completion request from an assembled prompt and agent config."""
    return CompletionRequest(
        model=config.model or default_model,
        messages=list(messages),
        temperature=config.temperature if config.temperature is not None else default_temperature,
        max_tokens=config.max_tokens,
    )


def classify_model_error(exc: BaseException) -> ModelFailureKind:
    """Classify a provider exception.

    Checks, in order: invalid credential (401, ``invalid_api_key`` or an
    "API key" message), rate limiting (429, ``rate_limit_exceeded`` or a
    "rate limit" message), malformed request (400 or
    ``invalid_request_error``), provider unavailable (500/502/503 or a
    connection failure). Anything else is UNKNOWN.
    """
    from openai import APIConnectionError

    status = getattr(exc, "status_code", None)
    code = getattr(exc, "code", None)
    message = str(getattr(exc, "message", None) or exc)

    if status == 401 or code == "invalid_api_key" or "API key" in message:
        return ModelFailureKind.INVALID_CREDENTIAL
    if status == 429 or code == "rate_limit_exceeded" or "rate limit" in message.lower():
        return ModelFailureKind.RATE_LIMITED
    if status == 400 or code == "invalid_request_error" or "Invalid request" in message:
        return ModelFailureKind.MALFORMED_REQUEST
    if status in _UNAVAILABLE_STATUSES or isinstance(exc, APIConnectionError):
        return ModelFailureKind.PROVIDER_UNAVAILABLE
    return ModelFailureKind.UNKNOWN


def _first_choice_text(completion: Any) -> str | None:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None) if message is not None else None


class CompletionInvoker:
    """Sends prompts to the chat completions endpoint.

    No retries are attempted; a failed call surfaces as a typed error.
    Every call the provider answers is written to the request log, when
    one is configured, before the reply is inspected.

    Args:
        clients: Pool handing out one AsyncOpenAI client per credential.
        request_log: Optional audit log of model calls.
    """

    def __init__(
        self,
        clients: OpenAIClientPool,
        request_log: RequestLogger | None = None,
    ) -> None:
        self.clients = clients
        self.request_log = request_log

    async def invoke(
        self,
        credential: str,
        request: CompletionRequest,
        context: RequestContext | None = None,
    ) -> CompletionResult:
        """Call the model.

        Args:
            credential: Provider API key.
            request: Model, messages and sampling settings.
            context: Who the call is billed to and what it is for.

        Returns:
            Reply text and the full provider response.

        Raises:
            ModelInvocationError: If the provider call fails.
            NoModelResponseError: If the reply carries no text.
        """
        client = self.clients.get(credential)
        payload = request.to_dict()
        log.debug("Calling model", model=request.model, messages=len(request.messages))

        try:
            completion = await client.chat.completions.create(**payload)
        except PersonaChatError:
            raise
        except Exception as e:
            kind = classify_model_error(e)
            status = getattr(e, "status_code", None)
            log.error(
                "Model call failed",
                model=request.model,
                kind=kind.value,
                status_code=status,
                error=str(e),
            )
            raise ModelInvocationError(kind, str(e), status_code=status) from e

        raw = completion.model_dump(mode="json")
        if self.request_log is not None:
            await self.request_log.record(context or RequestContext(), payload, raw)

        text = _first_choice_text(completion)
        if not text:
            log.error("Model returned no text", model=request.model)
            raise NoModelResponseError(request.model)

        log.debug("Model call succeeded", model=request.model, length=len(text))
        return CompletionResult(text=text, raw_completion=raw)

    async def complete_text(
        self,
        credential: str,
        system: str,
        user: str,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int | None = None,
        response_format: dict[str, Any] | None = None,
        context: RequestContext | None = None,
    ) -> str:
        """Single-shot system + user prompt, returning the reply text."""
        request = CompletionRequest(
            model=model,
            messages=[
                ChatMessage(role=Role.SYSTEM, content=system),
                ChatMessage(role=Role.USER, content=user),
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            response_format=response_format,
        )
        result = await self.invoke(credential, request, context)
        return result.text
