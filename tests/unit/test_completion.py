"""Unit tests for model invocation and error classification."""

from unittest.mock import MagicMock

import httpx
import openai
import pytest

from persona_chat.chat.completion import CompletionInvoker, build_request, classify_model_error
from persona_chat.chat.request_log import RequestLogger
from persona_chat.chat.persona import AgentConfig
from persona_chat.chat.types import (
    ChatMessage,
    CompletionRequest,
    RequestContext,
    RequestKind,
    Role,
)
from persona_chat.errors import (
    ErrorCode,
    ModelFailureKind,
    ModelInvocationError,
    NoModelResponseError,
)
from persona_chat.storage.sqlite_store import SQLiteChatStore
from persona_chat.utils.openai_clients import OpenAIClientPool

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _status_error(cls: type[openai.APIStatusError], status: int, message: str) -> openai.APIStatusError:
    return cls(message, response=httpx.Response(status, request=REQUEST), body=None)


class FakeProviderError(Exception):
    def __init__(self, message: str, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class TestBuildRequest:
    def test_uses_config(self) -> None:
        config = AgentConfig.merged({"model": "gpt-4o", "temperature": 0.2, "max_tokens": 300})
        messages = [ChatMessage(Role.USER, "Hi")]

        request = build_request(messages, config)

        assert request.model == "gpt-4o"
        assert request.temperature == 0.2
        assert request.to_dict() == {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": "Hi"}],
            "temperature": 0.2,
            "max_tokens": 300,
        }

    def test_omits_unset_max_tokens(self) -> None:
        request = build_request([ChatMessage(Role.USER, "Hi")], AgentConfig.merged())

        assert "max_tokens" not in request.to_dict()


class TestClassifyModelError:
    def test_invalid_credential(self) -> None:
        exc = _status_error(openai.AuthenticationError, 401, "Incorrect API key provided")
        assert classify_model_error(exc) == ModelFailureKind.INVALID_CREDENTIAL
        assert classify_model_error(FakeProviderError("x", code="invalid_api_key")) == ModelFailureKind.INVALID_CREDENTIAL
        assert classify_model_error(FakeProviderError("Missing API key")) == ModelFailureKind.INVALID_CREDENTIAL

    def test_rate_limited(self) -> None:
        exc = _status_error(openai.RateLimitError, 429, "Too many requests")
        assert classify_model_error(exc) == ModelFailureKind.RATE_LIMITED
        assert classify_model_error(FakeProviderError("x", code="rate_limit_exceeded")) == ModelFailureKind.RATE_LIMITED
        assert classify_model_error(FakeProviderError("Rate limit reached")) == ModelFailureKind.RATE_LIMITED

    def test_malformed_request(self) -> None:
        exc = _status_error(openai.BadRequestError, 400, "context length exceeded")
        assert classify_model_error(exc) == ModelFailureKind.MALFORMED_REQUEST
        assert classify_model_error(FakeProviderError("x", code="invalid_request_error")) == ModelFailureKind.MALFORMED_REQUEST

    def test_provider_unavailable(self) -> None:
        for status in (500, 502, 503):
            exc = _status_error(openai.InternalServerError, status, "server error")
            assert classify_model_error(exc) == ModelFailureKind.PROVIDER_UNAVAILABLE
        assert classify_model_error(openai.APIConnectionError(request=REQUEST)) == ModelFailureKind.PROVIDER_UNAVAILABLE

    def test_unknown(self) -> None:
        assert classify_model_error(ValueError("odd")) == ModelFailureKind.UNKNOWN
        assert classify_model_error(FakeProviderError("teapot", status_code=418)) == ModelFailureKind.UNKNOWN

    def test_credential_checked_before_rate_limit(self) -> None:
        exc = FakeProviderError("API key rate limit", status_code=429)
        assert classify_model_error(exc) == ModelFailureKind.INVALID_CREDENTIAL


@pytest.fixture
def invoker(client_pool: OpenAIClientPool) -> CompletionInvoker:
    return CompletionInvoker(client_pool)


def _request() -> CompletionRequest:
    return CompletionRequest(
        model="gpt-4o-mini",
        messages=[ChatMessage(Role.SYSTEM, "You are a helpful assistant."), ChatMessage(Role.USER, "Hello")],
        temperature=0.7,
    )


class TestCompletionInvoker:
    @pytest.mark.asyncio
    async def test_invoke_returns_text_and_raw(
        self, invoker: CompletionInvoker, openai_client: MagicMock, make_completion
    ) -> None:
        openai_client.chat.completions.create.return_value = make_completion("Hi! How can I help?")

        result = await invoker.invoke("sk-test", _request())

        assert result.text == "Hi! How can I help?"
        assert result.raw_completion["id"] == "chatcmpl-test"
        assert result.raw_completion["choices"][0]["message"]["content"] == "Hi! How can I help?"
        openai_client.chat.completions.create.assert_awaited_once_with(
            model="gpt-4o-mini",
            messages=[
                {"role": "system", "content": "You are a helpful assistant."},
                {"role": "user", "content": "Hello"},
            ],
            temperature=0.7,
        )

    @pytest.mark.asyncio
    async def test_empty_reply_raises(
        self, invoker: CompletionInvoker, openai_client: MagicMock, make_completion
    ) -> None:
        openai_client.chat.completions.create.return_value = make_completion(None)

        with pytest.raises(NoModelResponseError):
            await invoker.invoke("sk-test", _request())

    @pytest.mark.asyncio
    async def test_provider_error_is_classified(
        self, invoker: CompletionInvoker, openai_client: MagicMock
    ) -> None:
        openai_client.chat.completions.create.side_effect = _status_error(
            openai.RateLimitError, 429, "Too many requests"
        )

        with pytest.raises(ModelInvocationError) as exc_info:
            await invoker.invoke("sk-test", _request())

        assert exc_info.value.kind == ModelFailureKind.RATE_LIMITED
        assert exc_info.value.code == ErrorCode.MODEL_RATE_LIMITED
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_complete_text(
        self, invoker: CompletionInvoker, openai_client: MagicMock, make_completion
    ) -> None:
        openai_client.chat.completions.create.return_value = make_completion("Likes tea")

        text = await invoker.complete_text(
            "sk-test", system="sys", user="usr", model="gpt-4o-mini", temperature=0.3, max_tokens=200
        )

        assert text == "Likes tea"
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["max_tokens"] == 200
        assert kwargs["temperature"] == 0.3
        assert [m["role"] for m in kwargs["messages"]] == ["system", "user"]


class TestRequestLogging:
    @pytest.fixture
    def logged_invoker(self, client_pool: OpenAIClientPool, store: SQLiteChatStore) -> CompletionInvoker:
        return CompletionInvoker(client_pool, RequestLogger(store))

    @pytest.mark.asyncio
    async def test_logs_usage_and_price(
        self,
        logged_invoker: CompletionInvoker,
        openai_client: MagicMock,
        store: SQLiteChatStore,
        make_completion,
    ) -> None:
        openai_client.chat.completions.create.return_value = make_completion("Hi", usage=(1000, 500))
        context = RequestContext(user_id="u1", agent_id=7, kind=RequestKind.CHAT)

        await logged_invoker.invoke("sk-test", _request(), context)

        [entry] = await store.list_request_logs(user_id="u1")
        assert entry.agent_id == 7
        assert entry.kind == RequestKind.CHAT
        assert entry.model == "gpt-4o-mini"
        assert entry.request["messages"][1] == {"role": "user", "content": "Hello"}
        assert entry.response["id"] == "chatcmpl-test"
        assert (entry.prompt_tokens, entry.completion_tokens, entry.total_tokens) == (1000, 500, 1500)
        assert entry.estimated_price == pytest.approx((1000 * 0.15 + 500 * 0.60) / 1_000_000)

    @pytest.mark.asyncio
    async def test_complete_text_is_logged_with_kind(
        self,
        logged_invoker: CompletionInvoker,
        openai_client: MagicMock,
        store: SQLiteChatStore,
        make_completion,
    ) -> None:
        openai_client.chat.completions.create.return_value = make_completion('{"words": []}')

        await logged_invoker.complete_text(
            "sk-test",
            system="sys",
            user="usr",
            response_format={"type": "json_object"},
            context=RequestContext(user_id="u1", kind=RequestKind.WORD_PARSING),
        )

        [entry] = await store.list_request_logs()
        assert entry.kind == RequestKind.WORD_PARSING
        assert entry.request["response_format"] == {"type": "json_object"}
        assert entry.total_tokens == 0
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_empty_reply_is_still_logged(
        self,
        logged_invoker: CompletionInvoker,
        openai_client: MagicMock,
        store: SQLiteChatStore,
        make_completion,
    ) -> None:
        openai_client.chat.completions.create.return_value = make_completion(None, usage=(10, 0))

        with pytest.raises(NoModelResponseError):
            await logged_invoker.invoke("sk-test", _request())

        [entry] = await store.list_request_logs()
        assert entry.prompt_tokens == 10
        assert entry.user_id is None

    @pytest.mark.asyncio
    async def test_failed_call_is_not_logged(
        self,
        logged_invoker: CompletionInvoker,
        openai_client: MagicMock,
        store: SQLiteChatStore,
    ) -> None:
        openai_client.chat.completions.create.side_effect = FakeProviderError("boom", status_code=500)

        with pytest.raises(ModelInvocationError):
            await logged_invoker.invoke("sk-test", _request())

        assert await store.list_request_logs() == []


class TestOpenAIClientPool:
    def test_reuses_client_per_credential(self) -> None:
        created: list[str] = []

        def factory(credential: str) -> MagicMock:
            created.append(credential)
            return MagicMock()

        pool = OpenAIClientPool(factory)

        first = pool.get("sk-a")
        assert pool.get("sk-a") is first
        assert pool.get("sk-b") is not first
        assert created == ["sk-a", "sk-b"]
        assert len(pool) == 2

    @pytest.mark.asyncio
    async def test_close(self, client_pool: OpenAIClientPool, openai_client: MagicMock) -> None:
        client_pool.get("sk-a")

        await client_pool.close()

        openai_client.close.assert_awaited_once()
        assert len(client_pool) == 0
