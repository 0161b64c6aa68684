"""Tests for the OpenAI-compatible chat and embedding adapters."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import openai
import pytest

from docground.core.cancellation import AbortSignal
from docground.core.errors import ProviderError, RequestAborted
from docground.core.models.chat import SystemMessage, UserMessage
from docground.infrastructure.embeddings.openai_embedder import OpenAIEmbedder
from docground.infrastructure.llm.openai_client import OpenAIChatClient


def chat_response(content="hello", model="gpt-test"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2, total_tokens=5),
        model=model,
    )


def connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(request=httpx.Request("POST", "http://llm/v1/chat/completions"))


@pytest.fixture
def chat() -> OpenAIChatClient:
    client = OpenAIChatClient(api_key="test", model="default-model", max_tokens=100, temperature=0.2)
    client._client = Mock()
    client._client.chat.completions.create = AsyncMock(return_value=chat_response())
    return client


class TestChatClient:

    async def test_complete_sends_messages_and_defaults(self, chat):
        completion = await chat.complete(
            [SystemMessage(content="be brief"), UserMessage(content="hi")]
        )

        kwargs = chat._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "default-model"
        assert kwargs["max_tokens"] == 100
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"] == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ]
        assert completion.content == "hello"
        assert completion.usage.total_tokens == 5
        assert completion.model == "gpt-test"

    async def test_explicit_zero_temperature_is_kept(self, chat):
        await chat.complete([UserMessage(content="hi")], model="other", temperature=0.0)

        kwargs = chat._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "other"
        assert kwargs["temperature"] == 0.0

    async def test_api_error_becomes_provider_error(self, chat):
        chat._client.chat.completions.create.side_effect = connection_error()

        with pytest.raises(ProviderError):
            await chat.complete([UserMessage(content="hi")])

    async def test_empty_choices(self, chat):
        chat._client.chat.completions.create.return_value = SimpleNamespace(
            choices=[], usage=None, model=""
        )

        with pytest.raises(ProviderError, match="no choices"):
            await chat.complete([UserMessage(content="hi")])

    async def test_signal_fired_before_request(self, chat):
        signal = AbortSignal()
        signal.abort()

        with pytest.raises(RequestAborted):
            await chat.complete([UserMessage(content="hi")], abort_signal=signal)

    async def test_signal_fired_during_request(self, chat):
        async def slow(**kwargs):
            await asyncio.sleep(10)

        chat._client.chat.completions.create.side_effect = slow
        signal = AbortSignal()
        asyncio.get_running_loop().call_later(0.01, signal.abort)

        with pytest.raises(RequestAborted):
            await asyncio.wait_for(
                chat.complete([UserMessage(content="hi")], abort_signal=signal), timeout=2
            )

    async def test_caller_timeout_cancels_request_and_signal_wait(self, chat):
        cancelled = asyncio.Event()

        async def slow(**kwargs):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        chat._client.chat.completions.create.side_effect = slow

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                chat.complete([UserMessage(content="hi")], abort_signal=AbortSignal()),
                timeout=0.01,
            )

        await asyncio.wait_for(cancelled.wait(), timeout=1)
        await asyncio.sleep(0.01)
        leftover = [
            t.get_coro().__qualname__
            for t in asyncio.all_tasks()
            if t is not asyncio.current_task()
        ]
        assert "AbortSignal.wait" not in leftover
        assert not any("slow" in name for name in leftover)

    async def test_unfired_signal_returns_result(self, chat):
        completion = await chat.complete([UserMessage(content="hi")], abort_signal=AbortSignal())
        assert completion.content == "hello"


class TestEmbedder:

    @pytest.fixture
    def embedder(self) -> OpenAIEmbedder:
        embedder = OpenAIEmbedder(api_key="test", model="embed-test", dimension=2)
        embedder._client = Mock()
        embedder._client.embeddings.create = AsyncMock()
        return embedder

    async def test_vectors_follow_input_order(self, embedder):
        embedder._client.embeddings.create.return_value = SimpleNamespace(
            data=[
                SimpleNamespace(index=1, embedding=[0.0, 1.0]),
                SimpleNamespace(index=0, embedding=[1.0, 0.0]),
            ]
        )

        vectors = await embedder.embed(["a", "b"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        embedder._client.embeddings.create.assert_awaited_once_with(
            model="embed-test", input=["a", "b"]
        )

    async def test_api_error_becomes_provider_error(self, embedder):
        embedder._client.embeddings.create.side_effect = connection_error()

        with pytest.raises(ProviderError, match="APIConnectionError"):
            await embedder.embed(["a"])
