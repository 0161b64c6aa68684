import asyncio
import logging
from typing import Optional

from openai import APIError, AsyncOpenAI

from docground.core.cancellation import AbortSignal
from docground.core.errors import ProviderError, RequestAborted
from docground.core.models.chat import ChatMessage, Completion, Usage, to_payload

logger = logging.getLogger(__name__)


class OpenAIChatClient:
    """Chat client for any OpenAI-compatible API."""

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        api_key: str = "",
        model: str = "gpt-4o",
        max_tokens: int = 2000,
        temperature: float = 0.3,
    ):
        """Initialize chat client.

        Args:
            base_url: API URL.
            api_key: API key.
            model: Default model name.
            max_tokens: Default max response tokens.
            temperature: Default sampling temperature.
        """
        self._client = AsyncOpenAI(base_url=base_url, api_key=api_key or "not-set")
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def complete(
        self,
        messages: list[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        abort_signal: Optional[AbortSignal] = None,
    ) -> Completion:
        """Generate a single completion.

        Raises:
            ProviderError: API error or empty response.
            RequestAborted: Abort signal fired while waiting.
        """
        request = self._client.chat.completions.create(
            model=model or self._model,
            messages=to_payload(messages),
            max_tokens=max_tokens or self._max_tokens,
            temperature=self._temperature if temperature is None else temperature,
        )

        try:
            if abort_signal is None:
                response = await request
            else:
                response = await self._race(request, abort_signal)
        except APIError as e:
            logger.error(f"Chat completion failed ({model or self._model}): {e}")
            raise ProviderError(f"chat completion failed: {type(e).__name__}") from e

        if not response.choices:
            raise ProviderError("chat completion returned no choices")

        usage = response.usage
        return Completion(
            content=response.choices[0].message.content or "",
            usage=Usage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            model=response.model or "",
        )

    @staticmethod
    async def _race(request, abort_signal: AbortSignal):
        if abort_signal.aborted:
            request.close()
            raise RequestAborted("aborted before request")

        task = asyncio.ensure_future(request)
        waiter = asyncio.ensure_future(abort_signal.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            # Also runs when the caller itself is cancelled (e.g. wait_for timeout)
            for pending in (task, waiter):
                if not pending.done():
                    pending.cancel()

        if task in done:
            return task.result()

        logger.info("Chat completion aborted")
        raise RequestAborted("aborted during request")
