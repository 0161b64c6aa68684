"""LLM protocol for dependency injection."""
from typing import Optional, Protocol, runtime_checkable

from ..cancellation import AbortSignal
from ..models.chat import ChatMessage, Completion


@runtime_checkable
class LLMProtocol(Protocol):
    """Protocol for chat completion client."""

    async def complete(
        self,
        messages: list[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        abort_signal: Optional[AbortSignal] = None,
    ) -> Completion:
        """Generate a single completion.

        Args:
            messages: Conversation messages.
            model: Override model name.
            temperature: Override sampling temperature.
            max_tokens: Override max response tokens.
            abort_signal: Cancels the request when fired.

        Returns:
            Generated message with token usage.
        """
        ...
