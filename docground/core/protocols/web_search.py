"""Web search protocol for dependency injection."""
from typing import Optional, Protocol, runtime_checkable

from ..cancellation import AbortSignal
from ..models.evidence import WebSearchResult


@runtime_checkable
class WebSearchProtocol(Protocol):
    """Protocol for web search provider."""

    async def search(
        self, query: str, abort_signal: Optional[AbortSignal] = None
    ) -> WebSearchResult:
        """Search the web.

        Args:
            query: Search terms.
            abort_signal: Cancels the request when fired.

        Returns:
            Passage text with citations.

        Raises:
            RequestAborted: Signal fired before the response arrived.
        """
        ...
