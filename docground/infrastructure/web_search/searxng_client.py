import asyncio
import logging
from typing import Optional

import httpx

from docground.core.cancellation import AbortSignal
from docground.core.errors import ProviderError, RequestAborted
from docground.core.models.evidence import WebCitation, WebSearchResult

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 500


class SearxngWebSearch:
    """Web search through a SearxNG instance's JSON API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        timeout: float = 20.0,
        max_results: int = 8,
        language: str = "en",
    ):
        """Initialize SearxNG client.

        Args:
            base_url: SearxNG URL.
            timeout: Request timeout in seconds.
            max_results: Citations kept per search.
            language: Search language.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_results = max_results
        self._language = language

    async def search(
        self, query: str, abort_signal: Optional[AbortSignal] = None
    ) -> WebSearchResult:
        """Search the web.

        Raises:
            ProviderError: Transport error or non-2xx response.
            RequestAborted: Abort signal fired before the response arrived.
        """
        if abort_signal is not None and abort_signal.aborted:
            raise RequestAborted("aborted before web search")

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                request = client.get(
                    f"{self._base_url}/search",
                    params={"q": query, "format": "json", "language": self._language},
                )
                if abort_signal is None:
                    resp = await request
                else:
                    resp = await self._race(request, abort_signal)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            logger.error(f"Web search failed: {type(e).__name__}")
            raise ProviderError(f"web search failed: {type(e).__name__}") from e

        citations = []
        passages = []
        seen: set[str] = set()
        for item in data.get("results", []):
            url = item.get("url")
            if not url or url in seen:
                continue
            seen.add(url)
            citations.append(WebCitation(title=item.get("title") or "", url=url))
            snippet = (item.get("content") or "").strip()
            if snippet:
                passages.append(f"[{len(citations)}] {snippet[:SNIPPET_CHARS]}")
            if len(citations) >= self._max_results:
                break

        answers = [a for a in data.get("answers", []) if isinstance(a, str)]
        text = "\n\n".join(answers + passages)
        logger.info(f"Web search '{query[:60]}': {len(citations)} result(s)")
        return WebSearchResult(text=text, citations=citations)

    @staticmethod
    async def _race(request, abort_signal: AbortSignal) -> httpx.Response:
        task = asyncio.ensure_future(request)
        waiter = asyncio.ensure_future(abort_signal.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (task, waiter):
                if not pending.done():
                    pending.cancel()

        if task in done:
            return task.result()

        logger.info("Web search aborted")
        raise RequestAborted("aborted during web search")
