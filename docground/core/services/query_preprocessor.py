"""Query preprocessor - conservative rewriting and expansion."""

import logging
import re
from typing import Optional

from ..cancellation import AbortSignal, is_aborted
from ..models.chat import UserMessage
from ..protocols.llm import LLMProtocol

logger = logging.getLogger(__name__)

WH_WORD_RE = re.compile(r"^(what|who|when|where|why|how)\s", re.IGNORECASE)
NUMBERED_LINE_RE = re.compile(r"^\d+\.\s*")

REWRITE_PROMPT = """Rewrite the following search query to be more effective for finding relevant information in a document database. Focus on:

1. Using specific, searchable keywords that are likely to appear in documents
2. Making the query more explicit

Original query: "{query}"

Keep it concise. Do not change the core meaning or intent. Reply with the rewritten query only.

Rewritten query:"""

EXPAND_PROMPT = """Given the following search query, generate 2-3 alternative phrasings that would help find relevant information. Use synonyms and different ways to express the same core concept.

Original query: "{query}"

Generate alternatives in this format:
1. [alternative query 1]
2. [alternative query 2]
3. [alternative query 3]

Each alternative must stay semantically close to the original, be concise and searchable."""

MAX_VARIANTS = 3


def _is_plain_statement(query: str, min_length: int, min_words: int) -> bool:
    """Questions and short queries are left untouched."""
    return (
        len(query) > min_length
        and "?" not in query
        and not WH_WORD_RE.match(query)
        and len(query.split()) >= min_words
    )


class QueryPreprocessor:
    """Rewrite and expand keyword-style queries; questions pass through."""

    def __init__(self, llm: LLMProtocol, model: Optional[str] = None):
        """Initialize preprocessor.

        Args:
            llm: Chat client.
            model: Model used for rewriting (a small, fast model).
        """
        self._llm = llm
        self._model = model

    def should_rewrite(self, query: str) -> bool:
        return _is_plain_statement(query, min_length=5, min_words=2)

    def should_expand(self, query: str) -> bool:
        return _is_plain_statement(query, min_length=10, min_words=3)

    async def rewrite(self, query: str, abort_signal: Optional[AbortSignal] = None) -> str:
        """Rewrite a query for retrieval; returns the input on any doubt."""
        if not self.should_rewrite(query) or is_aborted(abort_signal):
            return query

        try:
            completion = await self._llm.complete(
                [UserMessage(content=REWRITE_PROMPT.format(query=query))],
                model=self._model,
                temperature=0.1,
                max_tokens=100,
                abort_signal=abort_signal,
            )
        except Exception as e:
            logger.warning(f"Query rewrite failed: {e}")
            return query

        rewritten = completion.content.strip().strip('"')
        if not rewritten or not 0.7 * len(query) <= len(rewritten) <= 2 * len(query):
            logger.debug(f"Rewrite rejected (length {len(rewritten)} vs {len(query)})")
            return query

        logger.debug(f"Rewrite: '{query}' → '{rewritten}'")
        return rewritten

    async def expand(
        self, query: str, abort_signal: Optional[AbortSignal] = None
    ) -> list[str]:
        """Return the query plus up to two alternative phrasings."""
        if not self.should_expand(query) or is_aborted(abort_signal):
            return [query]

        try:
            completion = await self._llm.complete(
                [UserMessage(content=EXPAND_PROMPT.format(query=query))],
                model=self._model,
                temperature=0.3,
                max_tokens=300,
                abort_signal=abort_signal,
            )
        except Exception as e:
            logger.warning(f"Query expansion failed: {e}")
            return [query]

        alternatives = []
        for line in completion.content.splitlines():
            line = line.strip()
            if not NUMBERED_LINE_RE.match(line):
                continue
            alt = NUMBERED_LINE_RE.sub("", line).strip()
            if alt and len(alt) < 2 * len(query):
                alternatives.append(alt)

        return [query, *alternatives][:MAX_VARIANTS]
