"""Context selector - dedupe, diversify, pack and compress retrieved context."""

import logging
import math
import re
from collections import defaultdict
from typing import Optional

from ..cancellation import AbortSignal
from ..models.chat import UserMessage
from ..models.document import RagChunk, SearchResult
from ..protocols.document_store import DocumentStoreProtocol
from ..protocols.llm import LLMProtocol
from ..strategies.scoring import NUMBER_RE, query_terms

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
ELLIPSIS = "..."
DEDUPE_PREFIX_CHARS = 100
MIN_PARTIAL_TOKENS = 100
NEIGHBOR_SCORE_FACTOR = 0.9

SPECIFIC_RE = re.compile(
    r"(?:specifically|particularly|exactly|precisely|detailed)", re.IGNORECASE
)
STRUCTURE_RE = re.compile(
    r"(?:first|second|third|finally|in conclusion|however|therefore)", re.IGNORECASE
)
HEADING_RE = re.compile(r"^#{1,6}\s+(.+)$", re.MULTILINE)

COMPRESS_PROMPT = """Compress and summarize the following document context while preserving all key information. Keep:

1. Key facts and important details
2. Specific data points and numbers
3. Important quotes or statements
4. Document references and citations

Remove redundant information and filler. Maintain the original structure.

Context to compress:
{context}

Compressed context:"""


def estimate_tokens(text: str) -> int:
    """Rough token count (one token per four characters)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def extract_headings(text: str) -> list[str]:
    return [h.strip() for h in HEADING_RE.findall(text)][:5]


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Cut text to a token budget, at a sentence end when one is near."""
    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text

    truncated = text[:max_chars]
    last_period = truncated.rfind(".")
    if last_period > max_chars * 0.7:
        return truncated[: last_period + 1]
    return text[: max(0, max_chars - len(ELLIPSIS))] + ELLIPSIS


def to_rag_chunk(result: SearchResult) -> RagChunk:
    score = min(1.0, max(0.0, result.rank_score))
    return RagChunk(
        id=f"{result.document_id}:{result.chunk_index}",
        doc_id=result.document_id,
        anchor=f"doc#p{result.chunk_index}",
        text=result.content,
        score=score,
        tokens=estimate_tokens(result.content),
        title=result.document_title,
        headings=extract_headings(result.content),
        chunk_index=result.chunk_index,
    )


class ContextSelector:
    """Choose and shape the context passed to the chat model."""

    def __init__(
        self,
        llm: Optional[LLMProtocol] = None,
        store: Optional[DocumentStoreProtocol] = None,
        model: Optional[str] = None,
    ):
        """Initialize selector.

        Args:
            llm: Chat client used for compression.
            store: Document store used for neighbour expansion.
            model: Model used for compression.
        """
        self._llm = llm
        self._store = store
        self._model = model

    @staticmethod
    def dedupe(results: list[SearchResult]) -> list[SearchResult]:
        """Drop results whose normalized content prefix repeats within a document."""
        seen: set[str] = set()
        unique = []
        for result in results:
            normalized = " ".join(result.content.lower().split())
            key = f"{result.document_id}-{normalized[:DEDUPE_PREFIX_CHARS]}"
            if key in seen:
                continue
            seen.add(key)
            unique.append(result)
        return unique

    @staticmethod
    def quality(result: SearchResult, query: str) -> float:
        terms = query_terms(query)
        content = result.content.lower()
        coverage = sum(1 for t in terms if t in content) / len(terms) if terms else 0.0
        length = min(1.0, len(result.content) / 500)
        specificity = (0.3 if NUMBER_RE.search(result.content) else 0.0) + (
            0.2 if SPECIFIC_RE.search(result.content) else 0.0
        )
        structure = 0.2 if STRUCTURE_RE.search(result.content) else 0.0
        return 0.4 * coverage + 0.3 * length + 0.2 * specificity + 0.1 * structure

    def select(self, results: list[SearchResult], query: str, limit: int) -> list[SearchResult]:
        """Pick the best `limit` results.

        Small candidate sets keep their ranking order. Larger ones are
        re-scored by similarity, content quality and document diversity.
        """
        if not results or limit <= 0:
            return []

        unique = self.dedupe(results)
        if len(unique) < len(results):
            logger.debug(f"Dedupe: {len(results)} → {len(unique)}")

        if len(unique) <= 2 * limit:
            return sorted(unique, key=lambda r: r.rank_score, reverse=True)[:limit]

        doc_counts: dict[str, int] = defaultdict(int)
        scored = []
        for result in unique:
            diversity = max(0.0, 1 - 0.3 * doc_counts[result.document_id])
            doc_counts[result.document_id] += 1
            final = (
                0.5 * result.similarity
                + 0.3 * self.quality(result, query)
                + 0.2 * diversity
            )
            scored.append((final, result))

        scored.sort(key=lambda item: item[0], reverse=True)
        selected = []
        for final, result in scored[:limit]:
            result.score = final
            selected.append(result)
        return selected

    async def compress(
        self,
        context: str,
        max_tokens: int = 2000,
        abort_signal: Optional[AbortSignal] = None,
    ) -> str:
        """Summarize context that exceeds `max_tokens`; truncate on failure."""
        if estimate_tokens(context) <= max_tokens:
            return context

        if self._llm is None:
            return truncate_to_tokens(context, max_tokens)

        try:
            completion = await self._llm.complete(
                [UserMessage(content=COMPRESS_PROMPT.format(context=context))],
                model=self._model,
                temperature=0.3,
                max_tokens=int(max_tokens * 0.8),
                abort_signal=abort_signal,
            )
            compressed = completion.content.strip()
            if compressed:
                return compressed
            return context
        except Exception as e:
            logger.warning(f"Context compression failed, truncating: {e}")
            return truncate_to_tokens(context, max_tokens)

    async def expand_hierarchy(
        self, chunks: list[RagChunk], neighbors: int = 1
    ) -> list[RagChunk]:
        """Add chunks adjacent to each hit (same document, index ± neighbors)."""
        if self._store is None or neighbors <= 0:
            return chunks

        expanded = {c.id: c for c in chunks}
        by_document: dict[str, list[RagChunk]] = defaultdict(list)
        for chunk in chunks:
            by_document[chunk.doc_id].append(chunk)

        for doc_id, hits in by_document.items():
            try:
                rows = await self._store.list_chunks(doc_id)
            except Exception as e:
                logger.warning(f"Neighbour expansion failed for {doc_id}: {e}")
                continue

            for hit in hits:
                for row in rows:
                    if row.chunk_index == hit.chunk_index:
                        continue
                    if abs(row.chunk_index - hit.chunk_index) > neighbors:
                        continue
                    chunk_id = f"{doc_id}:{row.chunk_index}"
                    if chunk_id in expanded:
                        continue
                    expanded[chunk_id] = RagChunk(
                        id=chunk_id,
                        doc_id=doc_id,
                        anchor=f"doc#p{row.chunk_index}",
                        text=row.content,
                        score=hit.score * NEIGHBOR_SCORE_FACTOR,
                        tokens=estimate_tokens(row.content),
                        title=hit.title,
                        headings=extract_headings(row.content),
                        chunk_index=row.chunk_index,
                    )

        return list(expanded.values())

    @staticmethod
    def pack(chunks: list[RagChunk], budget_tokens: int) -> list[RagChunk]:
        """Greedily fill the token budget with the highest-scoring chunks."""
        packed: list[RagChunk] = []
        used = 0

        for chunk in sorted(chunks, key=lambda c: c.score, reverse=True):
            if used + chunk.tokens <= budget_tokens:
                packed.append(chunk)
                used += chunk.tokens
                continue

            remaining = budget_tokens - used
            if remaining > MIN_PARTIAL_TOKENS:
                text = truncate_to_tokens(chunk.text, remaining)
                packed.append(
                    RagChunk(
                        id=chunk.id,
                        doc_id=chunk.doc_id,
                        anchor=chunk.anchor,
                        text=text,
                        score=chunk.score,
                        tokens=remaining,
                        title=chunk.title,
                        headings=chunk.headings,
                        chunk_index=chunk.chunk_index,
                    )
                )
            break

        return packed

    @staticmethod
    def confidence(chunks: list[RagChunk]) -> float:
        if not chunks:
            return 0.0
        scores = [c.score for c in chunks]
        return min(1.0, 0.7 * (sum(scores) / len(scores)) + 0.3 * max(scores))
