"""Search service - hybrid and adaptive retrieval over a user's documents."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..cancellation import AbortSignal, is_aborted
from ..errors import EmbeddingFailure
from ..models.document import SearchResult, VectorMatch
from ..models.query import IntentType, SearchOptions, SearchStrategy
from ..protocols.document_store import DocumentStoreProtocol
from ..protocols.vector_store import VectorStoreProtocol
from ..strategies.scoring import (
    HybridScorer,
    MultiQueryReranker,
    OnePerDocumentStrategy,
    ScoreThresholdStrategy,
    keyword_score,
    query_terms,
)
from ..strategies.similarity import cosine_similarity, is_compatible
from .context_selector import ContextSelector
from .embedding_gateway import EmbeddingGateway
from .intent_classifier import IntentClassifier, plan_for
from .metrics import PerformanceMonitor
from .query_preprocessor import QueryPreprocessor

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 300
MAX_CONTEXT_CHARS = 4000
COMPRESSED_CONTEXT_TOKENS = 2000


@dataclass
class _Candidate:
    document_id: str
    title: str
    content: str
    chunk_index: int
    embedding: Optional[list[float]]
    store_score: float = 0.0


class HybridRetriever:
    """Non-adaptive search: preprocess, fetch, score, re-rank, select."""

    def __init__(
        self,
        gateway: EmbeddingGateway,
        vector_store: VectorStoreProtocol,
        store: DocumentStoreProtocol,
        preprocessor: QueryPreprocessor,
        selector: ContextSelector,
        monitor: PerformanceMonitor,
        scorer: Optional[HybridScorer] = None,
        reranker: Optional[MultiQueryReranker] = None,
        hybrid_threshold: float = 0.2,
        candidate_multiplier: int = 2,
    ):
        """Initialize retriever.

        Args:
            gateway: Validated embedding access.
            vector_store: Document-level vector index.
            store: Relational store with chunk rows.
            preprocessor: Query rewrite / expansion.
            selector: Final context selection.
            monitor: Records fallback events.
            scorer: Hybrid scorer.
            reranker: Multi-query re-ranker.
            hybrid_threshold: Minimum hybrid score.
            candidate_multiplier: Candidates kept per requested result.
        """
        self._gateway = gateway
        self._vector_store = vector_store
        self._store = store
        self._preprocessor = preprocessor
        self._selector = selector
        self._monitor = monitor
        self._scorer = scorer or HybridScorer()
        self._reranker = reranker or MultiQueryReranker()
        self._hybrid_threshold = hybrid_threshold
        self._candidate_multiplier = candidate_multiplier

    async def search(
        self,
        query: str,
        user_id: str,
        options: Optional[SearchOptions] = None,
        abort_signal: Optional[AbortSignal] = None,
    ) -> list[SearchResult]:
        """Search a user's documents.

        Args:
            query: Search query.
            user_id: Owner whose documents are searched.
            options: Search parameters.
            abort_signal: Stops before further provider calls when fired.

        Returns:
            Results ordered by non-increasing ranking score.
        """
        options = options or SearchOptions()
        if is_aborted(abort_signal) or not query.strip():
            return []

        search_query = query
        if options.use_rewriting:
            search_query = await self._preprocessor.rewrite(query, abort_signal)

        variants = [search_query]
        if options.use_expansion:
            variants = await self._preprocessor.expand(search_query, abort_signal)

        if is_aborted(abort_signal):
            return []

        try:
            variant_embeddings = await self._gateway.embed_batch(variants)
            matches = await asyncio.to_thread(
                self._vector_store.query, variant_embeddings[0], user_id, options.top_k
            )
        except EmbeddingFailure as e:
            self._monitor.record_fallback("keyword_search", f"embedding failed: {e.reason}")
            return await self.keyword_search(query, user_id, options.limit)
        except Exception as e:
            self._monitor.record_fallback("keyword_search", f"vector store failed: {e}")
            return await self.keyword_search(query, user_id, options.limit)

        candidates = await self._expand_candidates(matches)
        scored = self._score(search_query, variant_embeddings[0], candidates, options)

        threshold = (
            self._hybrid_threshold
            if options.strategy == SearchStrategy.HYBRID
            else options.threshold
        )
        results = ScoreThresholdStrategy(threshold).apply(query, [r for r, _ in scored])
        kept = {id(r) for r in results}
        scored = [(r, e) for r, e in scored if id(r) in kept]

        scored.sort(key=lambda item: item[0].rank_score, reverse=True)
        scored = scored[: options.limit * self._candidate_multiplier]

        results = [r for r, _ in scored]
        if len(variants) > 1 and results:
            similarities = [
                [cosine_similarity(v, emb) if emb else r.similarity for v in variant_embeddings]
                for r, emb in scored
            ]
            results = self._reranker.rerank(results, similarities)

        selected = self._selector.select(results, query, options.limit)
        logger.info(
            f"Search: returned {len(selected)}/{options.limit} results "
            f"from {len(candidates)} candidates for '{query[:50]}'"
        )
        return selected

    async def _expand_candidates(self, matches: list[VectorMatch]) -> list[_Candidate]:
        """Replace document-level matches with their stored chunk rows."""
        candidates: list[_Candidate] = []

        for match in matches:
            document_id = match.metadata.get("document_id", match.id)
            title = match.metadata.get("document_title", "")

            try:
                rows = await self._store.list_chunks(document_id)
            except Exception as e:
                logger.warning(f"Could not load chunks for {document_id}: {e}")
                rows = []

            if rows:
                candidates.extend(
                    _Candidate(document_id, title, row.content, row.chunk_index, row.embedding)
                    for row in rows
                )
            else:
                candidates.append(
                    _Candidate(
                        document_id,
                        title,
                        match.content,
                        int(match.metadata.get("chunk_index", 0)),
                        match.embedding,
                        store_score=match.score,
                    )
                )

        return candidates

    def _score(
        self,
        query: str,
        query_embedding: list[float],
        candidates: list[_Candidate],
        options: SearchOptions,
    ) -> list[tuple[SearchResult, Optional[list[float]]]]:
        scored = []
        dimension = len(query_embedding)
        skipped = 0

        for c in candidates:
            if c.embedding is not None and not is_compatible(len(c.embedding), dimension):
                skipped += 1
                continue

            result = SearchResult(
                document_id=c.document_id,
                document_title=c.title,
                content=c.content if options.include_content else "",
                similarity=0.0,
                chunk_index=c.chunk_index,
            )

            if c.embedding is not None:
                semantic = cosine_similarity(query_embedding, c.embedding)
            else:
                semantic = c.store_score

            if options.strategy == SearchStrategy.HYBRID:
                hybrid = self._scorer.blend(query, semantic, c.content)
                result.score = hybrid.score
                result.semantic_score = hybrid.semantic
                result.keyword_score = hybrid.keyword
            elif options.strategy == SearchStrategy.KEYWORD:
                kw = keyword_score(query, c.content)
                result.keyword_score = kw
                result.score = kw

            result.similarity = min(1.0, max(0.0, semantic))
            scored.append((result, c.embedding))

        if skipped:
            logger.warning(f"Excluded {skipped} chunk(s) with incompatible embedding dimension")
        return scored

    async def keyword_search(self, query: str, user_id: str, limit: int) -> list[SearchResult]:
        """Relational fallback: keyword containment over the user's documents."""
        terms = query_terms(query) or [query.lower().strip()]
        try:
            documents = await self._store.list_documents(user_id)
        except Exception as e:
            logger.error(f"Keyword fallback failed: {e}")
            return []

        results = []
        for document in documents:
            text = document.text.lower()
            matched = sum(1 for t in terms if t and t in text)
            if not matched:
                continue
            ratio = matched / len(terms)
            results.append(
                SearchResult(
                    document_id=document.id,
                    document_title=document.title,
                    content=document.text,
                    similarity=ratio,
                    chunk_index=0,
                    keyword_score=ratio,
                )
            )

        results.sort(key=lambda r: r.rank_score, reverse=True)
        logger.info(f"Keyword fallback: {len(results)} document(s) matched '{query[:50]}'")
        return results[:limit]


class AdaptiveRetriever:
    """Classify the query, derive a plan, then run a plain hybrid search."""

    def __init__(
        self,
        classifier: IntentClassifier,
        retriever: HybridRetriever,
        selector: ContextSelector,
        top_k: int = 30,
    ):
        self._classifier = classifier
        self._retriever = retriever
        self._selector = selector
        self._top_k = top_k

    async def retrieve(
        self,
        query: str,
        user_id: str,
        top_k: Optional[int] = None,
        abort_signal: Optional[AbortSignal] = None,
    ) -> list[SearchResult]:
        intent = await self._classifier.classify(query, abort_signal)
        plan = plan_for(intent)
        logger.debug(f"Retrieval plan for {intent.type.value}: {plan}")

        results = await self._retriever.search(
            query, user_id, plan.to_options(top_k or self._top_k), abort_signal
        )

        if intent.type == IntentType.SUMMARIZATION:
            results = OnePerDocumentStrategy().apply(query, results)

        return results[: plan.limit]

    async def get_document_context(
        self,
        query: str,
        user_id: str,
        document_id: Optional[str] = None,
        limit: int = 5,
        abort_signal: Optional[AbortSignal] = None,
    ) -> str:
        """Format the best matches as prompt context, grouped by document.

        Returns an empty string when nothing relevant is found.
        """
        results = await self.retrieve(query, user_id, abort_signal=abort_signal)
        if document_id:
            results = [r for r in results if r.document_id == document_id]
        if not results:
            return ""

        grouped: dict[str, list[SearchResult]] = {}
        for result in results[:limit]:
            grouped.setdefault(result.document_id, []).append(result)

        sections = []
        for doc_results in grouped.values():
            lines = []
            for i, r in enumerate(sorted(doc_results, key=lambda r: r.chunk_index), 1):
                excerpt = r.content
                if len(excerpt) > EXCERPT_CHARS:
                    excerpt = excerpt[:EXCERPT_CHARS] + "..."
                lines.append(f"  {i}. {excerpt}")
            sections.append(f"**{doc_results[0].document_title}**\n" + "\n\n".join(lines))

        context = "\n\n---\n\n".join(sections)
        if len(context) > MAX_CONTEXT_CHARS:
            context = await self._selector.compress(
                context, COMPRESSED_CONTEXT_TOKENS, abort_signal
            )
        return context
