"""Orchestrator - routes a request through retrieval, web search and generation."""

import logging
import re
import time
from typing import Optional

from ..cancellation import AbortSignal, is_aborted
from ..errors import RequestAborted
from ..models.chat import ChatMessage, Completion, SystemMessage, UserMessage
from ..models.document import RagChunk
from ..models.evidence import ContextRef, WebPassage, build_evidence_bundle
from ..models.orchestration import (
    RAGCancelled,
    RAGFailure,
    RAGMetadata,
    RAGResult,
    RAGSuccess,
)
from ..models.query import RouteIntent, RouterContext, RouterDecision
from ..protocols.llm import LLMProtocol
from ..protocols.web_search import WebSearchProtocol
from .context_selector import ContextSelector, to_rag_chunk
from .instruction_builder import InstructionBuilder, infer_task, is_writing_task
from .router_service import RouterService
from .search_service import AdaptiveRetriever
from .verification import CITATION_RE, validate_response, verify_instruction

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "Sorry, something went wrong while preparing the answer. Please try again."
FULL_COVERAGE_DOCS = 8

EXTRACT_TERMS_PROMPT = """Extract only the search terms from this user prompt, removing any writing instructions or commands.

User Prompt: "{ask}"

Remove words like "write", "create", "generate", "report", "use", "find", "latest", "data".
Return only the core search terms that describe what information to find.

Examples:
- "write a report on tesla stock. use real metrics" → "tesla stock metrics"
- "create an analysis of apple earnings" → "apple earnings"

Return only the search terms:"""

INSTRUCTION_WORDS = (
    "write", "create", "generate", "compose", "draft", "make", "build",
    "report", "document", "analysis", "summary", "essay", "article",
    "use", "get", "find", "search", "look up", "about", "on",
    "real", "current", "latest", "recent", "up-to-date",
    "metrics", "data", "information", "facts",
)
INSTRUCTION_WORDS_RE = re.compile(
    r"\b(" + "|".join(re.escape(w) for w in INSTRUCTION_WORDS) + r")\b", re.IGNORECASE
)


def strip_instruction_words(text: str) -> str:
    """Keyword fallback for search-term extraction."""
    terms = INSTRUCTION_WORDS_RE.sub("", text.lower())
    terms = re.sub(r"[^\w\s]", " ", terms)
    terms = " ".join(terms.split())
    return terms or text


def coverage(chunks: list[RagChunk]) -> float:
    """Fraction of "full" coverage from the number of distinct documents."""
    return min(1.0, len({c.doc_id for c in chunks}) / FULL_COVERAGE_DOCS)


def improved_coverage(chunks: list[RagChunk], web_count: int, task: str) -> float:
    combined = coverage(chunks) + min(0.5, 0.1 * web_count)
    if is_writing_task(task):
        if chunks or web_count:
            return min(1.0, max(0.3, combined))
        return 0.0
    return min(1.0, combined)


def extract_citations(content: str, refs: list[ContextRef]) -> list[str]:
    """Map `[n]` markers to their context references (1-based, deduplicated)."""
    citations = []
    seen: set[int] = set()
    for match in CITATION_RE.finditer(content):
        n = int(match.group(1))
        if n in seen or not 1 <= n <= len(refs):
            continue
        seen.add(n)
        ref = refs[n - 1]
        kind = "Document" if ref.type == "doc" else "Web"
        citations.append(f"[{n}]: {kind} - {ref.id}")
    return citations


class RAGOrchestrator:
    """RAG-first pipeline with optional web augmentation."""

    def __init__(
        self,
        llm: LLMProtocol,
        router: RouterService,
        retriever: AdaptiveRetriever,
        selector: ContextSelector,
        builder: InstructionBuilder,
        web_search: Optional[WebSearchProtocol] = None,
        chat_model: Optional[str] = None,
        fallback_model: Optional[str] = None,
        routing_model: Optional[str] = None,
        max_tokens: int = 2000,
        context_budget_ratio: float = 0.7,
        top_k: int = 30,
        min_confidence: float = 0.7,
        min_coverage: float = 0.5,
        enable_web_search: bool = False,
    ):
        """Initialize orchestrator.

        Args:
            llm: Chat client.
            router: Request router.
            retriever: Adaptive document retrieval.
            selector: Context packing and confidence.
            builder: Instruction builder.
            web_search: Web search provider (optional).
            chat_model: Primary generation model.
            fallback_model: Model used when the primary one fails.
            routing_model: Small model for search-term extraction.
            max_tokens: Response token budget.
            context_budget_ratio: Share of the budget given to document context.
            top_k: Candidate documents fetched from the vector store.
            min_confidence: Below this retrieval confidence the web is consulted.
            min_coverage: Below this coverage the web is consulted.
            enable_web_search: Master switch for the web path.
        """
        self._llm = llm
        self._router = router
        self._retriever = retriever
        self._selector = selector
        self._builder = builder
        self._web_search = web_search
        self._chat_model = chat_model
        self._fallback_model = fallback_model
        self._routing_model = routing_model
        self._max_tokens = max_tokens
        self._context_budget_ratio = context_budget_ratio
        self._top_k = top_k
        self._min_confidence = min_confidence
        self._min_coverage = min_coverage
        self._enable_web_search = enable_web_search and web_search is not None

    def should_use_web(
        self,
        decision: RouterDecision,
        rag_confidence: float,
        rag_coverage: float,
        is_relevant: bool,
    ) -> bool:
        if not self._enable_web_search:
            return False
        if decision.intent == RouteIntent.WEB_SEARCH:
            return True
        if decision.intent == RouteIntent.ASK and decision.needs_recency:
            return True
        if not is_relevant:
            return True
        return rag_confidence < self._min_confidence or rag_coverage < self._min_coverage

    async def process_query(
        self,
        ask: str,
        user_id: str,
        document_id: Optional[str] = None,
        selection: Optional[str] = None,
        conversation_length: int = 0,
        abort_signal: Optional[AbortSignal] = None,
    ) -> RAGResult:
        """Answer a request grounded in the user's documents and the web.

        Args:
            ask: User request.
            user_id: Owner of the searchable documents.
            document_id: Document attached to the request, if any.
            selection: Selected text the request refers to.
            conversation_length: Number of prior turns.
            abort_signal: Checked before every stage.

        Returns:
            Success, typed failure, or cancellation. Never raises.
        """
        started = time.time()
        metadata = RAGMetadata(task="ask")
        stage = "classify"

        def cancelled() -> RAGCancelled:
            metadata.processing_time = time.time() - started
            logger.info(f"Request cancelled before {stage}")
            return RAGCancelled(stage=stage, metadata=metadata)

        try:
            if is_aborted(abort_signal):
                return cancelled()

            context = RouterContext(
                user_id=user_id,
                has_attached_docs=document_id is not None,
                doc_ids=[document_id] if document_id else [],
                is_selection_present=bool(selection),
                selection_length=len(selection or ""),
                conversation_length=conversation_length,
                document_id=document_id,
            )
            decision = await self._router.classify(ask, context)
            is_relevant = decision.intent == RouteIntent.RAG_QUERY
            metadata.task = infer_task(decision, ask)
            metadata.is_relevant_to_documents = is_relevant

            rag_hits: list[RagChunk] = []
            rag_context: list[RagChunk] = []
            rag_confidence = 0.0
            rag_coverage = 0.0

            if is_relevant:
                stage = "retrieve"
                if is_aborted(abort_signal):
                    return cancelled()

                results = await self._retriever.retrieve(
                    ask, user_id, top_k=self._top_k, abort_signal=abort_signal
                )
                rag_hits = [to_rag_chunk(r) for r in results]
                expanded = await self._selector.expand_hierarchy(rag_hits, neighbors=1)
                rag_context = self._selector.pack(
                    expanded, int(self._max_tokens * self._context_budget_ratio)
                )
                rag_confidence = self._selector.confidence(rag_hits)
                rag_coverage = coverage(rag_hits)
                metadata.rag_confidence = rag_confidence

            web_passages: list[WebPassage] = []
            if self.should_use_web(decision, rag_confidence, rag_coverage, is_relevant):
                stage = "web_search"
                if is_aborted(abort_signal):
                    return cancelled()
                web_passages = await self._search_web(ask, abort_signal)
                metadata.used_web = bool(web_passages)

            stage = "build_evidence"
            if is_aborted(abort_signal):
                return cancelled()
            evidence = build_evidence_bundle(rag_context, web_passages)
            metadata.coverage = improved_coverage(rag_context, len(web_passages), metadata.task)
            metadata.total_tokens = evidence.total_tokens
            metadata.sources_used = len(evidence.items)

            stage = "build_instruction"
            if is_aborted(abort_signal):
                return cancelled()
            instruction = self._builder.build(
                decision,
                ask,
                metadata.task,
                evidence,
                rag_confidence,
                metadata.coverage,
                max_tokens=self._max_tokens,
                selection=selection,
            )

            stage = "verify"
            writing = is_writing_task(metadata.task)
            verification = verify_instruction(
                instruction,
                rag_context,
                min_coverage=0.2 if writing else 0.5,
                require_min_coverage=not writing,
                writing_task=writing,
            )
            if not verification.is_valid:
                logger.warning(f"Instruction verification failed: {verification.errors}")

            stage = "execute"
            if is_aborted(abort_signal):
                return cancelled()
            messages: list[ChatMessage] = [
                SystemMessage(content=self._builder.system_prompt(instruction)),
                UserMessage(content=ask),
            ]
            if selection:
                messages.append(UserMessage(content=f"Selected text: {selection}"))

            temperature = 0.8 if instruction.needs.creativity == "high" else 0.3
            completion = await self._generate(
                messages, temperature, instruction.policies.max_tokens, abort_signal
            )

            stage = "extract_citations"
            citations = extract_citations(completion.content, instruction.context_refs)
            response_validation = validate_response(completion.content, instruction)
            if response_validation.errors:
                logger.info(f"Response validation: {response_validation.errors}")

            metadata.processing_time = time.time() - started
            logger.info(
                f"Answered '{ask[:50]}' task={metadata.task} sources={metadata.sources_used} "
                f"web={metadata.used_web} in {metadata.processing_time:.2f}s"
            )
            return RAGSuccess(
                content=completion.content,
                citations=citations,
                metadata=metadata,
                verification=verification,
                response_validation=response_validation,
            )

        except RequestAborted:
            return cancelled()

        except Exception as e:
            metadata.processing_time = time.time() - started
            logger.error(f"Orchestration failed at {stage}: {type(e).__name__}: {e}")
            return RAGFailure(
                message=FAILURE_MESSAGE,
                metadata=metadata,
                error_type=type(e).__name__,
                stage=stage,
            )

    async def _generate(
        self,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
        abort_signal: Optional[AbortSignal],
    ) -> Completion:
        try:
            return await self._llm.complete(
                messages,
                model=self._chat_model,
                temperature=temperature,
                max_tokens=max_tokens,
                abort_signal=abort_signal,
            )
        except RequestAborted:
            raise
        except Exception as e:
            if not self._fallback_model or self._fallback_model == self._chat_model:
                raise
            logger.warning(
                f"Primary model failed ({type(e).__name__}), retrying with {self._fallback_model}"
            )
            return await self._llm.complete(
                messages,
                model=self._fallback_model,
                temperature=temperature,
                max_tokens=max_tokens,
                abort_signal=abort_signal,
            )

    async def extract_search_terms(
        self, ask: str, abort_signal: Optional[AbortSignal] = None
    ) -> str:
        try:
            completion = await self._llm.complete(
                [UserMessage(content=EXTRACT_TERMS_PROMPT.format(ask=ask))],
                model=self._routing_model,
                temperature=0.1,
                max_tokens=50,
                abort_signal=abort_signal,
            )
        except RequestAborted:
            raise
        except Exception as e:
            logger.warning(f"Search-term extraction failed: {e}")
            return strip_instruction_words(ask)

        terms = completion.content.strip().strip('"')
        if not terms or terms == ask or len(terms) > len(ask) * 0.8:
            return strip_instruction_words(ask)
        return terms

    async def _search_web(
        self, ask: str, abort_signal: Optional[AbortSignal]
    ) -> list[WebPassage]:
        query = await self.extract_search_terms(ask, abort_signal)
        if is_aborted(abort_signal):
            raise RequestAborted("aborted before web search")

        try:
            result = await self._web_search.search(query, abort_signal=abort_signal)
        except RequestAborted:
            raise
        except Exception as e:
            logger.warning(f"Web search failed: {e}")
            return []

        logger.info(f"Web search for '{query}': {len(result.citations)} citation(s)")
        return [
            WebPassage(title=c.title or "Web Result", url=c.url, content=result.text)
            for c in result.citations
        ]
