"""Tests for the RAG orchestrator."""

from unittest.mock import AsyncMock

import pytest

from conftest import FakeLLM, FakeWebSearch
from docground.core.cancellation import AbortSignal
from docground.core.errors import ProviderError, RequestAborted
from docground.core.models.evidence import ContextRef, WebCitation, WebSearchResult
from docground.core.models.orchestration import RAGCancelled, RAGFailure, RAGSuccess
from docground.core.models.query import RouteIntent, RouterDecision
from docground.core.services.change_tracker import ChangeTracker
from docground.core.services.context_selector import ContextSelector
from docground.core.services.instruction_builder import InstructionBuilder
from docground.core.services.intent_classifier import IntentClassifier
from docground.core.services.metrics import RouterMetrics
from docground.core.services.orchestrator import (
    FAILURE_MESSAGE,
    RAGOrchestrator,
    extract_citations,
    improved_coverage,
    strip_instruction_words,
)
from docground.core.services.query_preprocessor import QueryPreprocessor
from docground.core.services.router_service import RouterService
from docground.core.services.search_service import AdaptiveRetriever, HybridRetriever
from docground.core.services.vectorizer import Vectorizer

SOLAR = "Solar panels convert sunlight into electricity. Solar panels need sunlight."
PARIS = WebSearchResult(
    text="Paris is the capital and largest city of France.",
    citations=[WebCitation(title="Paris - Wikipedia", url="https://en.wikipedia.org/wiki/Paris")],
)


def responder(answer: str = "Paris is the capital of France [1].", fail_models=()):
    """Answer each prompt kind the pipeline sends."""

    def respond(messages, model):
        prompt = messages[-1].content
        if prompt.startswith("Classify this query"):
            return '{"type": "factual", "confidence": 0.9, "suggestedLimit": 5}'
        if prompt.startswith("Extract only the search terms"):
            return "capital of France"
        if model in fail_models:
            raise ProviderError(f"{model} overloaded: secret-internal-detail")
        return answer

    return respond


@pytest.fixture
def build(tmp_path, gateway, vector_store, store, monitor):
    def _build(llm, web_search=None, enable_web_search=False, **kwargs):
        selector = ContextSelector(llm=llm, store=store)
        retriever = HybridRetriever(
            gateway=gateway,
            vector_store=vector_store,
            store=store,
            preprocessor=QueryPreprocessor(llm),
            selector=selector,
            monitor=monitor,
        )
        return RAGOrchestrator(
            llm=llm,
            router=RouterService(
                None, RouterMetrics(), config_path=str(tmp_path / "missing.json")
            ),
            retriever=AdaptiveRetriever(IntentClassifier(llm), retriever, selector),
            selector=selector,
            builder=InstructionBuilder(),
            web_search=web_search,
            chat_model="primary",
            fallback_model="backup",
            routing_model="router",
            enable_web_search=enable_web_search,
            **kwargs,
        )

    return _build


@pytest.fixture
async def solar_indexed(gateway, vector_store, store, monitor, add_document):
    add_document("solar", SOLAR, title="Solar notes")
    vectorizer = Vectorizer(gateway, vector_store, store, ChangeTracker(store), monitor)
    assert (await vectorizer.vectorize("solar", SOLAR)).success


class TestWebPath:

    async def test_general_question_uses_web_and_skips_documents(
        self, build, embedder, vector_store
    ):
        llm = FakeLLM(responder())
        web = FakeWebSearch(PARIS)
        orchestrator = build(llm, web_search=web, enable_web_search=True)

        result = await orchestrator.process_query("What is the capital of France?", "u1")

        assert isinstance(result, RAGSuccess)
        assert result.metadata.is_relevant_to_documents is False
        assert result.metadata.used_web is True
        assert web.queries == ["capital of France"]
        assert embedder.calls == []
        assert vector_store.queries == 0
        assert result.citations == ["[1]: Web - https://en.wikipedia.org/wiki/Paris"]

    async def test_web_disabled_answers_without_sources(self, build):
        llm = FakeLLM(responder("Paris."))
        web = FakeWebSearch(PARIS)
        orchestrator = build(llm, web_search=web, enable_web_search=False)

        result = await orchestrator.process_query("What is the capital of France?", "u1")

        assert isinstance(result, RAGSuccess)
        assert result.content == "Paris."
        assert result.metadata.used_web is False
        assert web.queries == []
        assert result.citations == []

    async def test_web_failure_degrades_to_no_web(self, build):
        llm = FakeLLM(responder("Paris."))
        web = FakeWebSearch()
        web.search = AsyncMock(side_effect=ProviderError("searx down"))
        orchestrator = build(llm, web_search=web, enable_web_search=True)

        result = await orchestrator.process_query("What is the capital of France?", "u1")

        assert isinstance(result, RAGSuccess)
        assert result.metadata.used_web is False


class TestDocumentPath:

    async def test_document_question_cites_chunks(self, build, solar_indexed):
        llm = FakeLLM(responder("Panels turn sunlight into power [1]. Again [1]. Bogus [7]."))
        orchestrator = build(llm)

        result = await orchestrator.process_query(
            "What does my research say about solar panels and sunlight?", "u1"
        )

        assert isinstance(result, RAGSuccess)
        assert result.metadata.is_relevant_to_documents is True
        assert result.metadata.task == "rag"
        assert result.metadata.sources_used >= 1
        assert 0.0 < result.metadata.rag_confidence <= 1.0
        assert result.citations == ["[1]: Document - solar:0"]
        assert any("Invalid citations" in e for e in result.response_validation.errors)

    async def test_generation_prompt_lists_sources(self, build, solar_indexed):
        llm = FakeLLM(responder("ok [1]"))
        orchestrator = build(llm)

        await orchestrator.process_query("What does my research say about solar panels?", "u1")

        generation = [c for c in llm.calls if c["model"] == "primary"][0]
        system, user = generation["messages"]
        assert system.role == "system"
        assert "AVAILABLE SOURCES" in system.content
        assert "solar:0" in system.content
        assert user.content == "What does my research say about solar panels?"
        assert generation["temperature"] == 0.3

    async def test_selection_is_appended(self, build):
        llm = FakeLLM(responder("done"))
        orchestrator = build(llm)

        await orchestrator.process_query(
            "Explain this sentence", "u1", selection="The quick brown fox."
        )

        generation = [c for c in llm.calls if c["model"] == "primary"][0]
        assert generation["messages"][-1].content == "Selected text: The quick brown fox."


class TestWritingTasks:

    async def test_write_task_uses_high_temperature(self, build):
        llm = FakeLLM(responder("# Essay\n\nText."))
        orchestrator = build(llm)

        result = await orchestrator.process_query("Write an essay about rivers", "u1")

        assert isinstance(result, RAGSuccess)
        assert result.metadata.task == "write"
        assert result.metadata.coverage == 0.0
        assert result.verification.is_valid
        generation = [c for c in llm.calls if c["model"] == "primary"][0]
        assert generation["temperature"] == 0.8


class TestCancellation:

    async def test_abort_before_start(self, build, embedder):
        llm = FakeLLM(responder())
        signal = AbortSignal()
        signal.abort()

        result = await build(llm).process_query("What does my document say?", "u1", abort_signal=signal)

        assert isinstance(result, RAGCancelled)
        assert result.stage == "classify"
        assert llm.calls == []
        assert embedder.calls == []

    async def test_abort_before_retrieval(self, build, embedder, solar_indexed):
        llm = FakeLLM(responder())
        orchestrator = build(llm)
        signal = AbortSignal()
        embedder.calls.clear()

        async def classify_then_abort(query, context):
            signal.abort()
            return RouterDecision(intent=RouteIntent.RAG_QUERY, confidence=0.9)

        orchestrator._router.classify = AsyncMock(side_effect=classify_then_abort)

        result = await orchestrator.process_query("What does my document say?", "u1", abort_signal=signal)

        assert isinstance(result, RAGCancelled)
        assert result.stage == "retrieve"
        assert embedder.calls == []
        assert llm.calls == []

    async def test_abort_during_generation(self, build):
        def respond(messages, model):
            raise RequestAborted("aborted during request")

        result = await build(FakeLLM(respond)).process_query("What is 2 + 2?", "u1")

        assert isinstance(result, RAGCancelled)
        assert result.stage == "execute"

    async def test_abort_during_web_search(self, build):
        llm = FakeLLM(responder())
        signal = AbortSignal()
        web = FakeWebSearch(PARIS)

        async def search_then_abort(query, abort_signal=None):
            assert abort_signal is signal
            signal.abort()
            raise RequestAborted("aborted during web search")

        web.search = AsyncMock(side_effect=search_then_abort)
        orchestrator = build(llm, web_search=web, enable_web_search=True)

        result = await orchestrator.process_query(
            "What is the capital of France?", "u1", abort_signal=signal
        )

        assert isinstance(result, RAGCancelled)
        assert result.stage == "web_search"
        web.search.assert_awaited_once()


class TestFailures:

    async def test_fallback_model_on_provider_error(self, build):
        llm = FakeLLM(responder("from backup", fail_models=("primary",)))

        result = await build(llm).process_query("What is 2 + 2?", "u1")

        assert isinstance(result, RAGSuccess)
        assert result.content == "from backup"
        assert [c["model"] for c in llm.calls] == ["primary", "backup"]

    async def test_both_models_failing_is_a_typed_failure(self, build):
        llm = FakeLLM(responder(fail_models=("primary", "backup")))

        result = await build(llm).process_query("What is 2 + 2?", "u1")

        assert isinstance(result, RAGFailure)
        assert result.stage == "execute"
        assert result.error_type == "ProviderError"
        assert result.message == FAILURE_MESSAGE
        assert "secret-internal-detail" not in result.message


class TestHelpers:

    def test_extract_citations(self):
        refs = [
            ContextRef(type="doc", id="a:0", why="x"),
            ContextRef(type="web", id="https://example.com", why="y"),
        ]

        citations = extract_citations("See [2], then [1], again [2] and [9] or [0].", refs)

        assert citations == ["[2]: Web - https://example.com", "[1]: Document - a:0"]

    def test_strip_instruction_words(self):
        terms = strip_instruction_words("write a report on tesla stock. use real metrics")

        assert "tesla stock" in terms
        assert "write" not in terms
        assert "." not in terms

    def test_strip_keeps_input_when_nothing_left(self):
        assert strip_instruction_words("write report") == "write report"

    async def test_echoed_search_terms_use_fallback(self, build):
        ask = "find the latest data about lithium prices"
        llm = FakeLLM(lambda m, model: ask)

        terms = await build(llm).extract_search_terms(ask)

        assert terms == "the lithium prices"

    @pytest.mark.parametrize(
        "docs,web,task,expected",
        [
            (0, 0, "write", 0.0),
            (0, 1, "write", 0.3),
            (8, 10, "ask", 1.0),
            (4, 2, "rag", 0.7),
        ],
    )
    def test_improved_coverage(self, docs, web, task, expected):
        from docground.core.models.document import RagChunk

        chunks = [RagChunk(f"d{i}:0", f"d{i}", "doc#p0", "t", 0.5, 1) for i in range(docs)]
        assert improved_coverage(chunks, web, task) == pytest.approx(expected)
