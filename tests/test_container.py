"""Tests for dependency wiring and the in-memory document store."""

from unittest.mock import Mock

import pytest

from docground.config.settings import Settings
from docground.container import Container, configure_container
from docground.core.models.chat import UserMessage, parse_messages
from docground.core.models.document import DocumentChunk, StoredDocument
from docground.core.protocols.embedder import EmbedderProtocol
from docground.core.protocols.web_search import WebSearchProtocol
from docground.core.services.orchestrator import RAGOrchestrator
from docground.core.services.search_service import AdaptiveRetriever
from docground.infrastructure.embeddings.openai_embedder import OpenAIEmbedder
from docground.infrastructure.repositories.memory_store import InMemoryDocumentStore


class TestContainer:

    def test_singletons_are_cached(self):
        container = Container()
        container.register(list, list, singleton=True)
        container.register(dict, dict)

        assert container.resolve(list) is container.resolve(list)
        assert container.resolve(dict) is not container.resolve(dict)

        first = container.resolve(list)
        container.reset()
        assert container.resolve(list) is not first

    def test_unknown_interface(self):
        with pytest.raises(KeyError):
            Container().resolve(set)

    def test_configure_wires_pipeline(self, tmp_path):
        settings = Settings(
            openai_api_key="test",
            enable_web_search=True,
            router_config_path=str(tmp_path / "router.json"),
        )

        container = configure_container(settings)
        orchestrator = container.resolve(RAGOrchestrator)

        assert isinstance(orchestrator, RAGOrchestrator)
        assert orchestrator._web_search is container.resolve(WebSearchProtocol)
        assert orchestrator._retriever is container.resolve(AdaptiveRetriever)
        assert isinstance(container.resolve(EmbedderProtocol), OpenAIEmbedder)

    @pytest.mark.parametrize("warmup,loads", [(True, 1), (False, 0)])
    def test_local_embedder_warmup(self, tmp_path, monkeypatch, warmup, loads):
        from docground.infrastructure.embeddings import sentence_transformer

        model_cls = Mock()
        monkeypatch.setattr(sentence_transformer, "SentenceTransformer", model_cls)
        settings = Settings(
            embedding_backend="sentence_transformers",
            embedding_model="local-model",
            embedding_dimension=8,
            embedding_warmup=warmup,
            router_config_path=str(tmp_path / "router.json"),
        )

        embedder = configure_container(settings).resolve(EmbedderProtocol)

        assert isinstance(embedder, sentence_transformer.SentenceTransformerEmbedder)
        assert model_cls.call_count == loads
        if loads:
            model_cls.assert_called_once_with("local-model")

    def test_web_search_disabled(self, tmp_path):
        settings = Settings(
            openai_api_key="test",
            enable_web_search=False,
            router_config_path=str(tmp_path / "router.json"),
        )

        orchestrator = configure_container(settings).resolve(RAGOrchestrator)

        assert orchestrator._web_search is None


class TestInMemoryDocumentStore:

    @pytest.fixture
    def store(self) -> InMemoryDocumentStore:
        store = InMemoryDocumentStore()
        store.add_document(StoredDocument(id="d1", user_id="u1", title="One", content="<p>x</p>"))
        return store

    async def test_documents_are_user_scoped(self, store):
        assert (await store.get_document("d1", "u1")).title == "One"
        assert await store.get_document("d1", "u2") is None
        assert await store.list_documents("u2") == []

    async def test_replace_chunks_reports_removed(self, store):
        first = [DocumentChunk(f"c{i}", "d1", "t", [0.0], i) for i in (2, 0, 1)]
        assert await store.replace_chunks("d1", first) == 0
        assert [c.chunk_index for c in await store.list_chunks("d1")] == [0, 1, 2]

        assert await store.replace_chunks("d1", first[:1]) == 3

    async def test_versions_newest_first(self, store):
        await store.create_version("d1", "h1", 10, 1)
        await store.create_version("d1", "h2", 12, 2)

        assert (await store.latest_version("d1")).content_hash == "h2"
        assert [v.content_hash for v in await store.list_versions("d1")] == ["h2", "h1"]

    async def test_mark_vectorized(self, store):
        await store.mark_vectorized("d1", "x")

        document = await store.get_document("d1")
        assert document.is_vectorized
        assert document.text == "x"

    async def test_delete_document(self, store):
        await store.create_version("d1", "h1", 10, 1)
        store.delete_document("d1")

        assert await store.get_document("d1") is None
        assert await store.latest_version("d1") is None


def test_parse_messages():
    messages = parse_messages([{"role": "user", "content": "hi"}, {"role": "system", "content": "s"}])

    assert isinstance(messages[0], UserMessage)
    assert messages[1].role == "system"
