"""Shared fixtures and in-memory fakes for the docground test suite."""

import math
import re
import sys
import zlib
from pathlib import Path
from typing import Callable, Optional

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest

from docground.core.cancellation import AbortSignal
from docground.core.errors import RequestAborted, VectorStoreUnavailable
from docground.core.models.chat import Completion
from docground.core.models.document import StoredDocument, VectorMatch
from docground.core.models.evidence import WebSearchResult
from docground.core.services.embedding_gateway import EmbeddingGateway
from docground.core.services.metrics import PerformanceMonitor
from docground.core.strategies.similarity import cosine_similarity
from docground.infrastructure.repositories.memory_store import InMemoryDocumentStore

FAKE_DIMENSION = 256
WORD_RE = re.compile(r"\w+")


class FakeEmbedder:
    """Bag-of-words hashing embedder; texts sharing words are similar."""

    def __init__(self, dimension: int = FAKE_DIMENSION, fail_on: Optional[str] = None):
        self.dimension = dimension
        self.fail_on = fail_on
        self.calls: list[list[str]] = []

    @property
    def texts_embedded(self) -> int:
        return sum(len(batch) for batch in self.calls)

    def vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimension
        for word in WORD_RE.findall(text.lower()):
            vec[zlib.crc32(word.encode()) % self.dimension] += 1.0
        return vec

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on and any(self.fail_on in t for t in texts):
            raise RuntimeError("embedding backend exploded")
        return [self.vector(t) for t in texts]


class FakeLLM:
    """Chat client answering through a responder callable."""

    def __init__(self, responder: Optional[Callable] = None):
        self.responder = responder or (lambda messages, model: "")
        self.calls: list[dict] = []

    async def complete(
        self,
        messages,
        model=None,
        temperature=None,
        max_tokens=None,
        abort_signal=None,
    ) -> Completion:
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        content = self.responder(messages, model)
        return Completion(content=content, model=model or "")


class FakeVectorStore:
    """Vector store computing exact cosine similarity in memory."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.rows: dict[str, tuple[list[float], str, dict]] = {}
        self.queries = 0

    def upsert(self, ids, embeddings, documents, metadatas) -> None:
        if self.fail:
            raise VectorStoreUnavailable("down")
        for i, vector_id in enumerate(ids):
            self.rows[vector_id] = (embeddings[i], documents[i], metadatas[i])

    def query(self, query_embedding, user_id, top_k=10) -> list[VectorMatch]:
        self.queries += 1
        if self.fail:
            raise VectorStoreUnavailable("down")
        matches = [
            VectorMatch(
                id=vector_id,
                score=cosine_similarity(query_embedding, embedding),
                content=document,
                metadata=metadata,
                embedding=embedding,
            )
            for vector_id, (embedding, document, metadata) in self.rows.items()
            if metadata.get("user_id") == user_id
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    def delete(self, ids) -> None:
        for vector_id in ids:
            self.rows.pop(vector_id, None)


class FakeWebSearch:
    def __init__(self, result: Optional[WebSearchResult] = None):
        self.result = result or WebSearchResult(text="")
        self.queries: list[str] = []

    async def search(
        self, query: str, abort_signal: Optional[AbortSignal] = None
    ) -> WebSearchResult:
        self.queries.append(query)
        if abort_signal is not None and abort_signal.aborted:
            raise RequestAborted("aborted before web search")
        return self.result


def last_user_text(messages) -> str:
    return messages[-1].content if messages else ""


def is_close(a: float, b: float, tol: float = 1e-9) -> bool:
    return math.isclose(a, b, abs_tol=tol)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def gateway(embedder) -> EmbeddingGateway:
    return EmbeddingGateway(embedder, dimension=embedder.dimension, batch_size=4)


@pytest.fixture
def vector_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture
def monitor() -> PerformanceMonitor:
    return PerformanceMonitor(max_metrics=50)


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def add_document(store):
    """Insert a document row owned by `u1`."""

    def _add(document_id: str, content: str, title: str = "", user_id: str = "u1"):
        return store.add_document(
            StoredDocument(
                id=document_id,
                user_id=user_id,
                title=title or document_id.title(),
                content=content,
            )
        )

    return _add
