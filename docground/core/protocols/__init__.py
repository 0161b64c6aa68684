"""Protocol interfaces for dependency injection."""
from .document_store import DocumentStoreProtocol
from .embedder import EmbedderProtocol
from .llm import LLMProtocol
from .vector_store import VectorStoreProtocol
from .web_search import WebSearchProtocol

__all__ = [
    "DocumentStoreProtocol",
    "EmbedderProtocol",
    "LLMProtocol",
    "VectorStoreProtocol",
    "WebSearchProtocol",
]
