"""Document domain models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ChangeType(str, Enum):
    """Kind of content change between two document versions."""
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass
class StoredDocument:
    """Relational view of a document."""
    id: str
    user_id: str
    title: str
    content: str = ""
    plain_text: str = ""
    is_vectorized: bool = False

    @property
    def text(self) -> str:
        """Best available text (plain text first)."""
        return self.plain_text or self.content


@dataclass
class DocumentChunk:
    """Document chunk stored with its own embedding."""
    id: str
    document_id: str
    content: str
    embedding: list[float]
    chunk_index: int


@dataclass
class DocumentVersion:
    """Vectorized version of a document."""
    document_id: str
    content_hash: str
    content_length: int
    chunks_count: int
    vectorized_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class DocumentChange:
    """Span that differs between previous and new content."""
    type: ChangeType
    start_index: int
    end_index: int
    old_content: Optional[str] = None
    new_content: Optional[str] = None


@dataclass
class VectorizationResult:
    """Outcome of a single document vectorization."""
    success: bool = False
    chunks_processed: int = 0
    chunks_added: int = 0
    chunks_updated: int = 0
    chunks_deleted: int = 0
    processing_time: float = 0.0
    errors: list[str] = field(default_factory=list)


@dataclass
class VectorizationStatus:
    """Snapshot of a document's vectorization state."""
    is_vectorized: bool
    chunks_count: int
    last_vectorized: Optional[datetime]
    needs_update: bool


@dataclass
class VectorMatch:
    """Raw match from the vector store."""
    id: str
    score: float
    content: str
    metadata: dict = field(default_factory=dict)
    embedding: Optional[list[float]] = None


@dataclass
class SearchResult:
    """Ranked retrieval result. Transient, never persisted."""
    document_id: str
    document_title: str
    content: str
    similarity: float
    chunk_index: int
    score: Optional[float] = None
    semantic_score: Optional[float] = None
    keyword_score: Optional[float] = None

    @property
    def rank_score(self) -> float:
        """Final score (combined if available, else similarity)."""
        return self.score if self.score is not None else self.similarity


@dataclass
class RagChunk:
    """Chunk packed into the orchestrator's context window."""
    id: str
    doc_id: str
    anchor: str
    text: str
    score: float
    tokens: int
    title: str = ""
    headings: list[str] = field(default_factory=list)
    chunk_index: int = 0
