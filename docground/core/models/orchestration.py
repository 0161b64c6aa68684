"""Orchestrator terminal states."""
from dataclasses import dataclass, field
from typing import Optional, Union

from .evidence import ResponseValidation, VerificationResult


@dataclass
class RAGMetadata:
    task: str
    rag_confidence: float = 0.0
    coverage: float = 0.0
    total_tokens: int = 0
    processing_time: float = 0.0
    sources_used: int = 0
    used_web: bool = False
    is_relevant_to_documents: bool = False


@dataclass
class RAGSuccess:
    content: str
    citations: list[str]
    metadata: RAGMetadata
    verification: VerificationResult
    response_validation: ResponseValidation = field(default_factory=ResponseValidation)
    status: str = "success"


@dataclass
class RAGFailure:
    """Typed failure; `message` is safe to show to end users."""
    message: str
    metadata: RAGMetadata
    error_type: str = ""
    stage: Optional[str] = None
    status: str = "failed"


@dataclass
class RAGCancelled:
    stage: str
    metadata: Optional[RAGMetadata] = None
    status: str = "cancelled"


RAGResult = Union[RAGSuccess, RAGFailure, RAGCancelled]
