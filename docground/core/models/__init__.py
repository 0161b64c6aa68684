"""Domain models."""
from .chat import AssistantMessage, ChatMessage, Completion, SystemMessage, Usage, UserMessage
from .document import (
    ChangeType,
    DocumentChange,
    DocumentChunk,
    DocumentVersion,
    RagChunk,
    SearchResult,
    StoredDocument,
    VectorMatch,
    VectorizationResult,
    VectorizationStatus,
)
from .evidence import (
    ContextRef,
    EvidenceBundle,
    Instruction,
    VerificationResult,
    WebCitation,
    WebPassage,
    WebSearchResult,
)
from .orchestration import RAGCancelled, RAGFailure, RAGMetadata, RAGResult, RAGSuccess
from .query import (
    DEFAULT_INTENT,
    IntentType,
    QueryIntent,
    RetrievalPlan,
    RouteIntent,
    RouterContext,
    RouterDecision,
    SearchOptions,
    SearchStrategy,
)

__all__ = [
    "AssistantMessage",
    "ChatMessage",
    "Completion",
    "SystemMessage",
    "Usage",
    "UserMessage",
    "ChangeType",
    "DocumentChange",
    "DocumentChunk",
    "DocumentVersion",
    "RagChunk",
    "SearchResult",
    "StoredDocument",
    "VectorMatch",
    "VectorizationResult",
    "VectorizationStatus",
    "ContextRef",
    "EvidenceBundle",
    "Instruction",
    "VerificationResult",
    "WebCitation",
    "WebPassage",
    "WebSearchResult",
    "RAGCancelled",
    "RAGFailure",
    "RAGMetadata",
    "RAGResult",
    "RAGSuccess",
    "DEFAULT_INTENT",
    "IntentType",
    "QueryIntent",
    "RetrievalPlan",
    "RouteIntent",
    "RouterContext",
    "RouterDecision",
    "SearchOptions",
    "SearchStrategy",
]
