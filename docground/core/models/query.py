"""Query and routing domain models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class IntentType(str, Enum):
    FACTUAL = "factual"
    ANALYTICAL = "analytical"
    CREATIVE = "creative"
    COMPARATIVE = "comparative"
    PROCEDURAL = "procedural"
    SUMMARIZATION = "summarization"


class SearchStrategy(str, Enum):
    SEMANTIC = "semantic"
    HYBRID = "hybrid"
    KEYWORD = "keyword"


@dataclass(frozen=True)
class QueryIntent:
    """Query label with recommended retrieval parameters."""
    type: IntentType = IntentType.FACTUAL
    confidence: float = 0.5
    suggested_strategy: SearchStrategy = SearchStrategy.HYBRID
    suggested_limit: int = 5
    needs_context: bool = True


DEFAULT_INTENT = QueryIntent()


@dataclass
class SearchOptions:
    """Parameters for a single (non-adaptive) search."""
    limit: int = 10
    threshold: float = 0.1
    strategy: SearchStrategy = SearchStrategy.HYBRID
    use_expansion: bool = True
    use_rewriting: bool = True
    include_content: bool = True
    top_k: int = 30


@dataclass(frozen=True)
class RetrievalPlan:
    """Search parameters derived from a query intent."""
    limit: int
    strategy: SearchStrategy
    threshold: float
    use_expansion: bool
    use_rewriting: bool

    def to_options(self, top_k: int = 30) -> SearchOptions:
        return SearchOptions(
            limit=self.limit,
            threshold=self.threshold,
            strategy=self.strategy,
            use_expansion=self.use_expansion,
            use_rewriting=self.use_rewriting,
            top_k=top_k,
        )


class RouteIntent(str, Enum):
    """Coarse routing label used by the orchestrator."""
    ASK = "ask"
    WEB_SEARCH = "web_search"
    RAG_QUERY = "rag_query"
    EDIT_REQUEST = "edit_request"
    EDITOR_WRITE = "editor_write"


@dataclass
class RouterContext:
    """Request-side signals available to the router."""
    user_id: str
    has_attached_docs: bool = False
    doc_ids: list[str] = field(default_factory=list)
    is_selection_present: bool = False
    selection_length: int = 0
    conversation_length: int = 0
    document_id: Optional[str] = None


@dataclass
class RouterDecision:
    """Routing outcome."""
    intent: RouteIntent
    confidence: float
    needs_recency: bool = False
    outputs: str = "answer"
    method: str = "heuristic"
    fallback_used: bool = False
    processing_time: float = 0.0
