"""Core business services."""
from .change_tracker import ChangeTracker
from .context_selector import ContextSelector
from .embedding_gateway import EmbeddingGateway
from .instruction_builder import InstructionBuilder
from .intent_classifier import IntentClassifier
from .metrics import PerformanceMonitor, RouterMetrics
from .orchestrator import RAGOrchestrator
from .query_preprocessor import QueryPreprocessor
from .router_service import RouterService
from .search_service import AdaptiveRetriever, HybridRetriever
from .vectorizer import Vectorizer

__all__ = [
    "ChangeTracker",
    "ContextSelector",
    "EmbeddingGateway",
    "InstructionBuilder",
    "IntentClassifier",
    "PerformanceMonitor",
    "RouterMetrics",
    "RAGOrchestrator",
    "QueryPreprocessor",
    "RouterService",
    "AdaptiveRetriever",
    "HybridRetriever",
    "Vectorizer",
]
