import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from .config.logging_setup import configure_logging
from .config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Container:
    _factories: dict[type, Callable[[], Any]] = field(default_factory=dict)
    _singletons: dict[type, Any] = field(default_factory=dict)
    _singleton_flags: set[type] = field(default_factory=set)

    def register(
        self, interface: type[T], factory: Callable[[], T], singleton: bool = False
    ) -> None:
        """Register factory for interface.

        Args:
            interface: Interface type.
            factory: Factory function.
            singleton: Whether to cache instance.
        """
        self._factories[interface] = factory
        if singleton:
            self._singleton_flags.add(interface)

    def resolve(self, interface: type[T]) -> T:
        if interface in self._singletons:
            return self._singletons[interface]

        if interface not in self._factories:
            raise KeyError(f"No factory registered for {interface}")

        instance = self._factories[interface]()

        if interface in self._singleton_flags:
            self._singletons[interface] = instance

        return instance

    def reset(self) -> None:
        """Reset singletons (for testing)."""
        self._singletons.clear()


def configure_container(settings: Settings, container: Container | None = None) -> Container:
    """Wire adapters and services from settings.

    Args:
        settings: Application settings.
        container: Container to populate (a new one by default).

    Returns:
        Configured container.
    """
    from .core.protocols.document_store import DocumentStoreProtocol
    from .core.protocols.embedder import EmbedderProtocol
    from .core.protocols.llm import LLMProtocol
    from .core.protocols.vector_store import VectorStoreProtocol
    from .core.protocols.web_search import WebSearchProtocol
    from .core.services.change_tracker import ChangeTracker
    from .core.services.context_selector import ContextSelector
    from .core.services.embedding_gateway import EmbeddingGateway
    from .core.services.instruction_builder import InstructionBuilder
    from .core.services.intent_classifier import IntentClassifier
    from .core.services.metrics import PerformanceMonitor, RouterMetrics
    from .core.services.orchestrator import RAGOrchestrator
    from .core.services.query_preprocessor import QueryPreprocessor
    from .core.services.router_service import RouterService
    from .core.services.search_service import AdaptiveRetriever, HybridRetriever
    from .core.services.vectorizer import Vectorizer
    from .core.strategies.chunking import ChunkingOptions
    from .core.strategies.scoring import HybridScorer
    from .infrastructure.llm.openai_client import OpenAIChatClient
    from .infrastructure.repositories.memory_store import InMemoryDocumentStore
    from .infrastructure.vector_stores.chroma_store import ChromaVectorStore
    from .infrastructure.web_search.searxng_client import SearxngWebSearch

    configure_logging(settings.log_level)
    container = container or Container()

    def make_embedder():
        if settings.embedding_backend == "sentence_transformers":
            from .infrastructure.embeddings.sentence_transformer import (
                SentenceTransformerEmbedder,
            )

            embedder = SentenceTransformerEmbedder(
                settings.embedding_model, dimension=settings.embedding_dimension
            )
            if settings.embedding_warmup:
                embedder.warmup()
            return embedder

        from .infrastructure.embeddings.openai_embedder import OpenAIEmbedder

        return OpenAIEmbedder(
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
        )

    container.register(EmbedderProtocol, make_embedder, singleton=True)

    container.register(
        LLMProtocol,
        lambda: OpenAIChatClient(
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
            model=settings.chat_model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        ),
        singleton=True,
    )

    container.register(
        VectorStoreProtocol,
        lambda: ChromaVectorStore(
            host=settings.chroma_host,
            port=settings.chroma_port,
            collection_name=settings.chroma_collection,
        ),
        singleton=True,
    )

    container.register(DocumentStoreProtocol, InMemoryDocumentStore, singleton=True)

    container.register(
        WebSearchProtocol,
        lambda: SearxngWebSearch(
            base_url=settings.searxng_url,
            timeout=settings.web_search_timeout,
            max_results=settings.web_search_max_results,
        ),
        singleton=True,
    )

    container.register(
        PerformanceMonitor,
        lambda: PerformanceMonitor(max_metrics=settings.metrics_buffer_size),
        singleton=True,
    )

    container.register(
        EmbeddingGateway,
        lambda: EmbeddingGateway(
            embedder=container.resolve(EmbedderProtocol),
            dimension=settings.embedding_dimension,
            batch_size=settings.embedding_batch_size,
        ),
        singleton=True,
    )

    container.register(
        Vectorizer,
        lambda: Vectorizer(
            gateway=container.resolve(EmbeddingGateway),
            vector_store=container.resolve(VectorStoreProtocol),
            store=container.resolve(DocumentStoreProtocol),
            tracker=ChangeTracker(container.resolve(DocumentStoreProtocol)),
            monitor=container.resolve(PerformanceMonitor),
            chunking_options=ChunkingOptions(
                chunk_size=settings.chunk_size,
                overlap=settings.chunk_overlap,
                min_chunk_size=settings.min_chunk_size,
                max_chunk_size=settings.max_chunk_size,
            ),
            concurrency=settings.vectorize_concurrency,
        ),
        singleton=True,
    )

    container.register(
        ContextSelector,
        lambda: ContextSelector(
            llm=container.resolve(LLMProtocol),
            store=container.resolve(DocumentStoreProtocol),
            model=settings.routing_model,
        ),
        singleton=True,
    )

    container.register(
        HybridRetriever,
        lambda: HybridRetriever(
            gateway=container.resolve(EmbeddingGateway),
            vector_store=container.resolve(VectorStoreProtocol),
            store=container.resolve(DocumentStoreProtocol),
            preprocessor=QueryPreprocessor(
                container.resolve(LLMProtocol), model=settings.routing_model
            ),
            selector=container.resolve(ContextSelector),
            monitor=container.resolve(PerformanceMonitor),
            scorer=HybridScorer(settings.semantic_weight, settings.keyword_weight),
            hybrid_threshold=settings.hybrid_threshold,
            candidate_multiplier=settings.candidate_multiplier,
        ),
        singleton=True,
    )

    container.register(
        AdaptiveRetriever,
        lambda: AdaptiveRetriever(
            classifier=IntentClassifier(
                container.resolve(LLMProtocol),
                model=settings.routing_model,
                timeout=settings.classifier_timeout,
            ),
            retriever=container.resolve(HybridRetriever),
            selector=container.resolve(ContextSelector),
            top_k=settings.rag_top_k,
        ),
        singleton=True,
    )

    container.register(
        RouterService,
        lambda: RouterService(
            gateway=container.resolve(EmbeddingGateway),
            metrics=RouterMetrics(max_entries=settings.metrics_buffer_size),
            config_path=settings.router_config_path,
            threshold=settings.router_threshold,
        ),
        singleton=True,
    )

    container.register(
        RAGOrchestrator,
        lambda: RAGOrchestrator(
            llm=container.resolve(LLMProtocol),
            router=container.resolve(RouterService),
            retriever=container.resolve(AdaptiveRetriever),
            selector=container.resolve(ContextSelector),
            builder=InstructionBuilder(),
            web_search=(
                container.resolve(WebSearchProtocol) if settings.enable_web_search else None
            ),
            chat_model=settings.chat_model,
            fallback_model=settings.fallback_chat_model,
            routing_model=settings.routing_model,
            max_tokens=settings.orchestrator_max_tokens,
            context_budget_ratio=settings.context_budget_ratio,
            top_k=settings.rag_top_k,
            min_confidence=settings.min_confidence_no_web,
            min_coverage=settings.min_coverage_no_web,
            enable_web_search=settings.enable_web_search,
        ),
        singleton=True,
    )

    logger.info("Container configured")
    return container
