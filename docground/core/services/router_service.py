"""Router service - decides how a request should be answered."""

import json
import logging
import re
import time
from pathlib import Path
from typing import Optional

from ..models.query import RouteIntent, RouterContext, RouterDecision
from ..strategies.similarity import cosine_similarity
from .embedding_gateway import EmbeddingGateway
from .metrics import RouterMetrics

logger = logging.getLogger(__name__)

DEFAULT_PATTERNS = {
    RouteIntent.WEB_SEARCH.value: r"\b(latest|current|today|breaking|recent|now|price|stock|news)\b",
    RouteIntent.EDIT_REQUEST.value: r"\b(rewrite|edit|fix|improve|change|modify|correct)\b",
    RouteIntent.EDITOR_WRITE.value: r"\b(write|create|generate|compose|draft|make)\b",
    RouteIntent.RAG_QUERY.value: r"\b(my|document|file|note|research)\b",
}
# Heuristic rules are tried in this order
PATTERN_ORDER = (
    RouteIntent.WEB_SEARCH,
    RouteIntent.EDIT_REQUEST,
    RouteIntent.EDITOR_WRITE,
    RouteIntent.RAG_QUERY,
)
VOLATILE_RE = re.compile(r"\b(latest|today|breaking|current|recent|now)\b", re.IGNORECASE)

HEURISTIC_CONFIDENCE = 0.4
FALLBACK_CONFIDENCE = 0.3
LOW_CONFIDENCE = 0.5


class RouterService:
    """Hybrid router: semantic anchors first, keyword heuristics second."""

    def __init__(
        self,
        gateway: Optional[EmbeddingGateway],
        metrics: RouterMetrics,
        config_path: str = "router_config.json",
        threshold: float = 0.78,
    ):
        """Initialize router.

        Args:
            gateway: Embedding access for semantic matching (optional).
            metrics: Decision ring buffer.
            config_path: Path to router config JSON.
            threshold: Semantic similarity threshold.
        """
        self._gateway = gateway
        self._metrics = metrics
        self._debug = False
        self._config = self._load_config(config_path)
        self._threshold = self._config.get("threshold", threshold)
        self._debug = self._config.get("debug", False)

        patterns = {**DEFAULT_PATTERNS, **self._config.get("patterns", {})}
        self._patterns = {
            intent: re.compile(patterns[intent.value], re.IGNORECASE) for intent in PATTERN_ORDER
        }

        self._anchors: list[tuple[RouteIntent, str]] = [
            (RouteIntent(intent), text)
            for intent, texts in self._config.get("semantic_anchors", {}).items()
            for text in texts
        ]
        self._anchor_embeddings: Optional[list[list[float]]] = None

    def _load_config(self, path: str) -> dict:
        """Load config from JSON."""
        config_file = Path(path)
        if not config_file.exists():
            logger.warning(f"Router config {path} not found, using defaults")
            return {"semantic_anchors": {}, "debug": False}

        with open(config_file, "r", encoding="utf-8") as f:
            config = json.load(f)
            self._log(f"Config loaded from {path}")
            return config

    def _log(self, message: str) -> None:
        """Log debug message."""
        if self._debug:
            logger.info(f"[router] {message}")

    @property
    def metrics(self) -> RouterMetrics:
        return self._metrics

    def heuristic_intent(self, query: str, context: RouterContext) -> RouteIntent:
        """Keyword rules; attached documents imply a document query."""
        text = query.lower()
        for intent in PATTERN_ORDER:
            if intent == RouteIntent.RAG_QUERY and context.has_attached_docs:
                return intent
            if self._patterns[intent].search(text):
                self._log(f"Pattern match: {intent.value}")
                return intent
        return RouteIntent.ASK

    async def _semantic_match(self, query: str) -> Optional[tuple[RouteIntent, float]]:
        if self._gateway is None or not self._anchors:
            return None

        if self._anchor_embeddings is None:
            self._log(f"Vectorizing {len(self._anchors)} semantic anchors...")
            self._anchor_embeddings = await self._gateway.embed_batch(
                [text for _, text in self._anchors]
            )

        query_embedding = await self._gateway.embed(query)
        scores = [cosine_similarity(query_embedding, a) for a in self._anchor_embeddings]
        best = max(range(len(scores)), key=scores.__getitem__)
        intent, anchor = self._anchors[best]

        self._log(
            f"Semantic: score={scores[best]:.3f} threshold={self._threshold} "
            f"(best: '{anchor[:50]}')"
        )
        if scores[best] >= self._threshold:
            return intent, scores[best]
        return None

    async def classify(self, query: str, context: RouterContext) -> RouterDecision:
        """Route a request. Never raises; failures yield a low-confidence default."""
        started = time.time()

        try:
            match = await self._semantic_match(query)
            if match is not None:
                intent, confidence = match
                method = "embedding"
            else:
                intent = self.heuristic_intent(query, context)
                confidence = HEURISTIC_CONFIDENCE
                method = "heuristic"
            fallback_used = confidence < LOW_CONFIDENCE

        except Exception as e:
            logger.error(f"Router classification error: {e}")
            intent = RouteIntent.RAG_QUERY if context.has_attached_docs else RouteIntent.ASK
            confidence = FALLBACK_CONFIDENCE
            method = "fallback"
            fallback_used = True

        decision = RouterDecision(
            intent=intent,
            confidence=confidence,
            needs_recency=intent == RouteIntent.WEB_SEARCH or bool(VOLATILE_RE.search(query)),
            outputs="document" if intent == RouteIntent.EDITOR_WRITE else "answer",
            method=method,
            fallback_used=fallback_used,
            processing_time=time.time() - started,
        )
        self._metrics.record(decision)
        self._log(f"Route: {decision.intent.value} ({decision.confidence:.2f}, {method})")
        return decision
