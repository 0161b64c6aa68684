"""In-process performance metrics kept in bounded ring buffers."""

import logging
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Optional

from ..models.document import VectorizationResult
from ..models.query import RouterDecision

logger = logging.getLogger(__name__)


@dataclass
class OperationMetric:
    operation: str
    document_id: str
    started_at: float
    duration: float
    chunks_processed: int = 0
    chunks_added: int = 0
    chunks_updated: int = 0
    chunks_deleted: int = 0
    error: Optional[str] = None


@dataclass
class PerformanceStats:
    total_operations: int
    average_duration: float
    total_chunks_processed: int
    operations_per_minute: int
    error_rate: float
    fallbacks: dict[str, int] = field(default_factory=dict)


class PerformanceMonitor:
    """Keeps the last `max_metrics` operations and fallback counters."""

    def __init__(self, max_metrics: int = 1000):
        self._metrics: deque[OperationMetric] = deque(maxlen=max_metrics)
        self._fallbacks: Counter[str] = Counter()

    def record(
        self,
        operation: str,
        document_id: str,
        started_at: float,
        result: Optional[VectorizationResult] = None,
        error: Optional[str] = None,
    ) -> OperationMetric:
        """Record a finished operation.

        Args:
            operation: Operation name.
            document_id: Document the operation ran on.
            started_at: `time.time()` at operation start.
            result: Vectorization counters, if any.
            error: Error message for failed operations.
        """
        metric = OperationMetric(
            operation=operation,
            document_id=document_id,
            started_at=started_at,
            duration=time.time() - started_at,
            error=error,
        )
        if result is not None:
            metric.chunks_processed = result.chunks_processed
            metric.chunks_added = result.chunks_added
            metric.chunks_updated = result.chunks_updated
            metric.chunks_deleted = result.chunks_deleted
            if error is None and result.errors:
                metric.error = "; ".join(result.errors)

        self._metrics.append(metric)
        return metric

    def record_fallback(self, name: str, reason: str = "") -> None:
        """Count a degradation event (e.g. keyword search fallback)."""
        self._fallbacks[name] += 1
        logger.warning(f"Fallback '{name}' used{': ' + reason if reason else ''}")

    def stats(self) -> PerformanceStats:
        metrics = list(self._metrics)
        minute_ago = time.time() - 60
        errors = [m for m in metrics if m.error]
        return PerformanceStats(
            total_operations=len(metrics),
            average_duration=sum(m.duration for m in metrics) / len(metrics) if metrics else 0.0,
            total_chunks_processed=sum(m.chunks_processed for m in metrics),
            operations_per_minute=sum(1 for m in metrics if m.started_at > minute_ago),
            error_rate=len(errors) / len(metrics) if metrics else 0.0,
            fallbacks=dict(self._fallbacks),
        )

    def document_metrics(self, document_id: str) -> list[OperationMetric]:
        return [m for m in self._metrics if m.document_id == document_id]

    def slow_operations(self, threshold: float = 5.0) -> list[OperationMetric]:
        return [m for m in self._metrics if m.duration > threshold]

    def error_metrics(self) -> list[OperationMetric]:
        return [m for m in self._metrics if m.error]

    def export(self) -> list[OperationMetric]:
        return list(self._metrics)


@dataclass
class RouterStats:
    total: int
    average_processing_time: float
    average_confidence: float
    fallback_rate: float
    intents: dict[str, int]
    methods: dict[str, int]


class RouterMetrics:
    """Ring buffer of recent routing decisions."""

    def __init__(self, max_entries: int = 1000):
        self._decisions: deque[RouterDecision] = deque(maxlen=max_entries)

    def record(self, decision: RouterDecision) -> None:
        self._decisions.append(decision)

    def __len__(self) -> int:
        return len(self._decisions)

    def stats(self) -> RouterStats:
        decisions = list(self._decisions)
        total = len(decisions)
        return RouterStats(
            total=total,
            average_processing_time=(
                sum(d.processing_time for d in decisions) / total if total else 0.0
            ),
            average_confidence=sum(d.confidence for d in decisions) / total if total else 0.0,
            fallback_rate=sum(1 for d in decisions if d.fallback_used) / total if total else 0.0,
            intents=dict(Counter(d.intent.value for d in decisions)),
            methods=dict(Counter(d.method for d in decisions)),
        )
