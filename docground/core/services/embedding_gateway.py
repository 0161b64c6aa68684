"""Embedding gateway - validated access to the embedding provider."""

import logging
import math

from ..errors import EmbeddingFailure
from ..protocols.embedder import EmbedderProtocol

logger = logging.getLogger(__name__)


class EmbeddingGateway:
    """Wrap an embedder and guarantee well-formed vectors."""

    def __init__(self, embedder: EmbedderProtocol, dimension: int, batch_size: int = 64):
        """Initialize gateway.

        Args:
            embedder: Embedding provider.
            dimension: Expected vector size for the configured model.
            batch_size: Max texts per provider call.
        """
        self._embedder = embedder
        self._dimension = dimension
        self._batch_size = batch_size

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingFailure: Provider error or malformed vector.
        """
        vectors = await self._call([text])
        if len(vectors) != 1:
            raise EmbeddingFailure.for_text(
                f"expected 1 embedding, got {len(vectors)}", text
            )
        self._validate(vectors[0], text)
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts, one vector per input in order.

        Raises:
            EmbeddingFailure: Provider error, count mismatch or malformed vector.
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        for i in range(0, len(texts), self._batch_size):
            batch = texts[i : i + self._batch_size]
            result = await self._call(batch)
            if len(result) != len(batch):
                raise EmbeddingFailure(
                    f"expected {len(batch)} embeddings, got {len(result)}",
                    input_size=sum(len(t) for t in batch),
                )
            for vector, text in zip(result, batch):
                self._validate(vector, text)
            vectors.extend(result)

        return vectors

    async def _call(self, texts: list[str]) -> list[list[float]]:
        try:
            return await self._embedder.embed(texts)
        except EmbeddingFailure:
            raise
        except Exception as e:
            logger.error(f"Embedding provider error: {type(e).__name__}")
            raise EmbeddingFailure.for_text(
                f"provider error: {type(e).__name__}", texts[0] if texts else ""
            ) from e

    def _validate(self, vector: list[float], text: str) -> None:
        if vector is None or len(vector) != self._dimension:
            size = 0 if vector is None else len(vector)
            raise EmbeddingFailure.for_text(
                f"invalid dimension {size}, expected {self._dimension}", text
            )
        for value in vector:
            if value is None or not math.isfinite(value):
                raise EmbeddingFailure.for_text("non-finite value in embedding", text)
