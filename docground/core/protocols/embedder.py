"""Embedder protocol for dependency injection."""
from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbedderProtocol(Protocol):
    """Protocol for embedding provider."""

    dimension: int

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Encode texts to embeddings.

        Args:
            texts: Texts to encode.

        Returns:
            One vector per input text, in input order.
        """
        ...
