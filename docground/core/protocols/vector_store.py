"""Vector store protocol for dependency injection."""
from typing import Protocol, runtime_checkable

from ..models.document import VectorMatch


@runtime_checkable
class VectorStoreProtocol(Protocol):
    """Protocol for vector storage."""

    def upsert(
        self,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict],
    ) -> None:
        """Insert or replace vectors by id.

        Args:
            ids: Vector IDs.
            embeddings: Vectors.
            documents: Texts stored alongside the vectors.
            metadatas: Per-vector metadata.
        """
        ...

    def query(
        self, query_embedding: list[float], user_id: str, top_k: int = 10
    ) -> list[VectorMatch]:
        """Search by embedding within one user's vectors.

        Args:
            query_embedding: Query vector.
            user_id: Owner filter.
            top_k: Number of results to return.

        Returns:
            Matches ordered by similarity.
        """
        ...

    def delete(self, ids: list[str]) -> None:
        """Delete vectors by id."""
        ...
