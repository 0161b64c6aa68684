"""Relational document store protocol."""
from typing import Optional, Protocol, runtime_checkable

from ..models.document import DocumentChunk, DocumentVersion, StoredDocument


@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """Narrow accessors the pipeline needs from the relational store."""

    async def get_document(
        self, document_id: str, user_id: Optional[str] = None
    ) -> Optional[StoredDocument]:
        """Load a document, optionally scoped to its owner."""
        ...

    async def list_documents(self, user_id: str) -> list[StoredDocument]:
        """List a user's (non-deleted) documents."""
        ...

    async def list_chunks(self, document_id: str) -> list[DocumentChunk]:
        """List a document's chunk rows ordered by chunk index."""
        ...

    async def replace_chunks(self, document_id: str, chunks: list[DocumentChunk]) -> int:
        """Replace all chunk rows of a document.

        Returns:
            Number of rows removed.
        """
        ...

    async def create_version(
        self, document_id: str, content_hash: str, content_length: int, chunks_count: int
    ) -> DocumentVersion:
        """Record a vectorized version."""
        ...

    async def latest_version(self, document_id: str) -> Optional[DocumentVersion]:
        """Most recent version, if any."""
        ...

    async def list_versions(self, document_id: str) -> list[DocumentVersion]:
        """Version history, newest first."""
        ...

    async def mark_vectorized(self, document_id: str, plain_text: str) -> None:
        """Store the vectorized text and flag the document."""
        ...
