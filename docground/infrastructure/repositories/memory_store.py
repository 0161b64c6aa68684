import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from docground.core.models.document import DocumentChunk, DocumentVersion, StoredDocument

logger = logging.getLogger(__name__)


class InMemoryDocumentStore:
    """Relational store kept in process memory."""

    def __init__(self):
        self._documents: dict[str, StoredDocument] = {}
        self._chunks: dict[str, list[DocumentChunk]] = defaultdict(list)
        self._versions: dict[str, list[DocumentVersion]] = defaultdict(list)
        self._lock = asyncio.Lock()

    def add_document(self, document: StoredDocument) -> StoredDocument:
        """Insert or replace a document row."""
        self._documents[document.id] = document
        return document

    def delete_document(self, document_id: str) -> None:
        self._documents.pop(document_id, None)
        self._chunks.pop(document_id, None)
        self._versions.pop(document_id, None)

    async def get_document(
        self, document_id: str, user_id: Optional[str] = None
    ) -> Optional[StoredDocument]:
        document = self._documents.get(document_id)
        if document is None or (user_id is not None and document.user_id != user_id):
            return None
        return document

    async def list_documents(self, user_id: str) -> list[StoredDocument]:
        return [d for d in self._documents.values() if d.user_id == user_id]

    async def list_chunks(self, document_id: str) -> list[DocumentChunk]:
        return sorted(self._chunks.get(document_id, []), key=lambda c: c.chunk_index)

    async def replace_chunks(self, document_id: str, chunks: list[DocumentChunk]) -> int:
        async with self._lock:
            removed = len(self._chunks.get(document_id, []))
            self._chunks[document_id] = list(chunks)
        logger.debug(f"Replaced chunks for {document_id}: -{removed} +{len(chunks)}")
        return removed

    async def create_version(
        self, document_id: str, content_hash: str, content_length: int, chunks_count: int
    ) -> DocumentVersion:
        version = DocumentVersion(
            document_id=document_id,
            content_hash=content_hash,
            content_length=content_length,
            chunks_count=chunks_count,
            vectorized_at=datetime.now(timezone.utc),
        )
        async with self._lock:
            self._versions[document_id].append(version)
        return version

    async def latest_version(self, document_id: str) -> Optional[DocumentVersion]:
        versions = self._versions.get(document_id)
        return versions[-1] if versions else None

    async def list_versions(self, document_id: str) -> list[DocumentVersion]:
        return list(reversed(self._versions.get(document_id, [])))

    async def mark_vectorized(self, document_id: str, plain_text: str) -> None:
        document = self._documents.get(document_id)
        if document is None:
            return
        document.plain_text = plain_text
        document.is_vectorized = True
