"""Vectorizer - incremental document indexing."""

import asyncio
import logging
import time
import uuid
from typing import Optional

from ..errors import EmbeddingFailure, PipelineError
from ..models.document import (
    ChangeType,
    DocumentChange,
    DocumentChunk,
    StoredDocument,
    VectorizationResult,
    VectorizationStatus,
)
from ..protocols.document_store import DocumentStoreProtocol
from ..protocols.vector_store import VectorStoreProtocol
from ..strategies.chunking import AdaptiveChunker, ChunkingOptions
from .change_tracker import ChangeTracker, diff
from .embedding_gateway import EmbeddingGateway
from .metrics import PerformanceMonitor

logger = logging.getLogger(__name__)


class Vectorizer:
    """Re-embed documents only when their content actually changed."""

    def __init__(
        self,
        gateway: EmbeddingGateway,
        vector_store: VectorStoreProtocol,
        store: DocumentStoreProtocol,
        tracker: ChangeTracker,
        monitor: PerformanceMonitor,
        chunker: Optional[AdaptiveChunker] = None,
        chunking_options: Optional[ChunkingOptions] = None,
        concurrency: int = 3,
    ):
        """Initialize vectorizer.

        Args:
            gateway: Validated embedding access.
            vector_store: Vector store holding one vector per document.
            store: Relational document store.
            tracker: Change detection.
            monitor: Metrics sink.
            chunker: Chunker for relational chunk rows.
            chunking_options: Base chunking options.
            concurrency: Max documents vectorized at once in a batch.
        """
        self._gateway = gateway
        self._vector_store = vector_store
        self._store = store
        self._tracker = tracker
        self._monitor = monitor
        self._chunker = chunker or AdaptiveChunker()
        self._chunking_options = chunking_options or ChunkingOptions()
        self._concurrency = concurrency

    async def vectorize(
        self,
        document_id: str,
        content: str,
        force: bool = False,
        user_id: Optional[str] = None,
    ) -> VectorizationResult:
        """Vectorize a document if its content changed.

        Args:
            document_id: Document to vectorize.
            content: Current document text.
            force: Re-embed even when nothing changed.
            user_id: Owner scope for the document lookup.

        Returns:
            Counters and errors for this run. Never raises for provider errors.
        """
        started = time.time()
        result = VectorizationResult()

        try:
            document = await self._store.get_document(document_id, user_id)
            if document is None:
                result.errors.append("Document not found")
                return result

            if not force and not await self._tracker.needs_revectorization(
                document_id, content, document
            ):
                logger.debug(f"Skip unchanged: {document_id}")
                result.success = True
                return result

            changes = diff(document.text, content)
            if not changes:
                changes = [
                    DocumentChange(ChangeType.ADDED, 0, len(content), new_content=content)
                ]

            for change in changes:
                try:
                    await self._upsert_document_vector(document, content)
                    result.chunks_updated += 1
                    result.chunks_processed += 1
                except EmbeddingFailure as e:
                    logger.error(f"Embedding failed for {document_id} ({change.type.value}): {e}")
                    result.errors.append(f"{change.type.value} change: {e.reason}")
                except Exception as e:
                    logger.error(f"Vector upsert failed for {document_id}: {e}")
                    result.errors.append(f"{change.type.value} change: {type(e).__name__}")

            if result.chunks_processed == 0:
                return result

            try:
                added, deleted = await self._replace_chunks(document_id, content)
            except EmbeddingFailure as e:
                # No version is recorded, so the next run retries
                logger.error(f"Chunk embedding failed for {document_id}: {e}")
                result.errors.append(f"chunks: {e.reason}")
                return result

            result.chunks_added = added
            result.chunks_deleted = deleted
            await self._tracker.save_version(document_id, content, added)
            await self._store.mark_vectorized(document_id, content)
            result.success = True

            logger.info(
                f"Vectorized {document_id}: {result.chunks_processed} change(s), "
                f"{result.chunks_added} chunk rows"
            )
            return result

        except Exception as e:
            logger.error(f"Vectorization failed for {document_id}: {e}")
            result.errors.append(f"Vectorization failed: {type(e).__name__}")
            return result

        finally:
            result.processing_time = time.time() - started
            self._monitor.record("vectorize", document_id, started, result)

    async def _upsert_document_vector(self, document: StoredDocument, content: str) -> None:
        embedding = await self._gateway.embed(content)
        metadata = {
            "document_id": document.id,
            "document_title": document.title,
            "user_id": document.user_id,
            "chunk_index": 0,
            "word_count": len(content.split()),
        }
        await asyncio.to_thread(
            self._vector_store.upsert,
            ids=[document.id],
            embeddings=[embedding],
            documents=[content],
            metadatas=[metadata],
        )

    async def _replace_chunks(self, document_id: str, content: str) -> tuple[int, int]:
        texts = self._chunker.chunk(content, self._chunking_options)
        embeddings = await self._gateway.embed_batch(texts)
        chunks = [
            DocumentChunk(
                id=str(uuid.uuid4()),
                document_id=document_id,
                content=text,
                embedding=embedding,
                chunk_index=i,
            )
            for i, (text, embedding) in enumerate(zip(texts, embeddings))
        ]
        deleted = await self._store.replace_chunks(document_id, chunks)
        return len(chunks), deleted

    async def batch_vectorize(
        self, document_ids: list[str], force: bool = False
    ) -> dict[str, VectorizationResult]:
        """Vectorize several documents with bounded concurrency.

        A failure in one document never affects the others.
        """
        semaphore = asyncio.Semaphore(self._concurrency)

        async def run(document_id: str) -> VectorizationResult:
            async with semaphore:
                document = await self._store.get_document(document_id)
                if document is None:
                    return VectorizationResult(errors=["Document not found"])
                return await self.vectorize(document_id, document.text, force=force)

        outcomes = await asyncio.gather(
            *(run(doc_id) for doc_id in document_ids), return_exceptions=True
        )

        results: dict[str, VectorizationResult] = {}
        for document_id, outcome in zip(document_ids, outcomes):
            if isinstance(outcome, BaseException):
                error = PipelineError("batch_vectorize", type(outcome).__name__, document_id)
                logger.error(f"{error}: {outcome}")
                outcome = VectorizationResult(errors=[str(error)])
            results[document_id] = outcome

        succeeded = sum(1 for r in results.values() if r.success)
        logger.info(f"Batch vectorization: {succeeded}/{len(document_ids)} succeeded")
        return results

    async def vectorization_status(self, document_id: str) -> VectorizationStatus:
        """Report whether a document is indexed and up to date.

        Raises:
            LookupError: Document does not exist.
        """
        document = await self._store.get_document(document_id)
        if document is None:
            raise LookupError(f"Document not found: {document_id}")

        chunks = await self._store.list_chunks(document_id)
        version = await self._store.latest_version(document_id)
        needs_update = await self._tracker.needs_revectorization(
            document_id, document.text, document
        )
        return VectorizationStatus(
            is_vectorized=document.is_vectorized,
            chunks_count=len(chunks),
            last_vectorized=version.vectorized_at if version else None,
            needs_update=needs_update,
        )
