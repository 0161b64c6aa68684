"""Change tracker - content hashing and diffing for incremental re-embedding."""

import hashlib
import logging
from typing import Optional

from ..models.document import ChangeType, DocumentChange, DocumentVersion, StoredDocument
from ..protocols.document_store import DocumentStoreProtocol

logger = logging.getLogger(__name__)


def content_hash(content: str) -> str:
    """SHA-256 hex digest of the UTF-8 encoded content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def diff(old: str, new: str) -> list[DocumentChange]:
    """Compute the changed span between two contents.

    Uses the longest common prefix and (non-overlapping) suffix. Returns an
    empty list when the contents are equal.

    Args:
        old: Previous content.
        new: Current content.

    Returns:
        Zero, one or two changes (deleted middle, then added middle).
    """
    if old == new:
        return []

    if not old or not new:
        if new:
            return [DocumentChange(ChangeType.ADDED, 0, len(new), new_content=new)]
        return [DocumentChange(ChangeType.DELETED, 0, len(old), old_content=old)]

    prefix = 0
    limit = min(len(old), len(new))
    while prefix < limit and old[prefix] == new[prefix]:
        prefix += 1

    suffix = 0
    while (
        suffix < len(old) - prefix
        and suffix < len(new) - prefix
        and old[-1 - suffix] == new[-1 - suffix]
    ):
        suffix += 1

    # Suffix never reaches into the prefix
    old_middle = old[prefix:len(old) - suffix]
    new_middle = new[prefix:len(new) - suffix]
    changes = []
    if old_middle:
        changes.append(
            DocumentChange(
                ChangeType.DELETED, prefix, prefix + len(old_middle), old_content=old_middle
            )
        )
    if new_middle:
        changes.append(
            DocumentChange(
                ChangeType.ADDED, prefix, prefix + len(new_middle), new_content=new_middle
            )
        )
    return changes


class ChangeTracker:
    """Decide whether a document must be re-embedded and what changed."""

    def __init__(self, store: DocumentStoreProtocol):
        """Initialize change tracker.

        Args:
            store: Relational document store.
        """
        self._store = store

    async def needs_revectorization(
        self,
        document_id: str,
        content: str,
        document: Optional[StoredDocument] = None,
    ) -> bool:
        """Check whether `content` differs from what was last vectorized.

        True when the document is missing, never vectorized, has no stored
        text, or the latest version hash differs. Read errors also yield True.
        """
        try:
            if document is None:
                document = await self._store.get_document(document_id)
            if document is None or not document.is_vectorized:
                return True
            if not document.text.strip():
                return True

            version = await self._store.latest_version(document_id)
            stored_hash = version.content_hash if version else content_hash(document.text)

            needed = stored_hash != content_hash(content)
            logger.debug(
                f"Re-vectorization check for {document_id}: "
                f"{'needed' if needed else 'not needed'}"
            )
            return needed

        except Exception as e:
            logger.warning(f"Re-vectorization check failed for {document_id}: {e}")
            return True

    async def track_changes(
        self, document_id: str, new_content: str, user_id: Optional[str] = None
    ) -> list[DocumentChange]:
        """Diff `new_content` against the stored document text.

        A missing, unreadable or empty stored document yields a single
        `added` change covering all new content.
        """
        full_add = [
            DocumentChange(ChangeType.ADDED, 0, len(new_content), new_content=new_content)
        ]

        try:
            document = await self._store.get_document(document_id, user_id)
        except Exception as e:
            logger.warning(f"Could not load {document_id} for diffing: {e}")
            return full_add

        if document is None or not document.text.strip():
            return full_add

        changes = diff(document.text, new_content)
        if changes:
            logger.info(
                f"Detected {len(changes)} change(s) in {document_id} "
                f"({len(document.text)} → {len(new_content)} chars)"
            )
        return changes

    async def save_version(
        self, document_id: str, content: str, chunks_count: int
    ) -> DocumentVersion:
        """Record a vectorized version of `content`."""
        return await self._store.create_version(
            document_id, content_hash(content), len(content), chunks_count
        )

    async def version_history(self, document_id: str) -> list[DocumentVersion]:
        """Versions of a document, newest first."""
        return await self._store.list_versions(document_id)
