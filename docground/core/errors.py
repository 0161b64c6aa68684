"""Exception hierarchy for the retrieval pipeline."""
from typing import Optional

PREVIEW_CHARS = 80


def preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    """Short, single-line excerpt safe for logs."""
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[:limit] + "..."


class DocgroundError(Exception):
    """Base class for pipeline errors."""


class EmbeddingFailure(DocgroundError):
    """Embedding provider returned an unusable result.

    Carries the offending input's size and a short preview, never the
    full content.
    """

    def __init__(self, reason: str, input_size: int = 0, input_preview: str = ""):
        self.reason = reason
        self.input_size = input_size
        self.input_preview = input_preview
        super().__init__(
            f"{reason} (input_size={input_size}, preview='{input_preview}')"
        )

    @classmethod
    def for_text(cls, reason: str, text: str) -> "EmbeddingFailure":
        return cls(reason, input_size=len(text), input_preview=preview(text))


class ProviderError(DocgroundError):
    """Transient failure talking to a remote provider."""


class VectorStoreUnavailable(ProviderError):
    """Vector store could not be reached or rejected the request."""


class RequestAborted(DocgroundError):
    """Provider call interrupted by an abort signal."""


class PipelineError(DocgroundError):
    """Unexpected failure wrapped with operation context."""

    def __init__(self, operation: str, message: str, document_id: Optional[str] = None):
        self.operation = operation
        self.document_id = document_id
        where = f"{operation}[{document_id}]" if document_id else operation
        super().__init__(f"{where}: {message}")
