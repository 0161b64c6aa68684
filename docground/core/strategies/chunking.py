"""Text chunking strategies."""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional

logger = logging.getLogger(__name__)

HEADER_RE = re.compile(r"^#{1,6}\s+.+$", re.MULTILINE)
LIST_RE = re.compile(r"^\s*(?:[-*+]|\d+\.)\s+", re.MULTILINE)
TABLE_RE = re.compile(r"\|.*\|")
CODE_RE = re.compile(r"```|`[^`]+`")
SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")
PARAGRAPH_RE = re.compile(r"\n\s*\n")


@dataclass(frozen=True)
class ChunkingOptions:
    """Chunk size limits in characters."""
    chunk_size: int = 800
    overlap: int = 150
    min_chunk_size: int = 200
    max_chunk_size: int = 1200
    preserve_structure: bool = True

    def __post_init__(self):
        if not 0 < self.chunk_size <= self.max_chunk_size:
            raise ValueError("chunk_size must be positive and not exceed max_chunk_size")
        if self.min_chunk_size > self.chunk_size:
            raise ValueError("min_chunk_size must not exceed chunk_size")
        if self.overlap < 0:
            raise ValueError("overlap must be non-negative")


# Content-specific presets
STRUCTURED_OPTIONS = {"chunk_size": 400, "overlap": 150, "min_chunk_size": 100, "max_chunk_size": 800}
LIST_OPTIONS = {"chunk_size": 600, "overlap": 120, "min_chunk_size": 150, "max_chunk_size": 1000}
PROSE_OPTIONS = {"chunk_size": 800, "overlap": 150, "min_chunk_size": 200, "max_chunk_size": 1200}


def split_sentences(text: str) -> list[str]:
    """Split on terminal punctuation followed by whitespace and a capital letter."""
    return [s.strip() for s in SENTENCE_BOUNDARY_RE.split(text) if s.strip()]


def split_by_structure(text: str) -> list[str]:
    """Split text into sections starting at markdown headers."""
    starts = [m.start() for m in HEADER_RE.finditer(text)]
    if not starts:
        return [text.strip()] if text.strip() else []

    bounds = ([0] if starts[0] > 0 else []) + starts + [len(text)]
    sections = [text[a:b].strip() for a, b in zip(bounds, bounds[1:])]
    return [s for s in sections if s]


def hard_split(text: str, max_size: int) -> list[str]:
    """Split an oversize piece on whitespace so no part exceeds max_size."""
    if len(text) <= max_size:
        return [text]

    parts: list[str] = []
    current = ""
    for word in text.split():
        while len(word) > max_size:
            if current:
                parts.append(current)
                current = ""
            parts.append(word[:max_size])
            word = word[max_size:]
        if not word:
            continue
        if current and len(current) + 1 + len(word) > max_size:
            parts.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        parts.append(current)
    return parts


def _joined_length(sentences: list[str]) -> int:
    return sum(len(s) for s in sentences) + max(0, len(sentences) - 1)


class ChunkingStrategy(ABC):
    """Base class for chunking strategies."""

    @abstractmethod
    def chunk(self, text: str, options: ChunkingOptions) -> list[str]:
        """Split text into chunks."""
        ...


class SentenceChunker(ChunkingStrategy):
    """Accumulate whole sentences up to the target size, carrying overlap."""

    def chunk(self, text: str, options: ChunkingOptions) -> list[str]:
        if not text or not text.strip():
            return []

        if len(text) <= options.chunk_size:
            return [text.strip()]

        sections = split_by_structure(text) if options.preserve_structure else [text]
        chunks: list[str] = []
        for section in sections:
            if len(section) <= options.chunk_size:
                chunks.append(section)
            else:
                chunks.extend(self.split(section, options))

        return [c for c in chunks if c.strip()]

    def split(self, text: str, options: ChunkingOptions) -> list[str]:
        """Sentence-accumulate a single section.

        Consecutive chunks share trailing whole sentences of at most
        `options.overlap` characters.
        """
        sentences: list[str] = []
        for sentence in split_sentences(text):
            sentences.extend(hard_split(sentence, options.max_chunk_size))

        chunks: list[str] = []
        current: list[str] = []
        fresh = 0

        def flush() -> None:
            nonlocal current, fresh
            chunks.append(" ".join(current))
            current = self._overlap_tail(current, options.overlap)
            fresh = 0

        for sentence in sentences:
            if fresh and _joined_length(current + [sentence]) > options.max_chunk_size:
                flush()
            if current and _joined_length(current + [sentence]) > options.max_chunk_size:
                # carried overlap alone leaves no room
                current = []

            current.append(sentence)
            fresh += 1

            if _joined_length(current) >= options.chunk_size:
                flush()

        if fresh:
            tail = current[len(current) - fresh:]
            if (
                chunks
                and _joined_length(current) < options.min_chunk_size
                and len(chunks[-1]) + 1 + _joined_length(tail) <= options.max_chunk_size
            ):
                chunks[-1] = f"{chunks[-1]} {' '.join(tail)}"
            else:
                chunks.append(" ".join(current))

        return chunks

    @staticmethod
    def _overlap_tail(sentences: list[str], overlap: int) -> list[str]:
        """Trailing whole sentences fitting in `overlap` characters."""
        tail: list[str] = []
        for sentence in reversed(sentences):
            if _joined_length([sentence] + tail) > overlap:
                break
            tail.insert(0, sentence)
        if len(tail) == len(sentences):
            return []
        return tail


class HierarchicalChunker(ChunkingStrategy):
    """Split on headers, then paragraphs; oversize paragraphs go to sentences."""

    def __init__(self, sentence_chunker: Optional[SentenceChunker] = None):
        self._sentences = sentence_chunker or SentenceChunker()

    def chunk(self, text: str, options: ChunkingOptions) -> list[str]:
        chunks: list[str] = []

        for section in split_by_structure(text):
            if len(section) <= options.chunk_size:
                chunks.append(section)
                continue

            current = ""
            for para in PARAGRAPH_RE.split(section):
                para = para.strip()
                if not para:
                    continue

                if len(para) > options.max_chunk_size:
                    if current:
                        chunks.append(current)
                        current = ""
                    chunks.extend(self._sentences.split(para, options))
                    continue

                if current and len(current) + 2 + len(para) > options.chunk_size:
                    chunks.append(current)
                    current = para
                else:
                    current = f"{current}\n\n{para}" if current else para

            if current:
                chunks.append(current)

        return [c for c in chunks if c]


@dataclass
class ContentProfile:
    """Structural features that drive strategy selection."""
    has_headers: bool
    has_lists: bool
    has_tables: bool
    has_code: bool
    avg_sentence_length: float


class AdaptiveChunker(ChunkingStrategy):
    """Pick a chunking strategy and size preset from the text's structure."""

    def __init__(
        self,
        hierarchical: Optional[HierarchicalChunker] = None,
        sentence: Optional[SentenceChunker] = None,
    ):
        self._sentence = sentence or SentenceChunker()
        self._hierarchical = hierarchical or HierarchicalChunker(self._sentence)

    @staticmethod
    def analyze(text: str) -> ContentProfile:
        pieces = re.split(r"[.!?]+", text)
        avg = sum(len(p) for p in pieces) / len(pieces) if pieces else 0.0
        return ContentProfile(
            has_headers=bool(HEADER_RE.search(text)),
            has_lists=bool(LIST_RE.search(text)),
            has_tables=bool(TABLE_RE.search(text)),
            has_code=bool(CODE_RE.search(text)),
            avg_sentence_length=avg,
        )

    def select(
        self, text: str, options: ChunkingOptions
    ) -> tuple[ChunkingStrategy, ChunkingOptions]:
        """Choose the strategy and effective options for `text`."""
        profile = self.analyze(text)

        if profile.has_headers:
            return self._hierarchical, options
        if profile.has_tables or profile.has_code:
            return self._sentence, replace(options, **STRUCTURED_OPTIONS)
        if profile.has_lists or profile.avg_sentence_length > 100:
            return self._sentence, replace(options, **LIST_OPTIONS)
        return self._sentence, replace(options, **PROSE_OPTIONS)

    def chunk(self, text: str, options: Optional[ChunkingOptions] = None) -> list[str]:
        if not text or not text.strip():
            return []

        options = options or ChunkingOptions()
        strategy, effective = self.select(text, options)
        chunks = strategy.chunk(text, effective)

        logger.debug(
            f"Chunked {len(text)} chars into {len(chunks)} chunks "
            f"({type(strategy).__name__}, size={effective.chunk_size})"
        )
        return chunks
