"""Chunking, similarity and scoring strategies."""
from .chunking import AdaptiveChunker, ChunkingOptions, HierarchicalChunker, SentenceChunker
from .scoring import (
    HybridScorer,
    MultiQueryReranker,
    OnePerDocumentStrategy,
    ScoreThresholdStrategy,
)
from .similarity import cosine_similarity

__all__ = [
    "AdaptiveChunker",
    "ChunkingOptions",
    "HierarchicalChunker",
    "SentenceChunker",
    "HybridScorer",
    "MultiQueryReranker",
    "OnePerDocumentStrategy",
    "ScoreThresholdStrategy",
    "cosine_similarity",
]
