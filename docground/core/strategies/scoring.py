import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from statistics import fmean, pvariance
from typing import Sequence

from ..models.document import SearchResult
from .similarity import cosine_similarity

logger = logging.getLogger(__name__)

NUMBER_RE = re.compile(r"\d+")
SPECIFIC_TERMS_RE = re.compile(
    r"(?:specifically|particularly|exactly|precisely|detailed|analysis|research|study)",
    re.IGNORECASE,
)

PHRASE_BONUS = 0.3
MAX_PROXIMITY_BONUS = 0.2
QUALITY_BONUS = 0.1


def query_terms(query: str) -> list[str]:
    """Lower-cased whitespace tokens longer than 2 characters."""
    return [t for t in query.lower().split() if len(t) > 2]


def keyword_score(query: str, content: str) -> float:
    """Term coverage plus exact-phrase and proximity bonuses."""
    terms = query_terms(query)
    if not terms:
        return 0.0

    text = content.lower()
    ratio = sum(1 for t in terms if t in text) / len(terms)

    phrase = 0.0
    proximity = 0.0
    if len(terms) > 1:
        if query.lower() in text:
            phrase = PHRASE_BONUS

        positions = [p for p in (text.find(t) for t in terms) if p != -1]
        if len(positions) > 1:
            gaps = [abs(b - a) for a, b in zip(positions, positions[1:])]
            avg_distance = sum(gaps) / len(gaps)
            proximity = max(0.0, MAX_PROXIMITY_BONUS - avg_distance / 100)

    return ratio + phrase + proximity


def quality_bonus(content: str) -> float:
    """Bonus for concrete content (numbers, specific terminology)."""
    bonus = 0.0
    if NUMBER_RE.search(content):
        bonus += QUALITY_BONUS
    if SPECIFIC_TERMS_RE.search(content):
        bonus += QUALITY_BONUS
    return bonus


@dataclass
class HybridScore:
    score: float
    semantic: float
    keyword: float


class HybridScorer:
    """Weighted blend of cosine similarity and keyword matching."""

    def __init__(self, semantic_weight: float = 0.7, keyword_weight: float = 0.3):
        """Initialize scorer.

        Args:
            semantic_weight: Weight of the cosine similarity.
            keyword_weight: Weight of the keyword component.
        """
        self._semantic_weight = semantic_weight
        self._keyword_weight = keyword_weight

    def score(
        self,
        query: str,
        query_embedding: Sequence[float],
        content: str,
        embedding: Sequence[float],
    ) -> HybridScore:
        return self.blend(query, cosine_similarity(query_embedding, embedding), content)

    def blend(self, query: str, semantic: float, content: str) -> HybridScore:
        """Combine a precomputed semantic score with keyword and quality signals."""
        keyword = keyword_score(query, content)
        combined = (
            semantic * self._semantic_weight
            + keyword * self._keyword_weight
            + quality_bonus(content)
        )
        return HybridScore(score=combined, semantic=semantic, keyword=keyword)


class MultiQueryReranker:
    """Re-rank results by agreement across query variants."""

    def combined_score(self, similarities: Sequence[float], content_length: int) -> float:
        if not similarities:
            return 0.0
        consistency = max(0.0, 0.1 - pvariance(similarities))
        length_bonus = min(content_length / 1000, 0.1)
        return (
            0.4 * max(similarities)
            + 0.3 * fmean(similarities)
            + 0.2 * consistency
            + 0.1 * length_bonus
        )

    def rerank(
        self, results: list[SearchResult], similarities: list[list[float]]
    ) -> list[SearchResult]:
        """Score each result against all variants and sort descending.

        Args:
            results: Candidate results.
            similarities: Per-result cosine similarity to each query variant.

        Returns:
            Results sorted by the combined score (stored in `score`).
        """
        for result, sims in zip(results, similarities):
            result.score = self.combined_score(sims, len(result.content))
        return sorted(results, key=lambda r: r.rank_score, reverse=True)


class ScoringStrategy(ABC):
    """Base class for scoring strategies."""

    @abstractmethod
    def apply(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        """Apply strategy to results."""
        ...


class ScoreThresholdStrategy(ScoringStrategy):
    """Drop results whose ranking score is below a fixed minimum."""

    def __init__(self, min_score: float = 0.2):
        self._min_score = min_score

    def apply(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        filtered = [r for r in results if r.rank_score >= self._min_score]

        if len(filtered) < len(results):
            logger.info(
                f"Score threshold: {len(results)} → {len(filtered)} "
                f"(min_allowed={self._min_score:.2f})"
            )

        return filtered


class OnePerDocumentStrategy(ScoringStrategy):
    """Keep only the best-ranked result of each document."""

    def apply(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        seen: set[str] = set()
        kept = []
        for result in results:
            if result.document_id in seen:
                continue
            seen.add(result.document_id)
            kept.append(result)
        return kept
