"""Vector similarity helpers."""
import logging
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)

# Known legacy/new model dimension pairs that can be compared after zero-padding
PADDABLE_DIMENSIONS = frozenset({(1536, 3072), (3072, 1536)})


def is_compatible(a_dim: int, b_dim: int) -> bool:
    """Check whether two vector sizes can be scored against each other."""
    if a_dim == 0 or b_dim == 0:
        return False
    return a_dim == b_dim or (a_dim, b_dim) in PADDABLE_DIMENSIONS


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 for zero vectors and for incompatible dimensions. Never raises.
    """
    if not is_compatible(len(a), len(b)):
        if len(a) != len(b):
            logger.debug(f"Vector dimension mismatch: {len(a)} vs {len(b)}")
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.shape != vb.shape:
        size = max(va.size, vb.size)
        va = np.pad(va, (0, size - va.size))
        vb = np.pad(vb, (0, size - vb.size))

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0 or not np.isfinite(norm_a * norm_b):
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))
