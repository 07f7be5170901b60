"""Cosine similarity between embedding vectors."""

from __future__ import annotations

import math
from collections.abc import Sequence


def vector_norm(vector: Sequence[float]) -> float:
    return math.sqrt(math.fsum(v * v for v in vector))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity rounded to 4 decimal places.

    The result is not clamped to ``[0, 1]``: a negative or drifting score
    is surfaced as-is.

    Raises:
        ValueError: If the vectors differ in length or either is all zeros.
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} vs {len(b)}")

    norm_a = vector_norm(a)
    norm_b = vector_norm(b)
    if norm_a == 0 or norm_b == 0:
        raise ValueError("Cosine similarity is undefined for a zero vector")

    dot = math.fsum(x * y for x, y in zip(a, b))
    return round(dot / (norm_a * norm_b), 4)
