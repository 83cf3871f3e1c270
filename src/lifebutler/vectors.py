"""Vector math over plain float sequences.

All functions are pure. Mismatched lengths raise ``ValueError``: passing
vectors of different dimensions is a caller bug, not a runtime condition.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

Vector = Sequence[float]


@dataclass(frozen=True)
class SimilarityResult:
    id: str
    similarity: float


def _check_dims(a: Vector, b: Vector) -> None:
    if len(a) != len(b):
        raise ValueError(f"Vector dimensions must match: {len(a)} vs {len(b)}")


def dot_product(a: Vector, b: Vector) -> float:
    _check_dims(a, b)
    return math.fsum(x * y for x, y in zip(a, b))


def magnitude(vector: Vector) -> float:
    return math.sqrt(math.fsum(x * x for x in vector))


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine of the angle between *a* and *b*; 0.0 if either is a zero vector."""
    _check_dims(a, b)
    sq_a = math.fsum(x * x for x in a)
    sq_b = math.fsum(x * x for x in b)
    if sq_a == 0.0 or sq_b == 0.0:
        return 0.0
    # sqrt of the product (not product of sqrts) so that sim(a, a) is exactly 1.0
    sim = dot_product(a, b) / math.sqrt(sq_a * sq_b)
    return max(-1.0, min(1.0, sim))


def euclidean_distance(a: Vector, b: Vector) -> float:
    _check_dims(a, b)
    return math.sqrt(math.fsum((x - y) ** 2 for x, y in zip(a, b)))


def normalize(vector: Vector) -> list[float]:
    """Scale *vector* to unit length. A zero vector is returned unchanged."""
    norm = magnitude(vector)
    if norm == 0.0:
        return list(vector)
    return [x / norm for x in vector]


def add(a: Vector, b: Vector) -> list[float]:
    _check_dims(a, b)
    return [x + y for x, y in zip(a, b)]


def subtract(a: Vector, b: Vector) -> list[float]:
    _check_dims(a, b)
    return [x - y for x, y in zip(a, b)]


def scale(vector: Vector, scalar: float) -> list[float]:
    return [x * scalar for x in vector]


def is_zero(vector: Vector) -> bool:
    return all(x == 0.0 for x in vector)


def weighted_average(vectors: Sequence[Vector], weights: Sequence[float]) -> list[float]:
    """Weighted mean of *vectors*.

    Returns ``[]`` for no vectors. If the weights sum to zero the weighted sum
    is returned unnormalised.
    """
    if len(vectors) != len(weights):
        raise ValueError("Number of vectors must match number of weights")
    if not vectors:
        return []

    dimension = len(vectors[0])
    result = [0.0] * dimension
    total_weight = 0.0
    for vector, weight in zip(vectors, weights):
        if len(vector) != dimension:
            raise ValueError("All vectors must have the same dimension")
        total_weight += weight
        for j, x in enumerate(vector):
            result[j] += x * weight

    if total_weight == 0.0:
        return result
    return [x / total_weight for x in result]


def find_most_similar(
    query: Vector,
    vectors: Mapping[str, Vector],
    limit: int = 10,
    min_similarity: float = 0.0,
) -> list[SimilarityResult]:
    """Brute-force nearest neighbours of *query* among *vectors*, best first."""
    results = [
        SimilarityResult(id=key, similarity=sim)
        for key, vec in vectors.items()
        if (sim := cosine_similarity(query, vec)) >= min_similarity
    ]
    results.sort(key=lambda r: r.similarity, reverse=True)
    return results[:limit]
