"""Tests for lifebutler.vectors."""

from __future__ import annotations

import math

import pytest

from lifebutler.vectors import (
    add,
    cosine_similarity,
    dot_product,
    euclidean_distance,
    find_most_similar,
    magnitude,
    normalize,
    scale,
    subtract,
    weighted_average,
)


def test_cosine_identical_is_one():
    v = [0.3, -1.2, 4.0, 0.7]
    assert cosine_similarity(v, v) == pytest.approx(1.0)


def test_cosine_symmetric():
    a, b = [1.0, 2.0, 3.0], [-2.0, 0.5, 1.0]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_cosine_orthogonal_and_opposite():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_cosine_zero_vector_is_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0


def test_cosine_length_mismatch_raises():
    with pytest.raises(ValueError, match="dimensions"):
        cosine_similarity([1.0, 2.0], [1.0])


def test_basic_operations():
    assert dot_product([1.0, 2.0], [3.0, 4.0]) == 11.0
    assert magnitude([3.0, 4.0]) == 5.0
    assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == 5.0
    assert add([1.0, 2.0], [3.0, 4.0]) == [4.0, 6.0]
    assert subtract([1.0, 2.0], [3.0, 4.0]) == [-2.0, -2.0]
    assert scale([1.0, -2.0], 2.0) == [2.0, -4.0]


def test_normalize_unit_length():
    assert magnitude(normalize([3.0, 4.0])) == pytest.approx(1.0)


def test_normalize_zero_vector_unchanged():
    assert normalize([0.0, 0.0]) == [0.0, 0.0]


def test_weighted_average():
    assert weighted_average([[1.0, 0.0], [0.0, 1.0]], [3.0, 1.0]) == [0.75, 0.25]


def test_weighted_average_empty():
    assert weighted_average([], []) == []


def test_weighted_average_zero_total_weight_is_unnormalised_sum():
    assert weighted_average([[1.0, 2.0], [3.0, 4.0]], [1.0, -1.0]) == [-2.0, -2.0]


def test_weighted_average_length_mismatch():
    with pytest.raises(ValueError):
        weighted_average([[1.0]], [1.0, 2.0])
    with pytest.raises(ValueError):
        weighted_average([[1.0], [1.0, 2.0]], [1.0, 1.0])


def test_find_most_similar_sorted_and_filtered():
    vectors = {
        "same": [1.0, 0.0],
        "close": [1.0, 0.2],
        "orthogonal": [0.0, 1.0],
    }
    results = find_most_similar([1.0, 0.0], vectors, limit=5, min_similarity=0.5)
    assert [r.id for r in results] == ["same", "close"]
    assert results[0].similarity == pytest.approx(1.0)
    assert not math.isnan(results[1].similarity)


def test_find_most_similar_limit():
    vectors = {str(i): [1.0, float(i)] for i in range(10)}
    assert len(find_most_similar([1.0, 0.0], vectors, limit=3)) == 3
