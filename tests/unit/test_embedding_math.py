import math

import pytest

from identity_brain.core.errors import ValidationError
from identity_brain.services.embeddings.math import blend, cosine_similarity, magnitude, normalize


def test_cosine_similarity_of_identical_vectors_is_one():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_cosine_similarity_of_orthogonal_and_opposite_vectors():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_cosine_similarity_with_zero_vector_is_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_similarity_rejects_dimension_mismatch():
    with pytest.raises(ValidationError):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def test_normalize_returns_unit_vector():
    assert normalize([3.0, 4.0]) == pytest.approx([0.6, 0.8])
    assert magnitude(normalize([1.0, 2.0, 2.0])) == pytest.approx(1.0)


def test_normalize_leaves_zero_vector_unchanged():
    assert normalize([0.0, 0.0, 0.0]) == [0.0, 0.0, 0.0]


def test_blend_is_weighted_and_renormalized():
    result = blend([1.0, 0.0], [0.0, 1.0], 0.8)
    norm = math.sqrt(0.8**2 + 0.2**2)
    assert result == pytest.approx([0.8 / norm, 0.2 / norm])
    assert magnitude(result) == pytest.approx(1.0)


def test_blend_defaults_to_eighty_twenty():
    assert blend([1.0, 0.0], [0.0, 1.0]) == pytest.approx(blend([1.0, 0.0], [0.0, 1.0], 0.8))


def test_blend_rejects_dimension_mismatch():
    with pytest.raises(ValidationError):
        blend([1.0], [1.0, 0.0])


def test_blend_of_cancelling_vectors_is_zero():
    assert blend([1.0, 1.0], [-4.0, -4.0], 0.8) == [0.0, 0.0]


def test_normalize_treats_rounding_residue_as_zero():
    assert normalize([1e-16, -1e-16]) == [0.0, 0.0]


@pytest.mark.parametrize("weight", [0.0, 0.2, 0.8, 1.0])
def test_blend_of_a_vector_with_itself_keeps_its_direction(weight):
    vector = [0.3, -1.2, 2.5, 0.7]
    result = blend(vector, vector, weight)
    assert cosine_similarity(result, vector) == pytest.approx(1.0)
    assert magnitude(result) == pytest.approx(1.0)
