"""Tests for cosine similarity."""

import numpy as np
import pytest

from vecdex.errors import LengthMismatchError
from vecdex.similarity import cosine_similarity


class TestCosineSimilarity:
    """Test scoring of vector pairs."""

    @pytest.mark.parametrize("vec", [[1.0, 2.0, 3.0], [0.3, -0.7], [5, 0, 0, 2], [1e-3, 4e-3]])
    def test_self_similarity_is_one(self, vec):
        assert cosine_similarity(vec, vec) == 1.0

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1, 0], [0, 1]) == 0.0

    def test_opposite_vectors(self):
        assert cosine_similarity([1, 2], [-1, -2]) == -1.0

    def test_known_value(self):
        assert cosine_similarity([1, 0], [1, 1]) == 0.707107

    def test_precision(self):
        assert cosine_similarity([1, 0], [1, 1], precision=2) == 0.71

    def test_length_mismatch_raises(self):
        with pytest.raises(LengthMismatchError):
            cosine_similarity([1, 2, 3], [1, 2])

    def test_length_mismatch_is_value_error(self):
        with pytest.raises(ValueError):
            cosine_similarity([1], [])

    @pytest.mark.parametrize("precision", [0, 3, 6, 10])
    def test_zero_vector_returns_zero(self, precision):
        assert cosine_similarity([0, 0], [1, 2], precision=precision) == 0
        assert cosine_similarity([1, 2], [0, 0], precision=precision) == 0

    def test_two_zero_vectors_return_zero(self):
        assert cosine_similarity([0, 0, 0], [0, 0, 0]) == 0

    def test_none_coordinate_counts_as_zero(self):
        assert cosine_similarity([1, None], [1, 5]) == cosine_similarity([1, 0], [1, 5])

    def test_accepts_numpy_arrays(self):
        a = np.array([1.0, 0.0], dtype=np.float32)
        b = np.array([1.0, 1.0], dtype=np.float32)
        assert cosine_similarity(a, b) == pytest.approx(0.707107)

    def test_returns_python_float(self):
        assert isinstance(cosine_similarity([1, 2], [2, 1]), float)
