"""Cosine similarity between embedding vectors."""

from collections.abc import Sequence

import numpy as np

from vecdex.errors import LengthMismatchError


def _as_array(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    """Convert to a float64 array, treating missing coordinates as 0."""
    if isinstance(vector, np.ndarray):
        return vector.astype(np.float64, copy=False)
    return np.array([0.0 if v is None else v for v in vector], dtype=np.float64)


def cosine_similarity(
    vec_a: Sequence[float] | np.ndarray,
    vec_b: Sequence[float] | np.ndarray,
    precision: int = 6,
) -> float:
    """Compute the cosine similarity of two equal-length vectors.

    Args:
        vec_a: First vector.
        vec_b: Second vector.
        precision: Number of decimal digits to round the result to.

    Returns:
        Similarity in [-1, 1], or 0.0 if either vector has zero magnitude.

    Raises:
        LengthMismatchError: If the vectors differ in length.
    """
    if len(vec_a) != len(vec_b):
        raise LengthMismatchError(
            f"Vectors must have the same length ({len(vec_a)} != {len(vec_b)})"
        )

    a = _as_array(vec_a)
    b = _as_array(vec_b)
    magnitude_a = float(np.linalg.norm(a))
    magnitude_b = float(np.linalg.norm(b))
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    return round(float(np.dot(a, b)) / (magnitude_a * magnitude_b), precision)
