"""
Vector Algebra

Pure numpy helpers used to build and compare topic vectors.

Key Operations
--------------
- Normalization and dot products
- Orthogonal rejection (Gram-Schmidt), used to strip a "noise" direction
  out of a signal vector
- Dominant axis ("mode") extraction via power iteration

Nothing in this module performs I/O.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

VectorLike = Union[Sequence[float], np.ndarray]


def _as_array(v: VectorLike) -> np.ndarray:
    return np.asarray(v, dtype="float64")


def normalize(v: VectorLike) -> np.ndarray:
    """
    Return ``v`` scaled to unit L2 norm.

    A zero vector is returned unchanged rather than raising.
    """
    arr = _as_array(v)
    magnitude = float(np.linalg.norm(arr))
    if magnitude == 0.0:
        return arr
    return arr / magnitude


def dot(a: VectorLike, b: VectorLike) -> float:
    return float(np.dot(_as_array(a), _as_array(b)))


def magnitude_squared(v: VectorLike) -> float:
    arr = _as_array(v)
    return float(np.dot(arr, arr))


def reject(a: VectorLike, b: VectorLike) -> np.ndarray:
    """
    Orthogonal rejection of ``a`` from ``b``.

    Returns ``a - ((a.b) / (b.b)) * b``, i.e. the component of ``a`` that is
    perpendicular to ``b``. If ``b`` is the zero vector, ``a`` is returned
    unchanged.
    """
    arr_a = _as_array(a)
    arr_b = _as_array(b)

    b_mag_sq = float(np.dot(arr_b, arr_b))
    if b_mag_sq == 0.0:
        return arr_a

    scalar = float(np.dot(arr_a, arr_b)) / b_mag_sq
    return arr_a - scalar * arr_b


def sharpen(raw: VectorLike, noise: VectorLike) -> np.ndarray:
    """
    Remove ``noise`` from ``raw`` and renormalize.

    This is how sharp vectors (noise = parent raw vector) and pure vectors
    (noise = negative-context or mode vector) are produced.
    """
    return normalize(reject(raw, noise))


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    return dot(normalize(a), normalize(b))


def compute_dominant_axis(
    vectors: Sequence[VectorLike],
    iterations: int = 10,
) -> np.ndarray:
    """
    Approximate the first principal component of ``vectors``.

    The vectors are centered on their mean, the candidate axis is seeded
    with the first centered vector, and each iteration replaces the candidate
    with the normalized sum of every centered vector weighted by its
    projection onto the current candidate.

    Parameters
    ----------
    vectors : Sequence[VectorLike]
        At least two vectors of identical dimensionality.
    iterations : int
        Number of power-iteration steps.

    Returns
    -------
    np.ndarray
        Unit-length axis. Identical inputs have no variance and yield their
        own normalized direction.

    Raises
    ------
    ValueError
        If fewer than two vectors are supplied or dimensions disagree.
    """
    if len(vectors) < 2:
        raise ValueError("At least two vectors are required to compute a dominant axis.")

    matrix = np.vstack([_as_array(v) for v in vectors]) if _same_dim(vectors) else None
    if matrix is None:
        raise ValueError("All vectors must share the same dimensionality.")

    centered = matrix - matrix.mean(axis=0)
    nonzero = [row for row in centered if np.any(row)]
    if not nonzero:
        # Identical inputs have no variance; fall back to their shared direction
        return normalize(matrix[0])

    # The first vector may sit exactly on the mean, so seed from a row that does not
    candidate = normalize(nonzero[0])

    for _ in range(iterations):
        projections = centered @ candidate
        candidate = normalize((centered * projections[:, None]).sum(axis=0))

    return candidate


def _same_dim(vectors: Sequence[VectorLike]) -> bool:
    dims = {len(v) for v in vectors}
    return len(dims) == 1
