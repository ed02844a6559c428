"""
Small dense linear-algebra helpers used by the regression model.
"""

import numpy as np

# Pivots smaller than this are treated as singular and perturbed
SINGULAR_TOLERANCE = 1e-10
PIVOT_EPSILON = 1e-6


def gauss_jordan_inverse(matrix: np.ndarray) -> np.ndarray:
    """
    Invert a square matrix by Gauss-Jordan elimination with partial pivoting.

    For each column the row with the largest-magnitude candidate pivot is
    swapped into place. A pivot whose magnitude falls below
    SINGULAR_TOLERANCE gets PIVOT_EPSILON added instead of failing, so a
    singular input returns an approximate (not exact) inverse.

    Args:
        matrix: Square 2-D array

    Returns:
        Inverse as a new float array; the input is not modified

    Raises:
        ValueError: If the input is not a square 2-D matrix
    """
    a = np.asarray(matrix, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {a.shape}")

    n = a.shape[0]
    augmented = np.hstack([a, np.eye(n)])

    for i in range(n):
        max_row = i + int(np.argmax(np.abs(augmented[i:, i])))
        if max_row != i:
            augmented[[i, max_row]] = augmented[[max_row, i]]

        if abs(augmented[i, i]) < SINGULAR_TOLERANCE:
            augmented[i, i] += PIVOT_EPSILON

        augmented[i] /= augmented[i, i]

        for k in range(n):
            if k != i:
                augmented[k] -= augmented[k, i] * augmented[i]

    return augmented[:, n:]
