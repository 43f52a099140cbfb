from __future__ import annotations

import logging
import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .errors import FactorizationError, SolveError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class SparseFactor:
    """Reusable LU factorization of a square sparse matrix.

    The factorization is computed once and only read afterwards, so a single
    instance can serve any number of ``solve`` calls.

    Attributes
    ----------
    shape : tuple[int, int]
        Shape of the factorized matrix.
    nnz : int
        Number of stored entries in the factorized matrix.
    """

    def __init__(self, lu: spla.SuperLU, shape: tuple[int, int], nnz: int):
        self._lu = lu
        self.shape = shape
        self.nnz = nnz

    def solve(self, B: np.ndarray) -> np.ndarray:
        """Solve ``A X = B`` for a (k,) vector or a (k, c) block of columns."""
        B = np.asarray(B, dtype=np.float64)
        if B.shape[0] != self.shape[0]:
            raise ValueError(f"right-hand side has {B.shape[0]} rows, expected {self.shape[0]}")
        try:
            X = self._lu.solve(B)
        except (RuntimeError, ValueError) as exc:
            raise SolveError(f"sparse solve failed: {exc}") from exc
        if not np.all(np.isfinite(X)):
            raise SolveError("sparse solve produced non-finite values")
        return X


def factorize(A: sp.spmatrix) -> SparseFactor:
    """Factorize a square sparse matrix with SuperLU.

    Raises
    ------
    ValueError
        If ``A`` is not square.
    FactorizationError
        If the matrix is empty or (numerically) singular.
    """
    if A.shape[0] != A.shape[1]:
        raise ValueError(f"matrix must be square, got shape {A.shape}")
    if A.shape[0] == 0:
        raise FactorizationError("cannot factorize an empty matrix")

    A_csc = sp.csc_matrix(A, dtype=np.float64)
    try:
        lu = spla.splu(A_csc)
    except RuntimeError as exc:
        raise FactorizationError(f"LU factorization failed: {exc}") from exc

    # SuperLU only rejects exact zero pivots; catch the near-singular ones too.
    diag_u = lu.U.diagonal()
    if not np.all(np.isfinite(diag_u)) or np.min(np.abs(diag_u)) <= 1e-14 * max(1.0, np.max(np.abs(diag_u))):
        raise FactorizationError("LU factorization failed: matrix is numerically singular")

    logger.debug("Factorized %dx%d matrix: nnz=%d", A.shape[0], A.shape[1], A_csc.nnz)
    return SparseFactor(lu, A.shape, A_csc.nnz)


def nearest_rotations(S: np.ndarray) -> np.ndarray:
    """Closest proper rotations to a stack of 3x3 matrices.

    Uses the polar decomposition ``S = R T`` computed through the SVD
    ``S = U Σ Vᵀ`` with ``R = U Vᵀ``. When ``det(U Vᵀ) < 0`` the column of ``U``
    paired with the smallest singular value is flipped, so every result lies
    in SO(3) even for flat or degenerate neighborhoods.

    Parameters
    ----------
    S : (..., 3, 3) float array

    Returns
    -------
    R : (..., 3, 3) float array
    """
    S = np.asarray(S, dtype=np.float64)
    if S.shape[-2:] != (3, 3):
        raise ValueError("nearest_rotations expects matrices of shape (..., 3, 3)")
    U, _, Vt = np.linalg.svd(S)
    R = U @ Vt
    flip = np.linalg.det(R) < 0
    if np.any(flip):
        # numpy orders singular values descending, so the last column is the smallest
        U = U.copy()
        U[flip, :, 2] *= -1.0
        R = U @ Vt
    return R


def nearest_rotation(S: np.ndarray) -> np.ndarray:
    """Closest proper rotation to a single 3x3 matrix."""
    return nearest_rotations(np.asarray(S, dtype=np.float64)[None, :, :])[0]
