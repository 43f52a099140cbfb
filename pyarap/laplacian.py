from __future__ import annotations

import logging
import numpy as np
import scipy.sparse as sp

from .errors import ConfigurationError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# (first, second) vertex slots of the edge opposite each triangle corner
_OPPOSITE_EDGES = ((1, 2), (2, 0), (0, 1))


def _face_areas(V: np.ndarray, F: np.ndarray) -> np.ndarray:
    v0 = V[F[:, 0]]
    v1 = V[F[:, 1]]
    v2 = V[F[:, 2]]
    return 0.5 * np.linalg.norm(np.cross(v1 - v0, v2 - v0), axis=1)


def _squared_edge_lengths(V: np.ndarray, F: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    # squared edge lengths opposite to vertices 0,1,2
    a2 = np.sum((V[F[:, 1]] - V[F[:, 2]]) ** 2, axis=1)
    b2 = np.sum((V[F[:, 2]] - V[F[:, 0]]) ** 2, axis=1)
    c2 = np.sum((V[F[:, 0]] - V[F[:, 1]]) ** 2, axis=1)
    return a2, b2, c2


def face_cotangents(
    V: np.ndarray,
    F: np.ndarray,
    *,
    degenerate_tolerance: float = 1e-12,
) -> np.ndarray:
    """Cotangents of the three corner angles of every triangle.

    For a triangle (A, B, C) = (F[f,0], F[f,1], F[f,2]) with squared opposite
    edge lengths a², b², c² and area S:

        cot(A) = (b² + c² - a²) / (4 S)

    and cyclically for B and C.

    Parameters
    ----------
    V : (n,3) float array
    F : (m,3) int array
    degenerate_tolerance : float, default 1e-12
        A face is rejected when its area is at most this fraction of the sum
        of its squared edge lengths.

    Returns
    -------
    cot : (m,3) float array
        Columns hold (cot A, cot B, cot C).

    Raises
    ------
    ConfigurationError
        If any face has zero (or numerically negligible) area.
    """
    V = np.asarray(V, dtype=np.float64)
    F = np.asarray(F, dtype=np.int64)
    if F.shape[0] == 0:
        return np.zeros((0, 3), dtype=float)

    a2, b2, c2 = _squared_edge_lengths(V, F)
    area = _face_areas(V, F)
    degenerate = ~(area > degenerate_tolerance * (a2 + b2 + c2))
    if np.any(degenerate):
        bad = np.flatnonzero(degenerate)
        logger.error("Found %d degenerate faces: %s", bad.size, bad[:10].tolist())
        raise ConfigurationError(
            f"{bad.size} degenerate (zero-area) faces, first indices: {bad[:10].tolist()}"
        )

    four_area = 4.0 * area
    cot = np.empty((F.shape[0], 3), dtype=float)
    cot[:, 0] = (b2 + c2 - a2) / four_area
    cot[:, 1] = (c2 + a2 - b2) / four_area
    cot[:, 2] = (a2 + b2 - c2) / four_area
    return cot


def cotangent_weights(
    V: np.ndarray,
    F: np.ndarray,
    *,
    degenerate_tolerance: float = 1e-12,
    verbose: bool = False,
) -> sp.csr_matrix:
    """Build the symmetric cotangent edge-weight matrix W for a triangle mesh.

    W(i,j) = (cot alpha + cot beta)/2 for edge (i,j)
    W(i,i) = -sum_{j!=i} W(i,j)

    so every row sums to zero. W is the negative of the usual positive
    semi-definite cotangent Laplacian.

    Parameters
    ----------
    V : (n,3) float array
    F : (m,3) int array (triangles)

    Returns
    -------
    W : (n,n) csr_matrix
    """
    V = np.asarray(V, dtype=np.float64)
    F = np.asarray(F, dtype=np.int64)
    n = V.shape[0]
    if verbose:
        logger.info("Building cotangent weights for %d vertices, %d faces", n, F.shape[0])
    cot = face_cotangents(V, F, degenerate_tolerance=degenerate_tolerance)

    I = []
    J = []
    W = []

    for k, (s0, s1) in enumerate(_OPPOSITE_EDGES):
        ii, jj = F[:, s0], F[:, s1]
        half_cot = 0.5 * cot[:, k]
        I.extend(ii)
        J.extend(jj)
        W.extend(half_cot)
        I.extend(jj)
        J.extend(ii)
        W.extend(half_cot)
        # diagonal keeps the zero-row-sum invariant
        I.extend(ii)
        J.extend(ii)
        W.extend(-half_cot)
        I.extend(jj)
        J.extend(jj)
        W.extend(-half_cot)

    Wmat = sp.coo_matrix(
        (np.array(W, dtype=float), (np.array(I, dtype=np.int64), np.array(J, dtype=np.int64))),
        shape=(n, n),
    ).tocsr()
    if verbose:
        logger.info("Cotangent weights built: nnz=%d", Wmat.nnz)
    return Wmat


def cotangent_laplacian(V: np.ndarray, F: np.ndarray, *, verbose: bool = False) -> sp.csr_matrix:
    """Positive semi-definite cotangent Laplacian L = -W."""
    return (-cotangent_weights(V, F, verbose=verbose)).tocsr()


def directed_edges(F: np.ndarray) -> np.ndarray:
    """Unique neighbor pairs of a triangle mesh, once in each direction.

    Returns
    -------
    E : (k,2) int array
        Rows (i, j) sorted lexicographically; (j, i) is present for every (i, j).
    """
    F = np.asarray(F, dtype=np.int64)
    if F.shape[0] == 0:
        return np.zeros((0, 2), dtype=np.int64)
    pairs = np.concatenate([F[:, list(edge)] for edge in _OPPOSITE_EDGES], axis=0)
    pairs = np.concatenate([pairs, pairs[:, ::-1]], axis=0)
    return np.unique(pairs, axis=0)


def vertex_neighbors(F: np.ndarray, n: int) -> list[np.ndarray]:
    """One-ring neighbor indices of each of the ``n`` vertices."""
    E = directed_edges(F)
    # E is sorted by its first column, so each vertex's neighbors are contiguous
    starts = np.searchsorted(E[:, 0], np.arange(n + 1))
    return [E[starts[i]:starts[i + 1], 1] for i in range(n)]
