from __future__ import annotations

from typing import Optional, Sequence

import logging
import numpy as np
import trimesh as tm

from .solver import ArapResult, ArapSolver

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def deform(
    mesh: tm.Trimesh,
    fixed: Sequence[int] | np.ndarray,
    targets: np.ndarray,
    *,
    iterations: Optional[int] = None,
    tolerance: Optional[float] = None,
    residual_threshold: Optional[float] = None,
    record_history: bool = False,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> ArapResult:
    """As-rigid-as-possible deformation of a triangle mesh.

    Pins ``mesh.vertices[fixed[k]]`` to ``targets[k]`` and moves every other
    vertex so that each one-ring stays as close to a rigid motion of its
    original shape as possible. Alternates per-vertex rotation fitting with a
    sparse linear solve until the energy change falls below ``tolerance``.

    Parameters
    ----------
    mesh : trimesh.Trimesh
        Input triangle mesh with faces of shape (m,3) and vertices of shape (n,3).
        Every connected component needs at least one fixed vertex.
    fixed : sequence of int
        Indices of the pinned vertices.
    targets : (k,3) array-like
        Target position of each pinned vertex, in the order of ``fixed``.
    iterations : int, optional
        Iteration cap. Defaults to ``PYARAP_MAX_ITERATIONS`` or 50.
    tolerance : float, optional
        Stop once the absolute energy change between iterations is below this.
    residual_threshold : float, optional
        Residual limit for the initial-guess solve.
    record_history : bool, default False
        If True, return a list of vertices after each iteration in ``ArapResult.history``.
    verbose : bool, default False
        If True, log basic progress information.
    log : logging.Logger, optional
        Custom logger. If None, use module logger.

    Returns
    -------
    ArapResult
        Dataclass with
        - ``vertices``: (n,3) array of deformed positions,
        - ``energies``: ARAP energy after the initial guess and each iteration,
        - ``iterations`` and ``converged``,
        - ``history``: optional list of intermediate (n,3) arrays.
    """
    if mesh.vertices.ndim != 2 or mesh.vertices.shape[1] != 3:
        raise ValueError("mesh.vertices must have shape (n,3)")
    if mesh.faces.ndim != 2 or mesh.faces.shape[1] != 3:
        raise ValueError("mesh.faces must have shape (m,3)")

    V = mesh.vertices.view(np.ndarray).astype(np.float64, copy=True)
    F = mesh.faces.view(np.ndarray).astype(np.int64, copy=False)

    _log = log or logger
    if verbose:
        _log.info("ARAP: starting with %d vertices, %d faces, %d fixed", V.shape[0], F.shape[0], len(fixed))

    solver = ArapSolver(
        V,
        F,
        fixed,
        max_iterations=iterations,
        tolerance=tolerance,
        residual_threshold=residual_threshold,
        verbose=verbose,
        log=_log,
    )
    solver.precompute()
    solver.solve_preprocess(np.asarray(targets, dtype=float))
    return solver.solve(record_history=record_history)
