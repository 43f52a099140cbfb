from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import logging
import numpy as np
import scipy.sparse as sp

from .config import load_solver_defaults
from .energy import Energy
from .errors import ConfigurationError, FactorizationError, NumericalDivergence, SolveError
from .laplacian import cotangent_weights, directed_edges
from .linalg import SparseFactor, factorize, nearest_rotations
from .topology import MeshTopology

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class ArapResult:
    vertices: np.ndarray  # (n,3) deformed vertex positions
    energies: list[float]  # energy after preprocess, then after every iteration
    iterations: int
    converged: bool
    history: Optional[Sequence[np.ndarray]] = None  # optional list of intermediate vertices


def fit_rotations(
    V0: np.ndarray,
    V: np.ndarray,
    edges: np.ndarray,
    edge_weights: np.ndarray,
) -> np.ndarray:
    """Local step: best-fit rotation of every vertex neighborhood.

    For vertex i the covariance

        S_i = sum_j w_ij (p_i - p_j)(p'_i - p'_j)^T

    is accumulated over its directed edges (i, j). With ``S_i = U Σ Vᵀ`` the
    nearest rotation is ``U Vᵀ``; the rotation taking original edges onto
    deformed ones is its transpose ``V Uᵀ``, which is what gets returned.

    Parameters
    ----------
    V0 : (n,3) original positions
    V : (n,3) current positions
    edges : (k,2) directed neighbor pairs
    edge_weights : (k,) weight of each pair

    Returns
    -------
    R : (n,3,3) rotations with ``R[i] @ (p_i - p_j) ≈ p'_i - p'_j``
    """
    i, j = edges[:, 0], edges[:, 1]
    e = V0[i] - V0[j]
    e_new = V[i] - V[j]
    S = np.zeros((V0.shape[0], 3, 3), dtype=float)
    np.add.at(S, i, edge_weights[:, None, None] * e[:, :, None] * e_new[:, None, :])
    return np.transpose(nearest_rotations(S), (0, 2, 1))


def arap_energy(
    V0: np.ndarray,
    V: np.ndarray,
    rotations: np.ndarray,
    edges: np.ndarray,
    edge_weights: np.ndarray,
) -> float:
    """sum_i sum_j w_ij ||(p'_i - p'_j) - R_i (p_i - p_j)||^2"""
    i, j = edges[:, 0], edges[:, 1]
    d = (V[i] - V[j]) - np.einsum("kab,kb->ka", rotations[i], V0[i] - V0[j])
    return float(np.sum(edge_weights * np.sum(d * d, axis=1)))


class ArapSolver:
    """As-rigid-as-possible deformation of a triangle mesh.

    The solver owns all of its state. Call order is

        solver.precompute()                  # weights, operator, factorization
        solver.solve_preprocess(targets)     # fixed targets + initial guess
        solver.solve_one_iteration()         # repeat as needed
        solver.compute_energy()

    ``precompute`` is the expensive step and only depends on the topology and
    the Fixed/Free split. New targets for the same fixed vertices only need
    another ``solve_preprocess``.

    Parameters
    ----------
    vertices : (n,3) float array
        Original (undeformed) positions.
    faces : (m,3) int array
    fixed : sequence of int
        Fixed vertex indices. Their order defines the rows of the target table.
    max_iterations : int, optional
        Iteration cap used by :meth:`solve`. Defaults to ``PYARAP_MAX_ITERATIONS`` or 50.
    tolerance : float, optional
        Energy-delta stopping threshold used by :meth:`solve`.
    residual_threshold : float, optional
        Maximum squared residual of the initial-guess normal equations, per axis.
    degenerate_tolerance : float, default 1e-12
        Relative area below which a face counts as degenerate.
    verbose : bool, default False
        If True, log basic progress information.
    log : logging.Logger, optional
        Custom logger. If None, use module logger.
    """

    def __init__(
        self,
        vertices: np.ndarray,
        faces: np.ndarray,
        fixed: Sequence[int] | np.ndarray,
        *,
        max_iterations: Optional[int] = None,
        tolerance: Optional[float] = None,
        residual_threshold: Optional[float] = None,
        degenerate_tolerance: float = 1e-12,
        verbose: bool = False,
        log: Optional[logging.Logger] = None,
    ):
        self.topology = MeshTopology(vertices, faces, fixed)

        defaults = load_solver_defaults()
        self.max_iterations = int(defaults.max_iterations if max_iterations is None else max_iterations)
        self.tolerance = float(defaults.tolerance if tolerance is None else tolerance)
        self.residual_threshold = float(
            defaults.residual_threshold if residual_threshold is None else residual_threshold
        )
        self.degenerate_tolerance = float(degenerate_tolerance)
        self.verbose = verbose
        self._log = log or logger

        # Built by precompute(), read-only afterwards
        self.weights: Optional[sp.csr_matrix] = None
        self.edges: Optional[np.ndarray] = None
        self.edge_weights: Optional[np.ndarray] = None
        self.lb_operator: Optional[sp.csc_matrix] = None
        self._factor: Optional[SparseFactor] = None

        # Per-session state
        self.fixed_targets: Optional[np.ndarray] = None
        self.vertices_updated: Optional[np.ndarray] = None
        self.rotations: Optional[np.ndarray] = None
        self.iteration = 0

    @property
    def vertices(self) -> np.ndarray:
        return self.topology.vertices

    @property
    def faces(self) -> np.ndarray:
        return self.topology.faces

    @property
    def is_precomputed(self) -> bool:
        return self._factor is not None

    def precompute(self) -> None:
        """Build cotangent weights, the edge list and the factorized free-block operator."""
        topo = self.topology
        orphans = topo.unconstrained_components()
        if orphans:
            sizes = sorted(len(c) for c in orphans)
            self._log.error("%d mesh components have no fixed vertex (sizes %s)", len(orphans), sizes)
            raise ConfigurationError(
                f"{len(orphans)} connected components contain no fixed vertex; "
                "every component needs at least one constraint"
            )

        W = cotangent_weights(
            topo.vertices,
            topo.faces,
            degenerate_tolerance=self.degenerate_tolerance,
            verbose=self.verbose,
        )
        edges = directed_edges(topo.faces)
        self.weights = W
        self.edges = edges
        self.edge_weights = np.asarray(W[edges[:, 0], edges[:, 1]], dtype=float).ravel()

        # Free x free block of the Laplacian -W. Fixed neighbors only show up
        # on the diagonal through the row sums.
        free = topo.free
        self.lb_operator = (-W[free][:, free]).tocsc()
        try:
            self._factor = factorize(self.lb_operator)
        except FactorizationError:
            self._log.error("Failed to factorize the %d x %d Laplacian operator", free.size, free.size)
            raise
        if self.verbose:
            self._log.info("ARAP: factorization complete (operator nnz=%d)", self.lb_operator.nnz)

    def solve_preprocess(self, fixed_targets: np.ndarray) -> None:
        """Set fixed targets and build the initial guess by naive Laplacian editing.

        The free positions x minimize ||W p' - W p||^2 with the fixed rows of p'
        pinned to the targets y. Splitting W into its free columns A and fixed
        columns B gives the normal equations

            AᵀA x = Aᵀ (W p - B y)

        which are solved for all three axes with their own factorization.
        """
        if not self.is_precomputed:
            raise RuntimeError("precompute() must be called before solve_preprocess()")
        topo = self.topology
        Y = np.array(fixed_targets, dtype=np.float64)
        if Y.ndim != 2 or Y.shape != (topo.num_fixed, 3):
            raise ValueError(f"fixed_targets must have shape ({topo.num_fixed},3), got {Y.shape}")

        W = self.weights
        A = W[:, topo.free].tocsc()
        B = W[:, topo.fixed].tocsc()
        left = (A.T @ A).tocsc()
        try:
            naive_solver = factorize(left)
        except FactorizationError:
            self._log.error("Failed to factorize the naive Laplacian system")
            raise

        b = W @ topo.vertices - B @ Y
        right = A.T @ b
        X = naive_solver.solve(right)

        residual = np.sum((left @ X - right) ** 2, axis=0)
        for axis, r in zip("xyz", residual):
            if r > self.residual_threshold:
                self._log.error("Naive Laplacian residual on %s axis is %.3g", axis, r)
                raise NumericalDivergence(
                    f"naive Laplacian solve on the {axis} axis has squared residual {r:.3g} "
                    f"(threshold {self.residual_threshold:.3g})"
                )

        current = np.empty_like(topo.vertices)
        current[topo.free] = X
        current[topo.fixed] = Y

        Y.setflags(write=False)
        self.fixed_targets = Y
        self.vertices_updated = current
        self.rotations = fit_rotations(topo.vertices, current, self.edges, self.edge_weights)
        self.iteration = 0
        if self.verbose:
            self._log.info("ARAP: initial guess ready for %d free vertices", topo.num_free)

    def solve_one_iteration(self) -> None:
        """One local (rotation fit) plus global (position solve) pass."""
        if self.rotations is None:
            raise RuntimeError("solve_preprocess() must be called before solve_one_iteration()")
        topo = self.topology
        V0 = topo.vertices
        V = self.vertices_updated
        edges, w = self.edges, self.edge_weights

        # Step 1: rotations
        self.rotations = fit_rotations(V0, V, edges, w)
        R = self.rotations

        # Step 2: rhs for free rows only
        i, j = edges[:, 0], edges[:, 1]
        rows = ~topo.is_fixed[i]
        i, j, w = i[rows], j[rows], w[rows]
        contrib = 0.5 * w[:, None] * np.einsum("kab,kb->ka", R[i] + R[j], V0[i] - V0[j])
        pinned = topo.is_fixed[j]
        contrib[pinned] += w[pinned, None] * V[j[pinned]]
        rhs = np.zeros((topo.num_free, 3), dtype=float)
        np.add.at(rhs, topo.compact[i], contrib)

        try:
            X = self._factor.solve(rhs)
        except SolveError:
            self._log.error("Failed to solve the sparse linear system at iteration %d", self.iteration + 1)
            raise
        V[topo.free] = X
        self.iteration += 1

    def compute_energy(self) -> Energy:
        if self.rotations is None:
            raise RuntimeError("solve_preprocess() must be called before compute_energy()")
        total = arap_energy(
            self.topology.vertices,
            self.vertices_updated,
            self.rotations,
            self.edges,
            self.edge_weights,
        )
        energy = Energy()
        energy.add_energy_type("Total", total)
        return energy

    def solve(
        self,
        *,
        max_iterations: Optional[int] = None,
        tolerance: Optional[float] = None,
        record_history: bool = False,
    ) -> ArapResult:
        """Iterate until the energy change drops below ``tolerance`` or the cap is hit.

        Requires :meth:`solve_preprocess` to have run.
        """
        iterations = self.max_iterations if max_iterations is None else int(max_iterations)
        tol = self.tolerance if tolerance is None else float(tolerance)

        prev = self.compute_energy().total
        energies = [prev]
        hist: list[np.ndarray] | None = [] if record_history else None
        converged = False
        done = 0
        for k in range(iterations):
            self.solve_one_iteration()
            current = self.compute_energy().total
            energies.append(current)
            done = k + 1
            if hist is not None:
                hist.append(self.vertices_updated.copy())
            if self.verbose and ((k + 1) % max(1, iterations // 5) == 0 or k == iterations - 1):
                self._log.info("ARAP: iteration %d/%d, energy=%.6g", k + 1, iterations, current)
            if abs(prev - current) < tol:
                converged = True
                break
            prev = current

        if self.verbose:
            self._log.info("ARAP: stopped after %d iterations (converged=%s)", done, converged)
        return ArapResult(
            vertices=self.vertices_updated.copy(),
            energies=energies,
            iterations=done,
            converged=converged,
            history=hist,
        )
