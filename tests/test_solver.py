import numpy as np
import pytest

import pyarap.solver as solver_mod
from pyarap.energy import Energy
from pyarap.errors import ConfigurationError, NumericalDivergence, SolveError
from pyarap.laplacian import cotangent_weights, directed_edges
from pyarap.mesh import plane_grid
from pyarap.solver import ArapSolver, arap_energy, fit_rotations


def _unit_square():
    V = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=float)
    F = np.array([[0, 1, 2], [0, 2, 3]], dtype=int)
    return V, F


def _rot_z(theta: float) -> np.ndarray:
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def _ready_square(theta: float = 0.2):
    V, F = _unit_square()
    fixed = [0, 1]
    solver = ArapSolver(V, F, fixed)
    solver.precompute()
    solver.solve_preprocess(V[fixed] @ _rot_z(theta).T)
    return solver


def test_fit_rotations_maps_original_edges_onto_deformed():
    V, F = _unit_square()
    Q = _rot_z(np.pi / 2)
    E = directed_edges(F)
    W = cotangent_weights(V, F)
    w = np.asarray(W[E[:, 0], E[:, 1]]).ravel()

    R = fit_rotations(V, V @ Q.T, E, w)

    # R_i (p_i - p_j) must reproduce p'_i - p'_j, so R_i is Q and not Q^T
    for Ri in R:
        assert np.allclose(Ri, Q, atol=1e-12)
        assert not np.allclose(Ri, Q.T, atol=1e-3)
    assert arap_energy(V, V @ Q.T, R, E, w) == pytest.approx(0.0, abs=1e-20)


def test_operator_is_free_block_of_laplacian():
    solver = _ready_square()
    L_ff = solver.lb_operator.toarray()
    assert np.allclose(L_ff, [[1.0, -0.5], [-0.5, 1.0]])


def test_fixed_vertices_are_copied_exactly():
    V, F = _unit_square()
    targets = np.array([[0.1, -0.2, 0.3], [1.3, 0.4, -0.1]])
    solver = ArapSolver(V, F, [1, 0])
    solver.precompute()
    solver.solve_preprocess(targets)

    assert np.array_equal(solver.vertices_updated[[1, 0]], targets)
    for _ in range(5):
        solver.solve_one_iteration()
        assert np.array_equal(solver.vertices_updated[[1, 0]], targets)

    # original positions never move
    assert np.array_equal(solver.vertices, V)


def test_energy_is_a_pure_read():
    solver = _ready_square()
    solver.solve_one_iteration()
    before = solver.vertices_updated.copy()

    e1 = solver.compute_energy()
    e2 = solver.compute_energy()
    assert isinstance(e1, Energy)
    assert e1.as_dict() == e2.as_dict()
    assert e1["Total"] == e1.total
    assert np.array_equal(solver.vertices_updated, before)


def test_one_iteration_improves_naive_guess():
    solver = _ready_square(theta=0.2)
    naive = solver.compute_energy().total
    solver.solve_one_iteration()
    after = solver.compute_energy().total

    assert np.isfinite(after)
    assert after >= 0.0
    assert naive > 0.0
    assert after < naive


def test_converges_to_rigid_rotation():
    V, F = _unit_square()
    Q = _rot_z(0.2)
    solver = _ready_square(theta=0.2)
    for _ in range(200):
        solver.solve_one_iteration()

    assert solver.compute_energy().total < 1e-6
    assert np.allclose(solver.vertices_updated, V @ Q.T, atol=1e-3)


def test_energy_non_increasing_on_grid():
    mesh = plane_grid(4, 4)
    V = np.asarray(mesh.vertices)
    F = np.asarray(mesh.faces)
    left = np.flatnonzero(np.isclose(V[:, 0], 0.0))
    right = np.flatnonzero(np.isclose(V[:, 0], 1.0))
    fixed = np.concatenate([left, right])
    targets = np.concatenate([V[left], V[right] + [0.0, 0.0, 0.4]])

    solver = ArapSolver(V, F, fixed)
    solver.precompute()
    solver.solve_preprocess(targets)
    energies = [solver.compute_energy().total]
    for _ in range(15):
        solver.solve_one_iteration()
        energies.append(solver.compute_energy().total)

    energies = np.array(energies)
    assert np.all(np.isfinite(energies))
    assert np.all(np.diff(energies) <= 1e-10 * max(1.0, energies[0]))
    assert energies[-1] < energies[0]


def test_translation_is_reproduced_exactly_by_initial_guess():
    mesh = plane_grid(3, 3)
    V = np.asarray(mesh.vertices)
    F = np.asarray(mesh.faces)
    fixed = [0, 3, 12]
    t = np.array([0.5, -1.0, 2.0])

    solver = ArapSolver(V, F, fixed, tolerance=1e-12)
    solver.precompute()
    solver.solve_preprocess(V[fixed] + t)
    assert np.allclose(solver.vertices_updated, V + t, atol=1e-9)
    assert np.allclose(solver.rotations, np.eye(3), atol=1e-9)

    result = solver.solve(max_iterations=10)
    assert result.converged
    assert result.iterations == 1
    assert np.allclose(result.vertices, V + t, atol=1e-9)


def test_solve_driver_records_history():
    solver = _ready_square()
    result = solver.solve(max_iterations=4, tolerance=0.0, record_history=True)

    assert result.iterations == 4
    assert not result.converged
    assert len(result.energies) == 5
    assert len(result.history) == 4
    assert np.array_equal(result.history[-1], result.vertices)
    # the result is a snapshot, not a view of solver state
    solver.solve_one_iteration()
    assert not np.shares_memory(result.vertices, solver.vertices_updated)


def test_new_targets_reuse_factorization():
    V, F = _unit_square()
    solver = ArapSolver(V, F, [0, 1])
    solver.precompute()
    factor = solver._factor

    solver.solve_preprocess(V[[0, 1]])
    solver.solve_one_iteration()
    assert solver.compute_energy().total == pytest.approx(0.0, abs=1e-20)

    solver.solve_preprocess(V[[0, 1]] @ _rot_z(0.3).T)
    solver.solve_one_iteration()
    assert solver._factor is factor
    assert solver.iteration == 1


def test_call_order_is_enforced():
    V, F = _unit_square()
    solver = ArapSolver(V, F, [0, 1])
    with pytest.raises(RuntimeError):
        solver.solve_preprocess(V[[0, 1]])

    solver.precompute()
    with pytest.raises(RuntimeError):
        solver.solve_one_iteration()
    with pytest.raises(RuntimeError):
        solver.compute_energy()
    with pytest.raises(ValueError):
        solver.solve_preprocess(V[[0, 1, 2]])


def test_degenerate_triangle_fails_precompute():
    V = np.array([[0, 0, 0], [1, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=float)
    F = np.array([[0, 1, 2], [0, 1, 3]], dtype=int)
    solver = ArapSolver(V, F, [0])
    with pytest.raises(ConfigurationError):
        solver.precompute()


def test_unconstrained_component_fails_precompute():
    V, F = _unit_square()
    V = np.vstack([V, V + [5.0, 0.0, 0.0]])
    F = np.vstack([F, F + 4])
    solver = ArapSolver(V, F, [0, 1])
    with pytest.raises(ConfigurationError):
        solver.precompute()
    assert not solver.is_precomputed


def test_residual_check_raises(monkeypatch):
    V, F = _unit_square()
    solver = ArapSolver(V, F, [0, 1])
    solver.precompute()

    class _WrongFactor:
        def solve(self, B):
            return np.ones_like(B)

    monkeypatch.setattr(solver_mod, "factorize", lambda A: _WrongFactor())
    with pytest.raises(NumericalDivergence):
        solver.solve_preprocess(V[[0, 1]] @ _rot_z(0.2).T)
    assert solver.rotations is None


def test_failed_global_solve_raises_and_keeps_positions(monkeypatch):
    solver = _ready_square()
    solver.solve_one_iteration()
    before = solver.vertices_updated.copy()

    class _NaNLU:
        def solve(self, B):
            return np.full_like(B, np.nan)

    monkeypatch.setattr(solver._factor, "_lu", _NaNLU())
    with pytest.raises(SolveError):
        solver.solve_one_iteration()

    assert np.array_equal(solver.vertices_updated, before)
    assert solver.iteration == 1


def test_failing_factor_propagates_solve_error():
    solver = _ready_square()
    before = solver.vertices_updated.copy()

    class _BrokenFactor:
        def solve(self, B):
            raise SolveError("triangular solve failed")

    solver._factor = _BrokenFactor()
    with pytest.raises(SolveError):
        solver.solve_one_iteration()

    assert np.array_equal(solver.vertices_updated, before)
    assert solver.iteration == 0
