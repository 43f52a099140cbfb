from pyarap.config import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_RESIDUAL_THRESHOLD,
    DEFAULT_TOLERANCE,
    ENV_MAX_ITERATIONS,
    ENV_RESIDUAL_THRESHOLD,
    ENV_TOLERANCE,
    load_solver_defaults,
)
from pyarap.solver import ArapSolver
from pyarap.mesh import plane_grid


def test_defaults_without_env(monkeypatch):
    for name in (ENV_MAX_ITERATIONS, ENV_TOLERANCE, ENV_RESIDUAL_THRESHOLD):
        monkeypatch.delenv(name, raising=False)

    d = load_solver_defaults()
    assert d.max_iterations == DEFAULT_MAX_ITERATIONS
    assert d.tolerance == DEFAULT_TOLERANCE
    assert d.residual_threshold == DEFAULT_RESIDUAL_THRESHOLD


def test_env_overrides(monkeypatch):
    monkeypatch.setenv(ENV_MAX_ITERATIONS, " 7 ")
    monkeypatch.setenv(ENV_TOLERANCE, "1e-4")
    monkeypatch.setenv(ENV_RESIDUAL_THRESHOLD, "0.01")

    d = load_solver_defaults()
    assert d.max_iterations == 7
    assert d.tolerance == 1e-4
    assert d.residual_threshold == 0.01


def test_invalid_env_values_fall_back(monkeypatch):
    monkeypatch.setenv(ENV_MAX_ITERATIONS, "0")
    monkeypatch.setenv(ENV_TOLERANCE, "-1")
    monkeypatch.setenv(ENV_RESIDUAL_THRESHOLD, "nan")

    d = load_solver_defaults()
    assert d.max_iterations == DEFAULT_MAX_ITERATIONS
    assert d.tolerance == DEFAULT_TOLERANCE
    assert d.residual_threshold == DEFAULT_RESIDUAL_THRESHOLD

    monkeypatch.setenv(ENV_MAX_ITERATIONS, "many")
    assert load_solver_defaults().max_iterations == DEFAULT_MAX_ITERATIONS


def test_solver_uses_env_unless_overridden(monkeypatch):
    monkeypatch.setenv(ENV_MAX_ITERATIONS, "3")
    mesh = plane_grid(1, 1)

    assert ArapSolver(mesh.vertices, mesh.faces, [0]).max_iterations == 3
    assert ArapSolver(mesh.vertices, mesh.faces, [0], max_iterations=9).max_iterations == 9
