"""pyarap: As-rigid-as-possible deformation of triangle meshes.

Public API:
- cotangent_weights(V, F)
- cotangent_laplacian(V, F)
- ArapSolver(V, F, fixed).precompute() / solve_preprocess(targets) / solve_one_iteration() / compute_energy()
- deform(mesh, fixed, targets, iterations=50, tolerance=1e-8)

"""
from .errors import ArapError, ConfigurationError, FactorizationError, NumericalDivergence, SolveError
from .laplacian import cotangent_laplacian, cotangent_weights, face_cotangents
from .energy import Energy
from .solver import ArapResult, ArapSolver
from .deform import deform
from .mesh import example_mesh, load_mesh

__all__ = [
    "ArapError",
    "ConfigurationError",
    "FactorizationError",
    "NumericalDivergence",
    "SolveError",
    "cotangent_laplacian",
    "cotangent_weights",
    "face_cotangents",
    "Energy",
    "ArapResult",
    "ArapSolver",
    "deform",
    "example_mesh",
    "load_mesh",
]
