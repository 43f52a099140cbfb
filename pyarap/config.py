"""
Solver defaults.

Values can be overridden via environment variables so scripts and notebooks
do not have to thread tuning knobs through every call.
"""
from __future__ import annotations

from dataclasses import dataclass
import math
import os


ENV_MAX_ITERATIONS = "PYARAP_MAX_ITERATIONS"
ENV_TOLERANCE = "PYARAP_TOLERANCE"
ENV_RESIDUAL_THRESHOLD = "PYARAP_RESIDUAL_THRESHOLD"

DEFAULT_MAX_ITERATIONS = 50
DEFAULT_TOLERANCE = 1e-8
DEFAULT_RESIDUAL_THRESHOLD = 1e-6


@dataclass(frozen=True)
class SolverDefaults:
    max_iterations: int
    tolerance: float
    residual_threshold: float


def _read_int_env(
    env_name: str,
    default: int,
    *,
    min_value: int | None = None,
) -> int:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if min_value is not None and value < min_value:
        return default
    return value


def _read_float_env(env_name: str, default: float) -> float:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return default

    # Negative or non-finite thresholds make no sense for either knob.
    if not math.isfinite(value) or value < 0.0:
        return default
    return value


def load_solver_defaults() -> SolverDefaults:
    return SolverDefaults(
        max_iterations=_read_int_env(ENV_MAX_ITERATIONS, DEFAULT_MAX_ITERATIONS, min_value=1),
        tolerance=_read_float_env(ENV_TOLERANCE, DEFAULT_TOLERANCE),
        residual_threshold=_read_float_env(ENV_RESIDUAL_THRESHOLD, DEFAULT_RESIDUAL_THRESHOLD),
    )
