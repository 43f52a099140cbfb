"""Error taxonomy for the ARAP solver.

Each error also derives from the builtin exception a caller would naturally
catch, so ``except ValueError`` keeps working around configuration problems.
"""
from __future__ import annotations


class ArapError(Exception):
    """Base class for all solver failures."""


class ConfigurationError(ArapError, ValueError):
    """Degenerate input geometry or an ill-posed Fixed/Free split."""


class FactorizationError(ArapError, RuntimeError):
    """The sparse system matrix could not be factorized."""


class SolveError(ArapError, RuntimeError):
    """A solve on an already factorized system failed."""


class NumericalDivergence(ArapError, ArithmeticError):
    """The initial-guess residual check exceeded its threshold."""
