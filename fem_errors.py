#!/usr/bin/env python3
from __future__ import annotations


class InvalidConfiguration(ValueError):
    """Raised when the solver is constructed with malformed parameters."""


class NonFiniteCoefficient(InvalidConfiguration):
    """Raised when the diffusion coefficient evaluates to NaN or inf."""


class SingularSystem(RuntimeError):
    """Raised when the per-step linear system M u_new = rhs cannot be solved."""
