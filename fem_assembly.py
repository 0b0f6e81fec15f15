#!/usr/bin/env python3
from __future__ import annotations

from typing import Callable

import numpy as np

from fem_errors import InvalidConfiguration, NonFiniteCoefficient

Diffusivity = Callable[[float], float]


def linear_diffusivity(a: float = 1.0, b: float = 0.5) -> Diffusivity:
    """Return D(u) = a + b*u (the default is 1 + 0.5u)."""

    def D(u: float) -> float:
        return a + b * u

    return D


def constant_diffusivity(d: float) -> Diffusivity:
    def D(u: float) -> float:
        return d

    return D


def _check_mesh(h: float, nx: int) -> None:
    if int(nx) != nx or nx < 2:
        raise InvalidConfiguration(f"nx must be an integer >= 2, got {nx!r}")
    if not np.isfinite(h) or h <= 0:
        raise InvalidConfiguration(f"h must be positive and finite, got {h!r}")


def assemble_mass_matrix(h: float, nx: int) -> np.ndarray:
    """
    Assemble the dense P1 mass matrix on a uniform mesh.

    Parameters:
    - h (float): Spatial step.
    - nx (int): Number of nodes (including both endpoints).

    Returns:
    - np.ndarray: (nx, nx) matrix. Interior rows carry the tridiagonal
      stencil (h/6, 2h/3, h/6); the first and last rows are identity rows
      so that the Dirichlet values can be imposed inside the same solve.
    """
    _check_mesh(h, nx)
    M = np.zeros((nx, nx), dtype=np.float64)
    for i in range(1, nx - 1):
        M[i, i] = 2.0 / 3.0 * h
        M[i, i - 1] = 1.0 / 6.0 * h
        M[i - 1, i] = 1.0 / 6.0 * h
    if nx > 2:
        # close the last interior row against the right boundary node
        M[nx - 2, nx - 1] = 1.0 / 6.0 * h

    M[0, :] = 0.0
    M[-1, :] = 0.0
    M[0, 0] = 1.0
    M[-1, -1] = 1.0
    return M


def evaluate_diffusivity(u: np.ndarray, diffusivity: Diffusivity) -> np.ndarray:
    """
    Evaluate D pointwise at every interior node, using that node's own value.

    Raises NonFiniteCoefficient if D raises a numerical error (domain,
    overflow) or evaluates to NaN or inf.
    """
    interior = np.asarray(u, dtype=np.float64)[1:-1]
    d = np.empty(interior.shape[0], dtype=np.float64)
    for i, val in enumerate(interior, start=1):
        try:
            d[i - 1] = diffusivity(float(val))
        except (ValueError, ArithmeticError) as exc:
            raise NonFiniteCoefficient(
                f"Diffusion coefficient failed at node {i} (u = {val!r}): {exc}"
            ) from exc
    bad = ~np.isfinite(d)
    if bad.any():
        nodes = (np.flatnonzero(bad) + 1).tolist()
        raise NonFiniteCoefficient(
            f"Diffusion coefficient is not finite at nodes {nodes}"
        )
    return d


def assemble_stiffness_matrix(
    u: np.ndarray, h: float, nx: int, diffusivity: Diffusivity
) -> np.ndarray:
    """
    Assemble the dense stiffness matrix from the current solution.

    Parameters:
    - u (np.ndarray): Current solution vector of size nx.
    - h (float): Spatial step.
    - nx (int): Number of nodes.
    - diffusivity (callable): D(u), evaluated at each interior node.

    Returns:
    - np.ndarray: (nx, nx) matrix with interior rows (-d/h, 2d/h, -d/h) and
      identity boundary rows. A fresh matrix is built on every call.

    Notes:
    - The coupling between nodes i-1 and i uses d_i = D(u[i]), so the
      interior block is symmetric. The last interior row couples to the
      right boundary with its own coefficient d_{nx-2}.
    """
    _check_mesh(h, nx)
    u = np.asarray(u, dtype=np.float64)
    if u.shape != (nx,):
        raise InvalidConfiguration(
            f"Solution vector has shape {u.shape}, expected ({nx},)"
        )

    d = evaluate_diffusivity(u, diffusivity)
    K = np.zeros((nx, nx), dtype=np.float64)
    for i in range(1, nx - 1):
        coeff = d[i - 1]
        K[i, i] = 2.0 * coeff / h
        K[i, i - 1] = -coeff / h
        K[i - 1, i] = -coeff / h
    if nx > 2:
        K[nx - 2, nx - 1] = -d[-1] / h

    K[0, :] = 0.0
    K[-1, :] = 0.0
    K[0, 0] = 1.0
    K[-1, -1] = 1.0
    return K


def stable_time_step_estimate(h: float, d_max: float) -> float:
    """
    Largest Forward Euler step for the consistent P1 mass matrix,
    dt <= h^2 / (6 d_max). Returns inf when d_max <= 0.
    """
    if d_max <= 0:
        return float("inf")
    return float(h * h / (6.0 * d_max))
