#!/usr/bin/env python3
from __future__ import annotations

import os
import tempfile
from typing import List

# Matplotlib writes cache files (including TeX-related caches when usetex=True).
# Ensure a writable cache directory even in sandboxed / restricted environments.
if "MPLCONFIGDIR" not in os.environ:
    mpl_config_dir = os.path.join(tempfile.gettempdir(), "nldiffusion-mplconfig")
    os.makedirs(mpl_config_dir, exist_ok=True)
    os.environ["MPLCONFIGDIR"] = mpl_config_dir

import matplotlib.pyplot as plt
import numpy as np
from matplotlib import rc
from matplotlib.ticker import FormatStrFormatter, ScalarFormatter


USE_TEX = os.environ.get("NLDIFFUSION_USETEX", "no").strip().lower() in (
    "1",
    "yes",
    "true",
)
rc("text", usetex=USE_TEX)


def create_six_frame_summary(
    x_values: np.ndarray,
    t_values: np.ndarray,
    u_num: np.ndarray,
    left: float,
    right: float,
    file_base_name: str,
) -> List[str]:
    """
    Plot u(x, t) at six evenly spaced fractions of the final time, with the
    Dirichlet values marked at both ends. Writes <base>_summary6.{png,jpeg}.
    """
    if t_values.size == 0:
        return []
    t_end = float(t_values[-1])
    fractions = np.linspace(0.0, 1.0, 6)
    indices: List[int] = []
    for t_target in t_end * fractions:
        indices.append(int(np.argmin(np.abs(t_values - t_target))))

    u_min = float(min(np.min(u_num), left, right))
    u_max = float(max(np.max(u_num), left, right))
    u_pad = 0.05 * max(1e-12, u_max - u_min)

    cmap = plt.get_cmap("viridis")
    colors = [cmap(float(p)) for p in np.linspace(0.15, 0.9, len(indices))]

    fig, ax_u = plt.subplots(1, 1, figsize=(7.5, 4.8), dpi=150)
    for idx, frac, color in zip(indices, fractions, colors):
        t_here = float(t_values[idx])
        pct = int(round(float(frac) * 100))
        if USE_TEX:
            label = rf"{pct}\% ($t={t_here:.4g}$)"
        else:
            label = f"{pct}% (t={t_here:.4g})"
        ax_u.plot(x_values, u_num[:, idx], color=color, linewidth=1.6, label=label)

    ax_u.plot(
        [x_values[0], x_values[-1]],
        [left, right],
        linestyle="none",
        marker="o",
        color="red",
        label="Dirichlet values",
    )
    if USE_TEX:
        ax_u.set_xlabel(r"$x$")
        ax_u.set_ylabel(r"$u(x,t)$")
    else:
        ax_u.set_xlabel("x")
        ax_u.set_ylabel("u(x,t)")
    ax_u.set_title(f"u(x, t), final time {t_end:.4g}", fontsize=11)

    ax_u.set_ylim(u_min - u_pad, u_max + u_pad)
    y_formatter = ScalarFormatter(useOffset=False)
    y_formatter.set_scientific(False)
    ax_u.yaxis.set_major_formatter(y_formatter)
    ax_u.legend(loc="best", fontsize=8, frameon=False)

    plt.tight_layout()
    paths = [f"{file_base_name}_summary6.png", f"{file_base_name}_summary6.jpeg"]
    for path in paths:
        fig.savefig(path, bbox_inches="tight")
    plt.close(fig)
    return paths


def create_static_plots(
    t_mesh: np.ndarray,
    x_mesh: np.ndarray,
    u_data: np.ndarray,
    setup_des: str,
    file_base_name: str,
) -> List[str]:
    """
    Save a 3D surface of u over (t, x) as <base>.png and <base>.jpeg.

    Parameters:
    - t_mesh (np.ndarray): Snapshot times.
    - x_mesh (np.ndarray): Node positions.
    - u_data (np.ndarray): Array of shape (len(x_mesh), len(t_mesh)).
    - setup_des (str): Description of the setup, used as the title.
    - file_base_name (str): Base name for the output files.

    Returns:
    - list of written paths (empty if fewer than two snapshots exist).
    """
    if t_mesh.size < 2:
        print("Need at least two snapshots for a surface plot; skipping.")
        return []

    fig_3d = plt.figure(figsize=(9, 6), dpi=150)
    ax_3d_u = fig_3d.add_subplot(111, projection="3d")
    T_grid, X_grid = np.meshgrid(t_mesh, x_mesh, indexing="xy")
    ax_3d_u.plot_surface(T_grid, X_grid, u_data, cmap="viridis", alpha=0.8)

    ax_3d_u.set_xlabel(r"Time $t$")
    ax_3d_u.set_ylabel(r"Space $x$")
    u_min, u_max = float(u_data.min()), float(u_data.max())
    if u_max - u_min < 1e-12:
        u_min, u_max = u_min - 0.5, u_max + 0.5
    ax_3d_u.set_zlim(u_min, u_max)
    ax_3d_u.set_zticks(np.linspace(u_min, u_max, 5))
    ax_3d_u.zaxis.set_major_formatter(FormatStrFormatter("%.5f"))
    ax_3d_u.set_title("Solution u(t,x)", pad=10)

    fig_3d.suptitle(setup_des, fontsize=10)
    plt.tight_layout()

    paths = [f"{file_base_name}.png", f"{file_base_name}.jpeg"]
    for path in paths:
        fig_3d.savefig(path, bbox_inches="tight")
    plt.close(fig_3d)
    print(
        f"""
    Output files saved:
    - Image: {paths[0]}
    - Image: {paths[1]}
    """
    )
    return paths
