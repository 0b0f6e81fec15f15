#!/usr/bin/env python3
from __future__ import annotations

import json
from typing import Any

import numpy as np

SCHEMA_VERSION = 1


def _downsample_time_indices(n_frames: int, max_frames: int) -> np.ndarray:
    if max_frames <= 0:
        raise ValueError("max_frames must be positive")
    if n_frames <= max_frames:
        return np.arange(n_frames, dtype=np.int64)
    raw = np.linspace(0, n_frames - 1, num=max_frames)
    idx = np.unique(np.round(raw).astype(np.int64))
    if idx[0] != 0:
        idx = np.insert(idx, 0, 0)
    if idx[-1] != n_frames - 1:
        idx = np.append(idx, n_frames - 1)
    return idx


def save_simulation_data_npz(
    filename: str,
    *,
    config_metadata: dict[str, Any],
    setup_description: str,
    dt: float,
    steps_taken: int,
    x_values: np.ndarray,
    t_values: np.ndarray,
    u_num: np.ndarray,
    u_final: np.ndarray,
    max_frames: int,
) -> str:
    """
    Save a run as a compressed .npz.

    `u_num` holds one column per entry of `t_values`; columns are thinned to
    at most `max_frames` (first and last always kept). `u_final` is stored
    in full regardless of the thinning.
    """
    u_num = np.asarray(u_num, dtype=np.float64)
    t_values = np.asarray(t_values, dtype=np.float64)
    if u_num.ndim != 2 or u_num.shape[1] != t_values.shape[0]:
        raise ValueError(
            f"u_num must have shape (nx, {t_values.shape[0]}), got {u_num.shape}"
        )

    idx = _downsample_time_indices(int(t_values.shape[0]), int(max_frames))
    config_json = json.dumps(config_metadata, sort_keys=True)
    np.savez_compressed(
        filename,
        schema_version=np.asarray(SCHEMA_VERSION, dtype=np.int64),
        config_json=np.asarray(config_json),
        setup_description=np.asarray(setup_description),
        dt=np.asarray(dt, dtype=np.float64),
        steps_taken=np.asarray(steps_taken, dtype=np.int64),
        x_values=np.asarray(x_values, dtype=np.float64),
        t_values=t_values[idx],
        u_num=u_num[:, idx],
        u_final=np.asarray(u_final, dtype=np.float64),
        downsample_indices=np.asarray(idx, dtype=np.int64),
    )
    return filename


def load_simulation_data_npz(filename: str) -> dict:
    with np.load(filename, allow_pickle=False) as data:
        out = {k: data[k] for k in data.files}
    out["schema_version"] = int(out["schema_version"].item())
    if out["schema_version"] != SCHEMA_VERSION:
        raise ValueError(
            f"Unsupported schema_version {out['schema_version']} in {filename!r}"
        )
    out["config"] = json.loads(str(out["config_json"].item()))
    out["config_json"] = str(out["config_json"].item())
    out["setup_description"] = str(out["setup_description"].item())
    out["dt"] = float(out["dt"].item())
    out["steps_taken"] = int(out["steps_taken"].item())
    return out
