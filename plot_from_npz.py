#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from npz_io import load_simulation_data_npz
from plots import create_six_frame_summary, create_static_plots


@dataclass(frozen=True)
class PlotConfig:
    npz_file: str
    out_base: str
    overwrite: bool
    summary6: bool


def _build_arg_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Render figures of u(x, t) from a run saved with `--save_data yes`.",
    )
    parser.add_argument("npz_file", help="run history written by nldiffusion-sim")
    parser.add_argument(
        "-o",
        "--out",
        default="",
        metavar="PATH",
        help="figure path without extension (default: the .npz path minus '.npz')",
    )
    parser.add_argument("--overwrite", choices=["yes", "no"], default="yes")
    parser.add_argument(
        "--summary6",
        choices=["yes", "no"],
        default="no",
        help="add the six time-slice profile figure",
    )
    return parser


def _parse_args(argv: Optional[List[str]] = None, prog: Optional[str] = None) -> PlotConfig:
    parser = _build_arg_parser(prog)
    try:
        import argcomplete  # type: ignore
    except ModuleNotFoundError:
        argcomplete = None
    if argcomplete is not None:
        argcomplete.autocomplete(parser)
    args = parser.parse_args(argv)

    npz_file = args.npz_file
    if not npz_file.endswith(".npz"):
        raise ValueError(f"Expected a .npz file, got: {npz_file!r}")
    if not os.path.exists(npz_file):
        raise FileNotFoundError(npz_file)

    out_base = args.out.strip() or os.path.splitext(npz_file)[0]
    if out_base.endswith(os.sep) or (os.altsep and out_base.endswith(os.altsep)):
        raise ValueError(f"--out needs a file name, not a directory: {out_base!r}")
    parent = os.path.dirname(out_base)
    if parent:
        os.makedirs(parent, exist_ok=True)

    return PlotConfig(
        npz_file=npz_file,
        out_base=out_base,
        overwrite=args.overwrite == "yes",
        summary6=args.summary6 == "yes",
    )


def _refuse_existing_outputs(out_base: str, *, overwrite: bool) -> None:
    if overwrite:
        return
    existing = [p for p in (f"{out_base}.png", f"{out_base}.jpeg") if os.path.exists(p)]
    if existing:
        raise FileExistsError(
            "Refusing to overwrite existing outputs (use --overwrite yes): "
            + ", ".join(existing)
        )


def main(argv: Optional[List[str]] = None, prog: Optional[str] = None) -> None:
    cfg = _parse_args(argv, prog)

    data = load_simulation_data_npz(cfg.npz_file)
    config = data.get("config", {})

    x_values = np.asarray(data["x_values"], dtype=np.float64)
    t_values = np.asarray(data["t_values"], dtype=np.float64)
    u_num = np.asarray(data["u_num"], dtype=np.float64)
    setup_description = str(data.get("setup_description", ""))

    _refuse_existing_outputs(cfg.out_base, overwrite=cfg.overwrite)

    for path in create_static_plots(t_values, x_values, u_num, setup_description, cfg.out_base):
        print(f"wrote: {path}")

    if cfg.summary6:
        left = float(config.get("left", u_num[0, 0]))
        right = float(config.get("right", u_num[-1, 0]))
        for path in create_six_frame_summary(x_values, t_values, u_num, left, right, cfg.out_base):
            print(f"wrote: {path}")


if __name__ == "__main__":
    main()
