#!/usr/bin/env python3
"""
Single entry point for the nonlinear diffusion tools.

    nldiffusion sim  [nldiffusion-sim options]
    nldiffusion plot FILE.npz [nldiffusion-plot options]

Everything after the command name is handed unchanged to the command, so
`nldiffusion sim --nx 40 --help` behaves like `nldiffusion-sim --nx 40 --help`.
"""
from __future__ import annotations

import importlib
import sys
from typing import List, Optional

# command -> (module, program name, one-line summary)
COMMANDS = {
    "sim": ("diffusion_fem", "nldiffusion-sim", "run a simulation and print the final nodal values"),
    "plot": ("plot_from_npz", "nldiffusion-plot", "render figures from a saved .npz run"),
}


def _version() -> str:
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("nonlinear-diffusion-fem")
    except PackageNotFoundError:
        return "unknown"


def usage() -> str:
    lines = ["usage: nldiffusion [--version] {sim,plot} [args ...]", "", "commands:"]
    for name, (_, program, summary) in COMMANDS.items():
        lines.append(f"  {name:<6} {summary} (same as `{program}`)")
    lines += [
        "",
        "examples:",
        "  nldiffusion sim --nx 20 --L 2 --dt 0.001 --nt 100",
        "  nldiffusion sim --config config.example.yaml --save_data yes",
        "  nldiffusion plot runs/some_run.npz --summary6 yes",
    ]
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> None:
    argv = sys.argv[1:] if argv is None else list(argv)
    if not argv or argv[0] in ("-h", "--help"):
        print(usage(), file=sys.stdout if argv else sys.stderr)
        return
    if argv[0] == "--version":
        print(f"nonlinear-diffusion-fem {_version()}")
        return

    cmd, forwarded = argv[0], argv[1:]
    if cmd not in COMMANDS:
        print(usage(), file=sys.stderr)
        print(f"\nnldiffusion: unknown command {cmd!r}", file=sys.stderr)
        raise SystemExit(2)

    module_name, program, _ = COMMANDS[cmd]
    if cmd == "plot" and not forwarded:
        forwarded = ["--help"]
    importlib.import_module(module_name).main(forwarded, prog=program)


if __name__ == "__main__":
    main()
