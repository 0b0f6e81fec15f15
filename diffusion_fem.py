#!/usr/bin/env python3
"""
Nonlinear Diffusion Simulation Tool

This script solves the 1D nonlinear diffusion equation

    u_t = ( D(u) u_x )_x,    0 < x < L,

with piecewise-linear finite elements in space and the Forward Euler scheme
in time. Dirichlet values are imposed at both endpoints. The diffusion
coefficient is D(u) = a + b*u (default a = 1, b = 0.5).

Usage:
    python diffusion_fem.py [options]

Parameters:
    Mesh Parameters:
    --nx INT          Number of nodes, including both endpoints (default: 20)
    --L FLOAT         Length of the domain (default: 2.0)
    --dt FLOAT        Time step (default: 0.001)
    --nt INT          Number of time steps (default: 100)

    Model Parameters:
    --diff_a FLOAT    Constant part of D(u) (default: 1.0)
    --diff_b FLOAT    Slope of D(u) (default: 0.5)
    --left FLOAT      Dirichlet value at x = 0 (default: 1.0)
    --right FLOAT     Dirichlet value at x = L (default: 1.0)
    --initial FLOAT   Uniform initial value (default: 1.0)

    Output Control:
    --confirm         Skip confirmation prompt if set to yes (default: yes)
    --save_data       Save the run to <basename>.npz (default: no)
    --save_static_plots  Save <basename>.png/.jpeg (default: no)
    --verbose         Enable verbose output (default: no)
    --diagnostic      Print the assembled matrices every step (default: no)

Example:
    python diffusion_fem.py --nx 50 --L 1 --dt 1e-5 --nt 2000 --save_data yes

Output:
    - Prints the nodal values x[i], u[i] of the final state
    - Optionally saves the snapshot history as .npz and static plots
"""
from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

import numpy as np
import questionary
import termplotlib as tpl
from scipy import linalg
from tabulate import tabulate
from tqdm import tqdm

from fem_assembly import (
    Diffusivity,
    assemble_mass_matrix,
    assemble_stiffness_matrix,
    linear_diffusivity,
    stable_time_step_estimate,
)
from fem_errors import InvalidConfiguration, SingularSystem


def _as_real(name: str, value: Any) -> float:
    """Coerce `value` to a finite float, raising InvalidConfiguration otherwise."""
    if isinstance(value, bool):
        raise InvalidConfiguration(f"{name} must be a real number, got {value!r}")
    try:
        out = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"{name} must be a real number, got {value!r}") from exc
    if not np.isfinite(out):
        raise InvalidConfiguration(f"{name} must be finite, got {value!r}")
    return out


def validate_grid(nx: Any, L: Any, dt: Any, nt: Any) -> None:
    """Raise InvalidConfiguration unless nx >= 2, L > 0, dt > 0 and nt >= 0."""
    if isinstance(nx, bool) or not isinstance(nx, (int, np.integer)):
        raise InvalidConfiguration(f"nx must be an integer, got {nx!r}")
    if isinstance(nt, bool) or not isinstance(nt, (int, np.integer)):
        raise InvalidConfiguration(f"nt must be an integer, got {nt!r}")
    if nx < 2:
        raise InvalidConfiguration(f"nx must be >= 2, got {nx}")
    if nt < 0:
        raise InvalidConfiguration(f"nt must be >= 0, got {nt}")
    for name, value in (("L", L), ("dt", dt)):
        if _as_real(name, value) <= 0:
            raise InvalidConfiguration(f"{name} must be positive, got {value!r}")


@dataclass(frozen=True)
class DirichletBC:
    """Fixed values at x = 0 and x = L."""

    left: float = 1.0
    right: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "left", _as_real("left", self.left))
        object.__setattr__(self, "right", _as_real("right", self.right))

    def constrain_rhs(self, rhs: np.ndarray) -> None:
        # The identity rows of M turn these entries into u_new[0], u_new[-1].
        rhs[0] = self.left
        rhs[-1] = self.right

    def apply(self, u_new: np.ndarray) -> None:
        u_new[0] = self.left
        u_new[-1] = self.right


class SolverState(Enum):
    READY = "ready"
    STEPPING = "stepping"
    DONE = "done"


def solve_linear_system(M: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    """
    Solve the dense system M x = rhs with an LU factorisation.

    Raises SingularSystem if M is singular or the system holds non-finite
    entries, instead of handing back NaN or garbage.
    """
    if not (np.all(np.isfinite(M)) and np.all(np.isfinite(rhs))):
        raise SingularSystem("Linear system has non-finite entries")
    try:
        sol = linalg.solve(M, rhs)
    except linalg.LinAlgError as exc:
        raise SingularSystem(f"Mass matrix is singular: {exc}") from exc
    if not np.all(np.isfinite(sol)):
        raise SingularSystem("Linear solve produced non-finite values")
    return sol


def print_matrix(name: str, A: np.ndarray) -> None:
    print(f"\nMatrix {name}:")
    print("-" * 50)
    for i in range(A.shape[0]):
        row = [f"{x:8.3f}" for x in A[i]]
        print(f"Row {i:2d}: {' '.join(row)}")
    print("-" * 50 + "\n")


class NonlinearDiffusionSolver:
    """
    Finite element / Forward Euler solver for u_t = (D(u) u_x)_x.

    The mass matrix is assembled once in the constructor and kept read-only.
    Every call to `step` assembles a fresh stiffness matrix from the current
    solution, solves M u_new = M u - dt K u, enforces the Dirichlet values and
    replaces the solution.

    Calling `solve` again after it finished advances another `nt` steps from
    the current state; there is no reset.
    """

    def __init__(
        self,
        nx: int,
        L: float,
        dt: float,
        nt: int,
        *,
        diffusivity: Optional[Diffusivity] = None,
        boundary: Optional[DirichletBC] = None,
        initial_value: float = 1.0,
        snapshot_every: int = 0,
        progress: bool = False,
        diagnostic: bool = False,
    ) -> None:
        validate_grid(nx, L, dt, nt)
        initial_value = _as_real("initial_value", initial_value)
        if isinstance(snapshot_every, bool) or int(snapshot_every) != snapshot_every or snapshot_every < 0:
            raise InvalidConfiguration(f"snapshot_every must be an integer >= 0, got {snapshot_every!r}")

        self.nx = int(nx)
        self.L = float(L)
        self.dt = float(dt)
        self.nt = int(nt)
        self.h = self.L / (self.nx - 1)
        self.diffusivity = diffusivity if diffusivity is not None else linear_diffusivity()
        self.boundary = boundary if boundary is not None else DirichletBC()
        self.snapshot_every = int(snapshot_every)
        self.progress = progress
        self.diagnostic = diagnostic

        u = np.full(self.nx, initial_value, dtype=np.float64)
        self.boundary.apply(u)
        self._u = u

        M = assemble_mass_matrix(self.h, self.nx)
        M.flags.writeable = False
        self._mass = M

        self.steps_taken = 0
        self._target_steps = self.nt
        self._state = SolverState.READY
        self.snapshots: List[Tuple[float, np.ndarray]] = []
        if self.snapshot_every:
            self._record_snapshot()

    @classmethod
    def from_config(cls, config: "SimulationConfig", **kwargs) -> "NonlinearDiffusionSolver":
        return cls(
            config.nx,
            config.L,
            config.dt,
            config.nt,
            diffusivity=linear_diffusivity(config.diff_a, config.diff_b),
            boundary=DirichletBC(config.left, config.right),
            initial_value=config.initial,
            snapshot_every=config.snapshot_every,
            diagnostic=config.diagnostic,
            **kwargs,
        )

    @property
    def u(self) -> np.ndarray:
        return self._u.copy()

    @property
    def x(self) -> np.ndarray:
        return np.arange(self.nx, dtype=np.float64) * self.h

    @property
    def mass_matrix(self) -> np.ndarray:
        return self._mass

    @property
    def state(self) -> SolverState:
        return self._state

    @property
    def time(self) -> float:
        return self.steps_taken * self.dt

    def stiffness_matrix(self) -> np.ndarray:
        """Stiffness matrix for the current solution (not cached)."""
        return assemble_stiffness_matrix(self._u, self.h, self.nx, self.diffusivity)

    def _replace_solution(self, u_new: np.ndarray) -> None:
        self._u = u_new

    def _record_snapshot(self) -> None:
        self.snapshots.append((self.time, self._u.copy()))

    def step(self) -> np.ndarray:
        """Advance one Forward Euler step and return the new solution."""
        K = self.stiffness_matrix()
        rhs = self._mass @ self._u - self.dt * (K @ self._u)
        self.boundary.constrain_rhs(rhs)

        if self.diagnostic:
            print(f"# Step {self.steps_taken + 1}")
            print_matrix("K", K)
            row = [f"{x:8.3f}" for x in rhs]
            print(f"rhs: {' '.join(row)}")

        u_new = np.array(solve_linear_system(self._mass, rhs), dtype=np.float64)
        self.boundary.apply(u_new)
        self._replace_solution(u_new)
        self.steps_taken += 1

        if self.snapshot_every and self.steps_taken % self.snapshot_every == 0:
            self._record_snapshot()
        if self.steps_taken >= self._target_steps:
            self._state = SolverState.DONE
        else:
            self._state = SolverState.STEPPING
        return self.u

    def solve(self) -> np.ndarray:
        """Run the time loop to completion and return the final solution."""
        if self._state is SolverState.DONE:
            self._target_steps += self.nt
        remaining = max(0, self._target_steps - self.steps_taken)

        if self.diagnostic:
            print_matrix("M", self._mass)

        steps = range(remaining)
        if self.progress:
            steps = tqdm(steps, desc="Progress...")
        for _ in steps:
            self.step()

        if (
            self.snapshot_every
            and remaining
            and self.steps_taken % self.snapshot_every != 0
        ):
            self._record_snapshot()
        self._state = SolverState.DONE
        return self.u

    def solution_pairs(self) -> List[Tuple[float, float]]:
        return [(float(x), float(v)) for x, v in zip(self.x, self._u)]

    def snapshot_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (t_values, u_num) with u_num of shape (nx, n_snapshots)."""
        if not self.snapshots:
            return np.array([self.time]), self._u.reshape(-1, 1).copy()
        t_values = np.array([t for t, _ in self.snapshots], dtype=np.float64)
        u_num = np.stack([u for _, u in self.snapshots], axis=1)
        return t_values, u_num


def format_solution_table(pairs: List[Tuple[float, float]], floatfmt: str = ".6f") -> str:
    data = [[i, x, u] for i, (x, u) in enumerate(pairs)]
    return tabulate(data, headers=["i", "x[i]", "u[i]"], tablefmt="grid", floatfmt=floatfmt)


def display_solution(solver: NonlinearDiffusionSolver) -> None:
    print(format_solution_table(solver.solution_pairs()))


@dataclass(frozen=True)
class SimulationConfig:
    """
    A data class to store simulation configuration parameters.

    Attributes:
    - nx (int): Number of nodes, including both endpoints.
    - L (float): Length of the domain.
    - dt (float): Time step.
    - nt (int): Number of time steps.
    - diff_a, diff_b (float): Coefficients of D(u) = diff_a + diff_b * u.
    - left, right (float): Dirichlet values at x = 0 and x = L.
    - initial (float): Uniform initial value of u.

    Output Control:
    - confirm (str): A flag to confirm simulation execution.
    - verbose (str): A flag to enable verbose output.
    - diagnostic (bool): Print the assembled matrices every step.
    - save_data, save_static_plots (str): 'yes' to write .npz / images.
    - output_dir, basename (str): Where outputs go; basename is derived
      from the parameters when empty.
    - snapshot_every (int): Record u every k steps (0: chosen automatically
      when data or plots are saved).
    - max_frames (int): Maximum number of time frames kept in the .npz.
    """

    nx: int = 20
    L: float = 2.0
    dt: float = 0.001
    nt: int = 100

    diff_a: float = 1.0
    diff_b: float = 0.5
    left: float = 1.0
    right: float = 1.0
    initial: float = 1.0

    confirm: str = "yes"
    verbose: str = "no"
    diagnostic: bool = False
    save_data: str = "no"
    save_static_plots: str = "no"
    output_dir: str = ""
    basename: str = ""
    snapshot_every: int = 0
    max_frames: int = 400

    # Computed values
    h: float = field(init=False, default=None)
    stable_dt: float = field(init=False, default=None)

    def __post_init__(self):
        validate_grid(self.nx, self.L, self.dt, self.nt)
        if self.snapshot_every < 0:
            raise InvalidConfiguration("snapshot_every must be >= 0")
        if self.max_frames <= 0:
            raise InvalidConfiguration("max_frames must be positive")

        h = self.L / (self.nx - 1)
        object.__setattr__(self, "h", h)

        # D is affine, so its largest value over the data sits at an extreme.
        D = linear_diffusivity(self.diff_a, self.diff_b)
        u_lo = min(self.left, self.right, self.initial)
        u_hi = max(self.left, self.right, self.initial)
        d_max = max(D(u_lo), D(u_hi))
        object.__setattr__(self, "stable_dt", stable_time_step_estimate(h, d_max))

        if self.snapshot_every == 0 and (self.save_data == "yes" or self.save_static_plots == "yes"):
            object.__setattr__(self, "snapshot_every", max(1, self.nt // 200))

    def display_parameters(self) -> None:
        """Display all parameters in a formatted way."""
        print("Model Parameters:")
        print(f"\tD(u) = {self.diff_a} + {self.diff_b} u")
        print(f"\tu(0) = {self.left}, u(L) = {self.right}, u_0 = {self.initial}")
        data = [
            ["nx", self.nx],
            ["L", self.L],
            ["h", f"{self.h:.6g}"],
            ["dt", self.dt],
            ["nt", self.nt],
            ["final time", f"{self.nt * self.dt:.6g}"],
            ["stable dt (estimate)", f"{self.stable_dt:.6g}"],
        ]
        print(tabulate(data, headers=["Parameter", "Value"], tablefmt="grid"))

    def setup_description(self) -> str:
        return (
            f"D(u) = {self.diff_a} + {self.diff_b}u; u(0) = {self.left}, "
            f"u(L) = {self.right}, u_0 = {self.initial}; "
            f"N = {self.nx}, L = {self.L}, dt = {self.dt}, T = {self.nt}."
        )

    def file_basename(self) -> str:
        if self.basename:
            return self.basename
        return (
            f"nx={self.nx}_L={self.L}_dt={self.dt}_nt={self.nt}"
            f"_a={self.diff_a}_b={self.diff_b}_left={self.left}_right={self.right}"
            f"_initial={self.initial}"
        ).replace(".", "-")

    def metadata(self) -> dict[str, Any]:
        return {
            "nx": self.nx,
            "L": self.L,
            "h": self.h,
            "dt": self.dt,
            "nt": self.nt,
            "diff_a": self.diff_a,
            "diff_b": self.diff_b,
            "left": self.left,
            "right": self.right,
            "initial": self.initial,
        }


def _flatten_yaml_mapping(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TypeError("YAML config must be a mapping (dict-like) at the top level.")
    out: dict[str, Any] = {}
    for key, value in data.items():
        if not isinstance(key, str):
            raise TypeError("YAML config keys must be strings.")
        if isinstance(value, dict):
            out.update(_flatten_yaml_mapping(value))
        else:
            out[key] = value
    return out


def _load_yaml_config_as_overrides(path: str) -> dict[str, Any]:
    try:
        import yaml  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "Missing dependency: PyYAML is required for `--config`. "
            "Install it with `pip install pyyaml`."
        ) from exc

    if not os.path.exists(path):
        raise FileNotFoundError(path)

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    return _flatten_yaml_mapping(raw)


def _apply_parser_defaults_from_config(
    parser: argparse.ArgumentParser, config: dict[str, Any], *, warn_unknown: bool = False
) -> None:
    if not config:
        return

    by_dest = {action.dest: action for action in parser._actions if action.dest}  # pylint: disable=protected-access

    if warn_unknown:
        for k in config:
            if k not in by_dest:
                print(f"Warning: unknown config key ignored: {k}", file=sys.stderr)

    coerced: dict[str, Any] = {}
    for key, value in config.items():
        action = by_dest.get(key)
        if action is None:
            continue
        if value is None or action.type is None:
            coerced[key] = value
        else:
            try:
                coerced[key] = action.type(value)  # pylint: disable=not-callable
            except (TypeError, ValueError):
                coerced[key] = action.type(str(value))  # pylint: disable=not-callable
        if isinstance(coerced[key], bool) and action.choices and set(action.choices) == {"yes", "no"}:
            coerced[key] = "yes" if coerced[key] else "no"

        if action.choices and coerced[key] not in action.choices:
            raise ValueError(
                f"Invalid value for `{key}`: {coerced[key]!r} (choices: {sorted(action.choices)})"
            )

    parser.set_defaults(**coerced)


def _build_arg_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Solve u_t = (D(u) u_x)_x with P1 finite elements and Forward Euler"
    )
    parser.add_argument(
        "--config",
        type=str,
        default="",
        help="Load default parameter values from a YAML file (CLI flags override)",
    )
    parser.add_argument(
        "--config_warn_unknown",
        choices=["yes", "no"],
        default="no",
        help="Warn about unknown YAML keys (default: no)",
    )
    parser.add_argument(
        "--confirm",
        choices=["yes", "no"],
        default="yes",
        help="Skip confirmation prompt if set to yes (default: yes)",
    )
    parser.add_argument(
        "--verbose",
        choices=["yes", "no"],
        default="no",
        help="Enable verbose output (default: no)",
    )
    parser.add_argument(
        "--diagnostic",
        choices=["yes", "no"],
        default="no",
        help="Print the assembled matrices every step (default: no)",
    )
    parser.add_argument("--nx", type=int, default=20, help="Number of nodes (default: 20)")
    parser.add_argument("--L", type=float, default=2.0, help="Domain length (default: 2.0)")
    parser.add_argument("--dt", type=float, default=0.001, help="Time step (default: 0.001)")
    parser.add_argument("--nt", type=int, default=100, help="Number of time steps (default: 100)")
    parser.add_argument(
        "--diff_a", type=float, default=1.0, help="Constant part a of D(u) = a + b u (default: 1.0)"
    )
    parser.add_argument(
        "--diff_b", type=float, default=0.5, help="Slope b of D(u) = a + b u (default: 0.5)"
    )
    parser.add_argument("--left", type=float, default=1.0, help="Dirichlet value at x = 0 (default: 1.0)")
    parser.add_argument("--right", type=float, default=1.0, help="Dirichlet value at x = L (default: 1.0)")
    parser.add_argument("--initial", type=float, default=1.0, help="Uniform initial value (default: 1.0)")
    parser.add_argument(
        "--snapshot_every",
        type=int,
        default=0,
        help="Record u every k steps (default: 0, chosen automatically when saving)",
    )
    parser.add_argument(
        "--max_frames",
        type=int,
        default=400,
        help="Maximum number of time frames written to the .npz (default: 400)",
    )
    parser.add_argument(
        "--save_data",
        choices=["yes", "no"],
        default="no",
        help="Save <basename>.npz (default: no)",
    )
    parser.add_argument(
        "--save_static_plots",
        choices=["yes", "no"],
        default="no",
        help="Save <basename>.png/.jpeg and the 6-slice summary (default: no)",
    )
    parser.add_argument("--output_dir", type=str, default="", help="Output directory (default: cwd)")
    parser.add_argument(
        "--basename",
        type=str,
        default="",
        help="Output basename (default: derived from the parameters)",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None, prog: Optional[str] = None) -> SimulationConfig:
    """
    Parse command-line arguments (optionally seeded from a YAML file) into a
    SimulationConfig. Raises InvalidConfiguration for an invalid mesh.
    """
    argv = sys.argv[1:] if argv is None else list(argv)

    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config", type=str, default="")
    pre_parser.add_argument("--config_warn_unknown", choices=["yes", "no"], default="no")
    pre_args, _ = pre_parser.parse_known_args(argv)

    parser = _build_arg_parser(prog)
    if pre_args.config:
        _apply_parser_defaults_from_config(
            parser,
            _load_yaml_config_as_overrides(pre_args.config),
            warn_unknown=(pre_args.config_warn_unknown == "yes"),
        )
    try:
        import argcomplete  # type: ignore
    except ModuleNotFoundError:
        argcomplete = None
    if argcomplete is not None:
        argcomplete.autocomplete(parser)

    args = vars(parser.parse_args(argv))
    args.pop("config")
    args.pop("config_warn_unknown")
    args["diagnostic"] = args["diagnostic"] == "yes"
    return SimulationConfig(**args)


def run_simulation(config: SimulationConfig, *, progress: bool = True) -> NonlinearDiffusionSolver:
    """
    Build the solver from the configuration, run it to completion, and write
    the requested outputs (.npz and static plots).
    """
    solver = NonlinearDiffusionSolver.from_config(config, progress=progress)
    solver.solve()

    out_base = config.file_basename()
    if config.output_dir:
        os.makedirs(config.output_dir, exist_ok=True)
        out_base = os.path.join(config.output_dir, out_base)

    t_values, u_num = solver.snapshot_arrays()
    if config.save_data == "yes":
        from npz_io import save_simulation_data_npz

        filename = save_simulation_data_npz(
            f"{out_base}.npz",
            config_metadata=config.metadata(),
            setup_description=config.setup_description(),
            dt=config.dt,
            steps_taken=solver.steps_taken,
            x_values=solver.x,
            t_values=t_values,
            u_num=u_num,
            u_final=solver.u,
            max_frames=config.max_frames,
        )
        print(f"Data saved: {filename}")

    if config.save_static_plots == "yes":
        from plots import create_six_frame_summary, create_static_plots

        create_static_plots(t_values, solver.x, u_num, config.setup_description(), out_base)
        create_six_frame_summary(solver.x, t_values, u_num, config.left, config.right, out_base)

    return solver


def main(argv: Optional[List[str]] = None, prog: Optional[str] = None):
    """
    Main function to parse arguments, display simulation parameters, and run the simulation.

    Steps:
    1. Parse command-line arguments into a SimulationConfig object
    2. Display the parsed parameters and warn about an unstable time step
    3. Prompt the user for confirmation to proceed with the simulation
    4. Run the simulation and print the nodal values of the final state
    """
    config = parse_args(argv, prog)
    verbose = config.verbose == "yes"

    if verbose:
        config.display_parameters()
        print(f"Output files will be saved with the basename:\n\t {config.file_basename()}\n")

    if config.dt > config.stable_dt:
        print(
            f"Warning: dt = {config.dt} exceeds the explicit stability estimate "
            f"{config.stable_dt:.6g}; the solution may blow up.",
            file=sys.stderr,
        )

    if not (
        config.confirm == "yes"
        or questionary.confirm("Do you want to continue the simulation?").ask()
    ):
        print("Exiting simulation.")
        return

    solver = run_simulation(config, progress=verbose)
    display_solution(solver)

    if verbose:
        print("\n# Final profile u(x)")
        fig = tpl.figure()
        fig.plot(solver.x, solver.u, label="u", width=100, height=24)
        fig.show()


if __name__ == "__main__":
    main()
