import math

import numpy as np
import pytest

import diffusion_fem
from diffusion_fem import (
    DirichletBC,
    NonlinearDiffusionSolver,
    SimulationConfig,
    SolverState,
    format_solution_table,
    solve_linear_system,
)
from fem_assembly import assemble_mass_matrix, assemble_stiffness_matrix, constant_diffusivity
from fem_errors import InvalidConfiguration, NonFiniteCoefficient, SingularSystem


@pytest.mark.parametrize(
    "nx, L, dt, nt",
    [
        (1, 1.0, 0.1, 1),
        (5, 0.0, 0.1, 1),
        (5, -2.0, 0.1, 1),
        (5, 1.0, 0.0, 1),
        (5, 1.0, -0.1, 1),
        (5, 1.0, 0.1, -1),
        (5.5, 1.0, 0.1, 1),
        (5, 1.0, 0.1, 2.0),
        (5, float("nan"), 0.1, 1),
        (5, 1.0, float("inf"), 1),
        (5, True, 0.1, 1),
        (5, 1.0, True, 1),
    ],
)
def test_invalid_configuration(nx, L, dt, nt):
    with pytest.raises(InvalidConfiguration):
        NonlinearDiffusionSolver(nx, L, dt, nt)


def test_construction():
    solver = NonlinearDiffusionSolver(20, 2.0, 0.001, 100)
    assert solver.h == pytest.approx(2.0 / 19)
    assert np.array_equal(solver.u, np.ones(20))
    assert solver.state is SolverState.READY
    assert solver.steps_taken == 0
    assert solver.x[-1] == pytest.approx(2.0)


def test_five_node_scenario():
    solver = NonlinearDiffusionSolver(5, 4.0, 0.001, 1)
    assert solver.h == 1.0
    assert solver.mass_matrix[1, 1] == pytest.approx(2 / 3)
    assert solver.mass_matrix[1, 2] == pytest.approx(1 / 6)
    K = solver.stiffness_matrix()
    assert K[2, 2] == pytest.approx(3.0)
    assert K[2, 1] == pytest.approx(-1.5)

    u = solver.solve()
    assert solver.state is SolverState.DONE
    assert solver.steps_taken == 1
    assert u[0] == 1.0 and u[-1] == 1.0
    assert np.all(np.isfinite(u))
    assert np.allclose(u, 1.0, atol=1e-6)


def test_step_matches_hand_written_update():
    solver = NonlinearDiffusionSolver(7, 1.5, 1e-3, 1, boundary=DirichletBC(0.0, 2.0), initial_value=0.5)
    u0 = solver.u
    M = assemble_mass_matrix(solver.h, 7)
    K = assemble_stiffness_matrix(u0, solver.h, 7, solver.diffusivity)
    rhs = M @ u0 - 1e-3 * K @ u0
    rhs[0], rhs[-1] = 0.0, 2.0
    expected = np.linalg.solve(M, rhs)
    expected[0], expected[-1] = 0.0, 2.0

    assert np.allclose(solver.step(), expected, rtol=1e-12, atol=1e-14)


def test_boundary_values_hold_after_every_step():
    solver = NonlinearDiffusionSolver(11, 1.0, 1e-4, 25, boundary=DirichletBC(0.0, 2.0))
    u = solver.u
    assert u[0] == 0.0 and u[-1] == 2.0
    for _ in range(25):
        u = solver.step()
        assert u[0] == 0.0
        assert u[-1] == 2.0


def test_boundary_override_is_unconditional(monkeypatch):
    monkeypatch.setattr(diffusion_fem, "solve_linear_system", lambda M, rhs: np.full_like(rhs, 123.0))
    solver = NonlinearDiffusionSolver(6, 1.0, 1e-3, 1, boundary=DirichletBC(0.25, -0.5))
    u = solver.solve()
    assert u[0] == 0.25
    assert u[-1] == -0.5
    assert np.all(u[1:-1] == 123.0)


def test_mass_matrix_is_assembled_once(monkeypatch):
    calls = []
    real = diffusion_fem.assemble_mass_matrix

    def counting(h, nx):
        calls.append((h, nx))
        return real(h, nx)

    monkeypatch.setattr(diffusion_fem, "assemble_mass_matrix", counting)
    solver = NonlinearDiffusionSolver(9, 1.0, 1e-4, 10, boundary=DirichletBC(0.0, 1.0))
    before = solver.mass_matrix.copy()
    solver.solve()
    assert len(calls) == 1
    assert np.array_equal(before, solver.mass_matrix)


def test_mass_matrix_is_read_only():
    solver = NonlinearDiffusionSolver(5, 1.0, 1e-3, 1)
    with pytest.raises(ValueError):
        solver.mass_matrix[2, 2] = 0.0


def test_stiffness_changes_with_solution():
    solver = NonlinearDiffusionSolver(11, 1.0, 1e-4, 5, boundary=DirichletBC(0.0, 2.0))
    K0 = solver.stiffness_matrix()
    solver.step()
    K1 = solver.stiffness_matrix()
    assert not np.array_equal(K0, K1)


def test_constant_diffusivity_keeps_uniform_state():
    solver = NonlinearDiffusionSolver(15, 3.0, 1e-3, 50, diffusivity=constant_diffusivity(2.0))
    u = solver.solve()
    assert np.allclose(u, 1.0, rtol=0, atol=1e-12)


def test_diffusion_lowers_values_near_cold_boundaries():
    solver = NonlinearDiffusionSolver(11, 1.0, 1e-4, 1, boundary=DirichletBC(0.0, 0.0))
    u = solver.solve()
    assert u[1] < 1.0 and u[-2] < 1.0
    assert np.all(np.isfinite(u))


def test_solve_linear_system_rejects_singular_matrix():
    with pytest.raises(SingularSystem):
        solve_linear_system(np.zeros((3, 3)), np.ones(3))
    with pytest.raises(SingularSystem):
        solve_linear_system(np.eye(3), np.array([1.0, np.nan, 1.0]))


def test_singular_mass_matrix_aborts_run(monkeypatch):
    monkeypatch.setattr(diffusion_fem, "assemble_mass_matrix", lambda h, nx: np.zeros((nx, nx)))
    solver = NonlinearDiffusionSolver(5, 1.0, 1e-3, 3)
    with pytest.raises(SingularSystem):
        solver.solve()
    assert solver.steps_taken == 0
    assert solver.state is not SolverState.DONE
    assert np.array_equal(solver.u, np.ones(5))


def test_non_finite_coefficient_aborts_step():
    solver = NonlinearDiffusionSolver(5, 1.0, 1e-3, 3, diffusivity=lambda u: float("nan"))
    with pytest.raises(NonFiniteCoefficient):
        solver.step()
    with pytest.raises(InvalidConfiguration):
        solver.solve()
    assert np.array_equal(solver.u, np.ones(5))


@pytest.mark.parametrize(
    "diffusivity, initial_value",
    [
        (lambda u: math.log(u - 1.0), 1.0),
        (math.exp, 1000.0),
    ],
)
def test_diffusivity_that_raises_aborts_step(diffusivity, initial_value):
    solver = NonlinearDiffusionSolver(
        5, 1.0, 1e-3, 3, diffusivity=diffusivity, initial_value=initial_value
    )
    before = solver.u.copy()
    with pytest.raises(NonFiniteCoefficient):
        solver.step()
    with pytest.raises(InvalidConfiguration):
        solver.solve()
    assert np.array_equal(solver.u, before)
    assert solver.steps_taken == 0


def test_state_transitions():
    solver = NonlinearDiffusionSolver(5, 1.0, 1e-3, 3)
    assert solver.state is SolverState.READY
    solver.step()
    assert solver.state is SolverState.STEPPING
    solver.step()
    assert solver.state is SolverState.STEPPING
    solver.step()
    assert solver.state is SolverState.DONE


def test_zero_steps_goes_straight_to_done():
    solver = NonlinearDiffusionSolver(5, 1.0, 1e-3, 0, initial_value=0.5)
    u = solver.solve()
    assert solver.state is SolverState.DONE
    assert solver.steps_taken == 0
    assert np.array_equal(u, [1.0, 0.5, 0.5, 0.5, 1.0])


def test_second_solve_continues_from_current_state():
    kwargs = dict(boundary=DirichletBC(0.0, 2.0))
    twice = NonlinearDiffusionSolver(9, 1.0, 1e-4, 3, **kwargs)
    twice.solve()
    twice.solve()
    once = NonlinearDiffusionSolver(9, 1.0, 1e-4, 6, **kwargs)
    once.solve()
    assert twice.steps_taken == 6
    assert twice.state is SolverState.DONE
    assert np.array_equal(twice.u, once.u)
    assert twice.time == pytest.approx(6e-4)


def test_solution_pairs_and_table():
    solver = NonlinearDiffusionSolver(5, 4.0, 1e-3, 0)
    pairs = solver.solution_pairs()
    assert pairs == [(0.0, 1.0), (1.0, 1.0), (2.0, 1.0), (3.0, 1.0), (4.0, 1.0)]
    table = format_solution_table(pairs)
    assert "x[i]" in table and "u[i]" in table
    assert "4.000000" in table


def test_snapshots():
    solver = NonlinearDiffusionSolver(6, 1.0, 0.01, 5, snapshot_every=2)
    solver.solve()
    t_values, u_num = solver.snapshot_arrays()
    assert np.allclose(t_values, [0.0, 0.02, 0.04, 0.05])
    assert u_num.shape == (6, 4)
    assert np.array_equal(u_num[:, -1], solver.u)


def test_snapshot_arrays_without_history():
    solver = NonlinearDiffusionSolver(4, 1.0, 0.01, 2)
    solver.solve()
    t_values, u_num = solver.snapshot_arrays()
    assert t_values.tolist() == [pytest.approx(0.02)]
    assert u_num.shape == (4, 1)


def test_from_config():
    config = SimulationConfig(nx=8, L=1.0, dt=1e-4, nt=4, diff_a=2.0, diff_b=0.0, left=0.0, right=0.5, initial=0.25)
    solver = NonlinearDiffusionSolver.from_config(config)
    assert solver.nx == 8 and solver.nt == 4
    assert solver.u[0] == 0.0 and solver.u[-1] == 0.5
    assert solver.diffusivity(10.0) == 2.0


def test_config_validation_and_derived_values():
    with pytest.raises(InvalidConfiguration):
        SimulationConfig(nx=1)
    config = SimulationConfig(nx=11, L=1.0)
    assert config.h == pytest.approx(0.1)
    assert config.stable_dt == pytest.approx(0.01 / 9.0)
    assert SimulationConfig(save_data="yes", nt=1000).snapshot_every == 5
    assert "." not in config.file_basename()


def test_dirichlet_values_must_be_finite():
    with pytest.raises(InvalidConfiguration):
        DirichletBC(float("nan"), 1.0)


@pytest.mark.parametrize("left, right", [("x", 1.0), (True, 1.0), (0.0, None), (0.0, [1.0])])
def test_dirichlet_values_must_be_real_numbers(left, right):
    with pytest.raises(InvalidConfiguration):
        DirichletBC(left, right)


def test_dirichlet_values_are_coerced_to_float():
    bc = DirichletBC(0, "2.5")
    assert (bc.left, bc.right) == (0.0, 2.5)
    assert isinstance(bc.left, float)


@pytest.mark.parametrize("initial_value", ["abc", None, True, float("inf")])
def test_initial_value_must_be_a_real_number(initial_value):
    with pytest.raises(InvalidConfiguration):
        NonlinearDiffusionSolver(5, 1.0, 1e-3, 1, initial_value=initial_value)
