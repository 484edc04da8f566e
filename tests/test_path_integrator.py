import numpy as np
import pytest

from vortexknots.analysis.biot_savart import LineField
from vortexknots.analysis.path_integrator import PathIntegrator, PathSearchState, find_path
from vortexknots.model.grid import Grid
from vortexknots.utils import wrap_phase


def uniform_field(shape, direction=(1.0, 0.0, 0.0)) -> np.ndarray:
    field = np.zeros((3,) + shape)
    for axis in range(3):
        field[axis] = direction[axis]
    return field


def assert_valid_path(cells, blocked):
    cells = np.asarray(cells)
    steps = np.abs(np.diff(cells, axis=0))
    assert np.all(steps.max(axis=1) == 1)
    assert len({tuple(c) for c in cells}) == len(cells)
    assert not any(blocked[tuple(c)] for c in cells)


def test_free_diagonal_path():
    blocked = np.zeros((5, 5, 5), dtype=bool)
    result = find_path((0, 0, 0), (4, 4, 4), blocked, uniform_field(blocked.shape))
    assert result.state == PathSearchState.REACHED
    assert result.length == 4
    assert result.cells[-1] == (4, 4, 4)


def test_start_equals_target():
    blocked = np.zeros((3, 3, 3), dtype=bool)
    result = find_path((1, 1, 1), (1, 1, 1), blocked, uniform_field(blocked.shape))
    assert result.found
    assert result.cells == [(1, 1, 1)]
    assert result.length == 0


def test_path_goes_around_an_obstacle():
    blocked = np.zeros((7, 7, 7), dtype=bool)
    blocked[3, 2:5, 2:5] = True
    result = find_path((0, 3, 3), (6, 3, 3), blocked, uniform_field(blocked.shape))
    assert result.found
    assert result.cells[-1] == (6, 3, 3)
    assert result.length > 6
    assert_valid_path(result.cells, blocked)


def test_path_fails_behind_a_closed_wall():
    blocked = np.zeros((5, 5, 5), dtype=bool)
    blocked[2, :, :] = True
    result = find_path((0, 2, 2), (4, 2, 2), blocked, uniform_field(blocked.shape))
    assert result.state == PathSearchState.FAILED
    assert result.cells == []
    assert not result.found


def test_path_respects_iteration_cap():
    blocked = np.zeros((9, 9, 9), dtype=bool)
    blocked[4, :, :] = True
    result = find_path((0, 4, 4), (8, 4, 4), blocked, uniform_field(blocked.shape), max_iterations=5)
    assert not result.found
    assert result.iterations <= 5


def test_uniform_field_integrates_to_path_independent_phase():
    grid = Grid(7, 7, 7, 0.5)
    field = LineField(
        field=uniform_field(grid.shape),
        near_core=np.zeros(grid.shape, dtype=bool),
        very_near_core=np.zeros(grid.shape, dtype=bool),
    )
    phase = PathIntegrator(grid, field).integrate()

    base_i = grid.center_cell[0]
    i = np.arange(grid.nx)[:, None, None]
    expected = np.broadcast_to(wrap_phase(grid.h * (i - base_i)), grid.shape)
    np.testing.assert_allclose(phase.phi, expected, atol=1e-12)
    assert phase.n_missed == 0


def test_core_cells_stay_missed():
    grid = Grid(7, 7, 7, 1.0)
    very_near = np.zeros(grid.shape, dtype=bool)
    very_near[1, 1, 1] = True
    near = very_near.copy()
    near[0:3, 0:3, 0:3] = True
    field = LineField(field=uniform_field(grid.shape, (0.0, 1.0, 0.0)), near_core=near, very_near_core=very_near)

    integrator = PathIntegrator(grid, field)
    phase = integrator.integrate()

    assert phase.missed[1, 1, 1]
    assert phase.n_missed == 1
    # Near-core cells are filled in by the second pass
    assert phase.phi[0, 0, 0] == pytest.approx(wrap_phase(1.0 * (0 - grid.center_cell[1])))


def test_phase_is_wrapped():
    grid = Grid(9, 5, 5, 2.0)
    field = LineField(
        field=uniform_field(grid.shape),
        near_core=np.zeros(grid.shape, dtype=bool),
        very_near_core=np.zeros(grid.shape, dtype=bool),
    )
    phase = PathIntegrator(grid, field).integrate()
    assert np.all(phase.phi <= np.pi)
    assert np.all(phase.phi > -np.pi)


def test_cells_behind_a_core_wall_count_as_failed_paths():
    grid = Grid(7, 7, 7, 1.0)
    wall = np.zeros(grid.shape, dtype=bool)
    wall[2, :, :] = True
    field = LineField(field=uniform_field(grid.shape), near_core=wall, very_near_core=wall.copy())

    integrator = PathIntegrator(grid, field)
    phase = integrator.integrate()

    # Every one of the 2 * 49 cells behind the wall fails in both sweeps
    assert phase.missed[:3].all()
    assert not phase.missed[3:].any()
    assert integrator.failed_paths >= 2 * 98
