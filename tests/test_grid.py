import numpy as np
import pytest

from vortexknots.config import ALL_PERIODIC, Z_PERIODIC, BoundaryMode
from vortexknots.model.grid import Grid


def test_coordinates_are_cell_centred_about_origin():
    grid = Grid(4, 6, 8, 0.5)
    assert grid.x[0] == pytest.approx((0.5 - 2.0) * 0.5)
    np.testing.assert_allclose(grid.x, -grid.x[::-1])
    np.testing.assert_allclose(grid.z, -grid.z[::-1])
    assert np.diff(grid.y) == pytest.approx(0.5)


def test_linear_index_is_c_order():
    grid = Grid(4, 5, 6, 1.0)
    assert grid.index(1, 2, 3) == np.ravel_multi_index((1, 2, 3), grid.shape)
    assert grid.unravel(grid.index(3, 4, 5)) == (3, 4, 5)
    assert grid.size == 120


def test_reflecting_neighbors_mirror_at_edges(small_grid):
    assert small_grid.neighbor(0, 3, 3, axis=0, step=-1) == (1, 3, 3)
    assert small_grid.neighbor(7, 3, 3, axis=0, step=+1) == (6, 3, 3)
    assert small_grid.neighbor(3, 3, 3, axis=1, step=+1) == (3, 4, 3)


def test_periodic_neighbors_wrap():
    grid = Grid(8, 8, 8, 1.0, Z_PERIODIC)
    assert grid.neighbor(3, 3, 0, axis=2, step=-1) == (3, 3, 7)
    assert grid.neighbor(3, 3, 7, axis=2, step=+1) == (3, 3, 0)
    # x stays reflecting
    assert grid.neighbor(0, 3, 3, axis=0, step=-1) == (1, 3, 3)


def test_wrap_index_reflects_far_outside(small_grid):
    assert small_grid.wrap_index(-1, 0) == 1
    assert small_grid.wrap_index(8, 0) == 6
    assert small_grid.wrap_index(-3, 0) == 3


def test_stratum_window_clips_or_wraps():
    reflecting = Grid(8, 8, 8, 1.0)
    periodic = Grid(8, 8, 8, 1.0, ALL_PERIODIC)
    np.testing.assert_array_equal(reflecting.stratum_window(0, 2, 0), [0, 1, 2])
    np.testing.assert_array_equal(reflecting.stratum_window(7, 1, 1), [6, 7])
    np.testing.assert_array_equal(periodic.stratum_window(0, 2, 2), [0, 1, 2, 6, 7])


def test_contains(small_grid):
    assert small_grid.contains([0.0, 0.0, 0.0])
    assert small_grid.contains([3.4, -3.4, 0.0])
    assert not small_grid.contains([4.6, 0.0, 0.0])
    assert not small_grid.contains([0.0, 0.0, -4.1])

    grid = Grid(8, 8, 8, 1.0, Z_PERIODIC)
    assert grid.contains([0.0, 0.0, 100.0])
    assert not grid.contains([100.0, 0.0, 0.0])


def test_interpolation_is_exact_for_linear_fields(small_grid):
    x, y, z = small_grid.mesh()
    field = 2.0 * x + 3.0 * y - z + 1.0
    point = np.array([0.3, -1.2, 2.1])
    assert small_grid.interpolate(field, point) == pytest.approx(2.0 * 0.3 + 3.0 * -1.2 - 2.1 + 1.0)


def test_interpolation_of_vector_field(small_grid):
    x, y, z = small_grid.mesh()
    field = np.stack((x, y, z))
    point = np.array([0.25, 0.5, -0.75])
    np.testing.assert_allclose(small_grid.interpolate(field, point), point)


def test_interpolation_at_cell_centre_returns_cell_value(small_grid):
    rng = np.random.default_rng(0)
    field = rng.normal(size=small_grid.shape)
    point = [small_grid.x[2], small_grid.y[5], small_grid.z[3]]
    assert small_grid.interpolate(field, point) == pytest.approx(field[2, 5, 3])


def test_central_gradient_of_linear_field(small_grid):
    x, y, z = small_grid.mesh()
    grad = small_grid.central_gradient(2.0 * x - y + 0.5 * z)
    inner = (slice(1, -1),) * 3
    np.testing.assert_allclose(grad[0][inner], 2.0)
    np.testing.assert_allclose(grad[1][inner], -1.0)
    np.testing.assert_allclose(grad[2][inner], 0.5)
    # Mirrored edge cells see a symmetric stencil
    np.testing.assert_allclose(grad[0][0], 0.0)


def test_center_cell():
    assert Grid(7, 8, 9, 1.0).center_cell == (4, 4, 5)


def test_boundary_modes_are_parsed():
    grid = Grid(4, 4, 4, 1.0, ("reflecting", "periodic", "reflecting"))
    assert grid.boundary[1] is BoundaryMode.PERIODIC


@pytest.mark.parametrize("args", [(2, 8, 8, 1.0), (8, 8, 8, 0.0), (8, 8, 8, -1.0)])
def test_invalid_grid_raises(args):
    with pytest.raises(ValueError):
        Grid(*args)
