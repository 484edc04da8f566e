import logging

import numpy as np
import pytest

from vortexknots.analysis.initializers import (
    BASELINE_U,
    BASELINE_V,
    FieldPairInitializer,
    FunctionInitializer,
    PhaseFieldInitializer,
    PolylineInitializer,
    SurfaceInitializer,
    uv_from_phase,
)
from vortexknots.config import SimulationConfig
from vortexknots.model.geometry import FilamentPolyline, TriangulatedSurface, regular_polygon
from vortexknots.model.grid import Grid


@pytest.fixture
def config() -> SimulationConfig:
    return SimulationConfig(nx=16, ny=16, nz=16, h=1.0)


def test_phase_maps_onto_limit_cycle():
    phi = np.array([0.0, np.pi / 2, np.pi])
    u, v = uv_from_phase(phi)
    np.testing.assert_allclose(u, [1.6, -0.4, -2.4], atol=1e-12)
    np.testing.assert_allclose(v, [-0.4, 0.6, -0.4], atol=1e-12)


def test_missed_cells_get_baseline():
    phi = np.array([0.3, 1.0])
    u, v = uv_from_phase(phi, np.array([False, True]))
    assert u[1] == BASELINE_U
    assert v[1] == BASELINE_V
    assert u[0] != BASELINE_U


def test_function_initializer_single_vortex_line(config):
    grid = Grid.from_config(config)
    state = FunctionInitializer(lambda x, y, z: np.arctan2(y, x)).initial_state(grid, config)
    assert state.u.shape == grid.shape
    assert np.all(np.abs(state.phi) <= np.pi)
    # Going once around the axis winds the phase by one turn
    ring = state.phi[[9, 6, 6, 9], [9, 9, 6, 6], 0]
    winding = np.sum(np.angle(np.exp(1j * np.diff(np.r_[ring, ring[0]]))))
    assert winding == pytest.approx(2.0 * np.pi)


def test_phase_field_initializer_wraps(config):
    grid = Grid.from_config(config)
    phi = np.full(grid.shape, 3.0 * np.pi)
    state = PhaseFieldInitializer(phi).initial_state(grid, config)
    np.testing.assert_allclose(state.phi, np.pi)


def test_phase_field_initializer_rejects_wrong_shape(config):
    grid = Grid.from_config(config)
    with pytest.raises(ValueError):
        PhaseFieldInitializer(np.zeros((4, 4, 4))).initial_state(grid, config)
    with pytest.raises(ValueError):
        PhaseFieldInitializer(np.zeros(grid.shape), missed=np.zeros((4, 4, 4), dtype=bool)).initial_state(grid, config)


def test_field_pair_initializer_copies_fields(config):
    grid = Grid.from_config(config)
    u = np.full(grid.shape, 0.5)
    v = np.full(grid.shape, -0.1)
    state = FieldPairInitializer(u, v).initial_state(grid, config)
    np.testing.assert_array_equal(state.u, u)
    assert state.u is not u
    assert state.phi is None


def test_field_pair_initializer_rejects_wrong_shape(config):
    grid = Grid.from_config(config)
    with pytest.raises(ValueError):
        FieldPairInitializer(np.zeros(grid.shape), np.zeros((3, 3, 3))).initial_state(grid, config)


def test_polyline_initializer_winds_around_the_filament():
    config = SimulationConfig(nx=16, ny=16, nz=16, h=1.0, fill_fraction=0.5)
    grid = Grid.from_config(config)
    initializer = PolylineInitializer(FilamentPolyline.from_points(regular_polygon(6, 1.0)))
    state = initializer.initial_state(grid, config)

    assert state.phi.shape == grid.shape
    assert np.all(np.isfinite(state.u))
    assert state.missed.sum() < 0.1 * grid.size
    np.testing.assert_array_equal(state.u[state.missed], BASELINE_U)

    # The hexagon has radius 4 here and crosses the x-z plane y = 0.5 near x = 3.7;
    # walk the cells of a rectangle around that crossing
    cells = (
        [(i, 8, 4) for i in range(8, 15)]
        + [(14, 8, k) for k in range(5, 12)]
        + [(i, 8, 11) for i in range(13, 7, -1)]
        + [(8, 8, k) for k in range(10, 4, -1)]
    )
    ring = np.array([state.phi[c] for c in cells])
    winding = np.sum(np.angle(np.exp(1j * np.diff(np.r_[ring, ring[0]]))))
    assert abs(winding) == pytest.approx(2.0 * np.pi, abs=0.5)


def test_surface_initializer_has_no_missed_cells(config, caplog):
    caplog.set_level(logging.DEBUG, logger="vortexknots")
    grid = Grid.from_config(config)
    triangles = [[[0, 0, 0], [1, 0, 0], [1, 1, 0]], [[0, 0, 0], [1, 1, 0], [0, 1, 0]]]
    state = SurfaceInitializer(TriangulatedSurface.from_vertices(triangles)).initial_state(grid, config)
    assert not state.missed.any()
    assert np.all(np.abs(state.phi) <= np.pi)
    assert "Normalized surface: 2 triangles." in caplog.text
