import numpy as np
import pytest

from vortexknots.analysis.initializers import FieldPairInitializer, PolylineInitializer
from vortexknots.config import SimulationConfig
from vortexknots.model.geometry import FilamentPolyline, regular_polygon
from vortexknots.model.grid import Grid
from vortexknots.model.state import SimulationResult
from vortexknots.solvers.simulation import Simulation


class RecordingSink:
    def __init__(self):
        self.calls = []

    def on_fields(self, snapshot):
        self.calls.append(("fields", snapshot.time))

    def on_curves(self, curve_set):
        self.calls.append(("curves", curve_set.time))

    def on_summary(self, summary):
        self.calls.append(("summary", summary.time))


@pytest.fixture
def quiet_config() -> SimulationConfig:
    return SimulationConfig(
        nx=8, ny=8, nz=8, h=1.0, dt=0.1, total_time=1.0, curve_interval=0.5, field_interval=1.0
    )


def uniform_initializer(grid: Grid) -> FieldPairInitializer:
    return FieldPairInitializer(np.full(grid.shape, -1.2), np.full(grid.shape, -0.6))


def test_snapshot_schedule(quiet_config):
    grid = Grid.from_config(quiet_config)
    result = Simulation(grid, quiet_config, uniform_initializer(grid)).run()

    assert isinstance(result, SimulationResult)
    assert result.time_steps == pytest.approx([0.0, 0.5, 1.0])
    assert [f.time for f in result.fields] == pytest.approx([0.0, 1.0])
    assert all(len(curve_set) == 0 for curve_set in result.curve_sets)
    assert result.summaries == []
    assert result.abandoned_curves == 0


def test_field_snapshots_are_copies(quiet_config):
    grid = Grid.from_config(quiet_config)
    result = Simulation(grid, quiet_config, uniform_initializer(grid)).run()
    first, last = result.fields
    np.testing.assert_allclose(first.u, -1.2)
    assert not np.allclose(first.u, last.u)
    assert first.cross_gradient.shape == (3,) + grid.shape


def test_start_time_offsets_snapshots(quiet_config):
    quiet_config.start_time = 10.0
    grid = Grid.from_config(quiet_config)
    result = Simulation(grid, quiet_config, uniform_initializer(grid)).run()
    assert result.time_steps == pytest.approx([10.0, 10.5, 11.0])


def test_custom_sink_receives_every_snapshot(quiet_config):
    grid = Grid.from_config(quiet_config)
    sink = RecordingSink()
    returned = Simulation(grid, quiet_config, uniform_initializer(grid), sink=sink).run()

    assert returned is sink
    assert [c for c in sink.calls if c[0] == "fields"] == [("fields", 0.0), ("fields", pytest.approx(1.0))]
    assert [c[1] for c in sink.calls if c[0] == "curves"] == pytest.approx([0.0, 0.5, 1.0])


def test_progress_callback(quiet_config):
    grid = Grid.from_config(quiet_config)
    reports = []
    Simulation(
        grid, quiet_config, uniform_initializer(grid),
        progress_callback=lambda percentage, message: reports.append(percentage),
    ).run()
    assert reports == [0, 50, 100]


def test_zero_total_time_runs_one_snapshot(quiet_config):
    quiet_config.total_time = 0.0
    grid = Grid.from_config(quiet_config)
    result = Simulation(grid, quiet_config, uniform_initializer(grid)).run()
    assert result.time_steps == [0.0]
    np.testing.assert_allclose(result.fields[0].u, -1.2)


def test_grid_must_match_config(quiet_config):
    with pytest.raises(ValueError):
        Simulation(Grid(9, 8, 8, 1.0), quiet_config, uniform_initializer(Grid(9, 8, 8, 1.0)))


def test_invalid_config_is_rejected(quiet_config):
    quiet_config.dt = 0.0
    grid = Grid.from_config(quiet_config)
    with pytest.raises(ValueError):
        Simulation(grid, quiet_config, uniform_initializer(grid))


def test_hexagon_scroll_ring_end_to_end():
    config = SimulationConfig(
        nx=32, ny=32, nz=32, h=1.0, dt=0.02,
        total_time=4.0, curve_interval=2.0, field_interval=4.0,
        max_curve_points=3000,
    )
    grid = Grid.from_config(config)
    polyline = FilamentPolyline.from_points(regular_polygon(6, 1.0))
    simulation = Simulation(grid, config, PolylineInitializer(polyline))
    result = simulation.run()

    assert result.time_steps == pytest.approx([0.0, 2.0, 4.0])
    assert len(result.fields) == 2
    assert simulation.initial_state.missed.sum() < 0.1 * grid.size

    last = result.curve_sets[-1]
    assert len(last) >= 1
    ring = max(last, key=lambda curve: curve.length)
    # Hexagon of radius 12, perimeter 72, slowly shrinking
    assert 40.0 < ring.length < 90.0
    np.testing.assert_allclose(ring.centroid, 0.0, atol=3.0)
    assert abs(ring.writhe) < 0.5
    assert np.all(np.isfinite(ring.curvature))

    n_curves = sum(len(curve_set) for curve_set in result.curve_sets)
    assert len(result.summaries) == n_curves


def test_hexagon_after_one_step_gives_one_closed_curve_inside_the_filament():
    config = SimulationConfig(
        nx=32, ny=32, nz=32, h=1.0, dt=0.02,
        total_time=0.02, curve_interval=0.02, field_interval=0.02,
        max_curve_points=3000,
    )
    grid = Grid.from_config(config)
    polyline = FilamentPolyline.from_points(regular_polygon(6, 1.0))
    result = Simulation(grid, config, PolylineInitializer(polyline)).run()

    assert result.time_steps == pytest.approx([0.0, 0.02])
    assert result.abandoned_curves == 0
    after_one_step = result.curve_sets[-1]
    assert len(after_one_step) == 1
    curve = after_one_step[0]

    # The input is scaled to circumradius 12: perimeter 72, inscribed radius 12 cos 30
    perimeter = 72.0
    inscribed = 12.0 * np.cos(np.pi / 6.0)
    # The ridge hugs the inner rim of the resting core hole, so the curve runs
    # inside the filament and comes out shorter than it
    assert 0.6 * perimeter < curve.length < 0.9 * perimeter
    radii = np.hypot(curve.points[:, 0], curve.points[:, 1])
    assert 7.0 < radii.mean() < inscribed
    np.testing.assert_allclose(curve.centroid, 0.0, atol=1.0)
    np.testing.assert_allclose(curve.points[:, 2], 0.0, atol=1.0)
