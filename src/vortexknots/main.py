"""
Command-Line Entry
==================
Runs a small demonstration simulation of a single filament.

Why is this file needed?
------------------------
It is the composition root: it builds the configuration, the grid, the
initial condition and the driver, wires logging and a console progress
report, and prints the per-curve summary of the run. File readers and
writers live outside the package, so the demo starts from a built-in
geometry.
"""
import argparse
import logging
from typing import Optional, Sequence

from vortexknots.analysis.initializers import PolylineInitializer
from vortexknots.config import SimulationConfig, UpdateScheme
from vortexknots.logging_config import setup_logging
from vortexknots.model.geometry import FilamentPolyline, regular_polygon, trefoil
from vortexknots.model.grid import Grid
from vortexknots.model.state import SimulationResult
from vortexknots.solvers.simulation import Simulation

logger = logging.getLogger(__name__)

SHAPES = ("hexagon", "trefoil")


def build_polyline(shape: str) -> FilamentPolyline:
    if shape == "hexagon":
        return FilamentPolyline.from_points(regular_polygon(6, 1.0))
    if shape == "trefoil":
        return FilamentPolyline.from_points(trefoil(300))
    raise ValueError(f"Unknown shape: {shape}")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="vortexknots", description="Evolve a vortex filament in an excitable medium.")
    parser.add_argument("--shape", choices=SHAPES, default="hexagon")
    parser.add_argument("--cells", type=int, default=48, help="Grid cells per axis.")
    parser.add_argument("--spacing", type=float, default=0.75, help="Grid spacing.")
    parser.add_argument("--time", type=float, default=10.0, help="Total simulated time.")
    parser.add_argument("--curve-interval", type=float, default=1.0)
    parser.add_argument("--field-interval", type=float, default=5.0)
    parser.add_argument("--scheme", choices=[s.value for s in UpdateScheme], default=UpdateScheme.RK4.value)
    parser.add_argument("--threads", type=int, default=None)
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)

    # 1. Setup Logging (Console + Optional File)
    setup_logging(level=logging.DEBUG if args.debug else logging.INFO, log_file=args.log_file)

    # 2. Configuration and grid
    config = SimulationConfig(
        nx=args.cells, ny=args.cells, nz=args.cells,
        h=args.spacing,
        total_time=args.time,
        curve_interval=args.curve_interval,
        field_interval=args.field_interval,
        scheme=UpdateScheme(args.scheme),
        n_threads=args.threads,
    )
    grid = Grid.from_config(config)
    logger.info(f"Demo run: {args.shape} on a {grid.shape} grid, h = {grid.h}.")

    # 3. Initial condition from the built-in geometry
    initial_condition = PolylineInitializer(build_polyline(args.shape))

    # 4. Run, reporting progress on the console
    def progress_callback(percentage: int, message: str) -> None:
        print(f"Progress: {percentage} % - {message}")

    simulation = Simulation(grid, config, initial_condition, progress_callback=progress_callback)
    result = simulation.run()

    # 5. Summary table
    if isinstance(result, SimulationResult):
        print(f"{'time':>8} {'curve':>5} {'writhe':>10} {'twist':>10} {'length':>10}")
        for summary in result.summaries:
            print(
                f"{summary.time:8.2f} {summary.component:5d} {summary.writhe:10.4f} "
                f"{summary.twist:10.4f} {summary.length:10.3f}"
            )


if __name__ == "__main__":
    main()
