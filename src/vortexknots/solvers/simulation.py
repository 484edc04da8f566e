"""
Simulation Driver
=================
The time loop that ties initialization, the reaction-diffusion update and the
filament analysis together.

Why is this file needed?
------------------------
The grid update is the parallel part; everything else in a step is control
logic that decides whether a snapshot is due. When a curve snapshot is due
the filaments are extracted, analyzed and compared with the previous set, and
the previous set, now complete with its kinematics, is handed to the sink.
The last set has no successor and is flushed without kinematics at the end.

Classes:
    SnapshotSink: What a consumer of the run output must implement.
    Simulation: The driver.
"""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable, Optional, Protocol

import numpy as np
import numba as nb

from vortexknots.analysis.extraction import ExtractionContext, FilamentExtractor
from vortexknots.analysis.kinematics import KinematicsTracker
from vortexknots.analysis.topology import TopologyAnalyzer
from vortexknots.model.curve import CurveSet
from vortexknots.model.state import FieldSnapshot, SimulationResult
from vortexknots.solvers.reaction_diffusion import ReactionDiffusionIntegrator, cross_gradient

if TYPE_CHECKING:
    import numpy.typing as npt

    from vortexknots.analysis.initializers import InitialCondition, InitialState
    from vortexknots.config import SimulationConfig
    from vortexknots.model.curve import CurveSummary
    from vortexknots.model.grid import Grid

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


class SnapshotSink(Protocol):
    def on_fields(self, snapshot: FieldSnapshot) -> None: ...

    def on_curves(self, curve_set: CurveSet) -> None: ...

    def on_summary(self, summary: CurveSummary) -> None: ...


def _steps_between(interval: float, dt: float) -> int:
    return max(1, int(round(interval / dt)))


class Simulation:
    """
    Runs one simulation from an initial condition to ``total_time``.
    """

    def __init__(
        self,
        grid: Grid,
        config: SimulationConfig,
        initial_condition: InitialCondition,
        sink: Optional[SnapshotSink] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Initialize the driver.

        Args:
            grid: The simulation grid, must match the config's shape.
            config: Run parameters; validated here.
            initial_condition: Strategy that produces the starting fields.
            sink: Receives curve sets, field snapshots and summaries.
                Defaults to a new in-memory :class:`SimulationResult`.
            progress_callback: Called as ``(percentage, message)`` at every snapshot.
        """
        config.validate()
        if grid.shape != config.shape:
            raise ValueError(f"Grid shape {grid.shape} does not match the config shape {config.shape}.")

        self.grid = grid
        self.config = config
        self.initial_condition = initial_condition
        self.sink: SnapshotSink = sink if sink is not None else SimulationResult()
        self.progress_callback = progress_callback

        if config.n_threads is not None:
            nb.set_num_threads(config.n_threads)

        self.integrator = ReactionDiffusionIntegrator(grid, config)
        self.extractor = FilamentExtractor(grid, config)
        self.analyzer = TopologyAnalyzer()
        self.tracker = KinematicsTracker(config.wavelength)
        self.context = ExtractionContext.for_grid(grid)

        self.state: Optional[npt.NDArray[np.float64]] = None
        self.initial_state: Optional[InitialState] = None
        self.previous: Optional[CurveSet] = None
        self.abandoned_curves = 0
        self.correspondence_misses = 0

    @property
    def u(self) -> npt.NDArray[np.float64]:
        return self.state[0]

    @property
    def v(self) -> npt.NDArray[np.float64]:
        return self.state[1]

    def initialize(self) -> InitialState:
        """Build the starting fields from the initial condition."""
        logger.info(f"Initializing fields ({self.initial_condition.NAME}) on a {self.grid.shape} grid.")
        then = time.perf_counter()
        self.initial_state = self.initial_condition.initial_state(self.grid, self.config)
        self.state = ReactionDiffusionIntegrator.stack(self.initial_state.u, self.initial_state.v)
        logger.info(f"Initialization took {time.perf_counter() - then:.2f} s.")
        return self.initial_state

    def run(self) -> SnapshotSink:
        """
        Execute the time loop.

        Returns:
            The sink, holding everything the run produced.
        """
        config = self.config
        if self.state is None:
            self.initialize()

        n_steps = int(round(config.total_time / config.dt))
        curve_every = _steps_between(config.curve_interval, config.dt)
        field_every = _steps_between(config.field_interval, config.dt)
        self.previous = None
        self.abandoned_curves = 0
        self.correspondence_misses = 0

        logger.info(
            f"Starting time loop: {n_steps} steps of dt = {config.dt}, curves every {curve_every} "
            f"and fields every {field_every} steps."
        )
        then = time.perf_counter()

        for n in range(n_steps + 1):
            t = config.start_time + n * config.dt
            curves_due = n % curve_every == 0
            fields_due = n % field_every == 0

            if curves_due or fields_due:
                cg = cross_gradient(self.grid, self.u, self.v)
                if fields_due:
                    self.sink.on_fields(FieldSnapshot(time=t, u=self.u.copy(), v=self.v.copy(), cross_gradient=cg.copy()))
                if curves_due:
                    self._curve_snapshot(t, cg)
                self._report_progress(n, n_steps, t)

            if n < n_steps:
                self.integrator.step(self.state)

        if self.previous is not None:
            self._emit(self.previous)
            self.previous = None

        if isinstance(self.sink, SimulationResult):
            self.sink.abandoned_curves = self.abandoned_curves
            self.sink.correspondence_misses = self.correspondence_misses

        logger.info(
            f"Time loop finished in {time.perf_counter() - then:.2f} s; "
            f"{self.abandoned_curves} abandoned curve(s), {self.correspondence_misses} correspondence miss(es)."
        )
        return self.sink

    def _curve_snapshot(self, t: float, cg: npt.NDArray[np.float64]) -> None:
        context = self.extractor.extract(cg, self.u, self.context)
        self.abandoned_curves += context.abandoned

        curve_set = CurveSet(time=t, curves=list(context.curves))
        for c, curve in enumerate(curve_set):
            self.analyzer.analyze(curve)
            logger.info(
                f"t = {t:.2f}, curve {c}: writhe {curve.writhe:.4f}, twist {curve.twist:.4f}, "
                f"length {curve.length:.3f}."
            )

        if self.previous is not None:
            report = self.tracker.track(self.previous, curve_set)
            self.correspondence_misses += report.misses
            self._emit(self.previous)
        self.previous = curve_set

    def _emit(self, curve_set: CurveSet) -> None:
        self.sink.on_curves(curve_set)
        for summary in curve_set.summaries():
            self.sink.on_summary(summary)

    def _report_progress(self, n: int, n_steps: int, t: float) -> None:
        if self.progress_callback is None:
            return
        percentage = int(100 * n / n_steps) if n_steps else 100
        self.progress_callback(percentage, f"t = {t:.2f}, step {n}/{n_steps}")
