"""
Run State (Data Model)
======================
This module defines the in-memory record of a simulation run.

Why is this file needed?
------------------------
1. State Management: It collects every curve set, field snapshot and summary
   row produced by the time loop in one place.
2. Decoupling: The driver only talks to the ``SnapshotSink`` protocol; this
   class is the default sink, an external serializer can be another one.

Classes:
    FieldSnapshot: Copies of the grid fields at one time.
    SimulationResult: The container of everything a run produced.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    import numpy as np
    import numpy.typing as npt

    from vortexknots.model.curve import CurveSet, CurveSummary

logger = logging.getLogger(__name__)


@dataclass
class FieldSnapshot:
    """
    Grid fields at one time.

    ``cross_gradient`` has shape (3, nx, ny, nz) and is only present when it
    was computed for the same step.
    """
    time: float
    u: npt.NDArray[np.float64]
    v: npt.NDArray[np.float64]
    cross_gradient: Optional[npt.NDArray[np.float64]] = None


@dataclass
class SimulationResult:
    """
    Default in-memory sink for everything a run produces.
    """
    curve_sets: list[CurveSet] = field(default_factory=list)
    fields: list[FieldSnapshot] = field(default_factory=list)
    summaries: list[CurveSummary] = field(default_factory=list)

    abandoned_curves: int = 0
    correspondence_misses: int = 0

    def on_curves(self, curve_set: CurveSet) -> None:
        self.curve_sets.append(curve_set)

    def on_fields(self, snapshot: FieldSnapshot) -> None:
        self.fields.append(snapshot)

    def on_summary(self, summary: CurveSummary) -> None:
        self.summaries.append(summary)

    @property
    def time_steps(self) -> list[float]:
        """Times at which curve sets were emitted."""
        return [curve_set.time for curve_set in self.curve_sets]

    def reset(self) -> None:
        """Clear all data for a new run"""
        self.curve_sets = []
        self.fields = []
        self.summaries = []
        self.abandoned_curves = 0
        self.correspondence_misses = 0
        logger.info("Simulation result has been reset.")
