"""
Extracted Filament Curves
=========================
Data structures for the filaments found in the evolving field.

Why is this file needed?
------------------------
A curve is created fresh at every extraction time. The extractor fills the
positions and the material frame, the topology analyzer fills the
differential-geometric quantities and the kinematics tracker fills velocity
and spin rate once the next curve set is known.

Classes:
    Curve: One closed filament with per-point attributes.
    CurveSummary: Totals for one curve at one time.
    CurveSet: All curves found at one time.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, Optional

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt


def _nan_array(shape: tuple[int, ...]) -> npt.NDArray[np.float64]:
    return np.full(shape, np.nan, dtype=np.float64)


@dataclass
class Curve:
    """
    Closed filament sampled at ``n_points`` points; index arithmetic wraps.

    Per-point quantities defined on the segment from point s to s + 1
    (curvature, torsion, writhe, twist, segment_length) are stored at s.
    """
    points: npt.NDArray[np.float64]
    frame: Optional[npt.NDArray[np.float64]] = None

    curvature: Optional[npt.NDArray[np.float64]] = None
    torsion: Optional[npt.NDArray[np.float64]] = None
    writhe_density: Optional[npt.NDArray[np.float64]] = None
    twist_density: Optional[npt.NDArray[np.float64]] = None
    segment_length: Optional[npt.NDArray[np.float64]] = None

    velocity: Optional[npt.NDArray[np.float64]] = None
    spin_rate: Optional[npt.NDArray[np.float64]] = None

    writhe: float = 0.0
    twist: float = 0.0
    length: float = 0.0

    def __post_init__(self) -> None:
        self.points = np.asarray(self.points, dtype=np.float64)
        n = self.points.shape[0]
        if self.frame is None:
            self.frame = np.zeros((n, 3), dtype=np.float64)
        for name in ("curvature", "torsion", "writhe_density", "twist_density"):
            if getattr(self, name) is None:
                setattr(self, name, np.zeros(n, dtype=np.float64))
        if self.segment_length is None:
            self.segment_length = np.linalg.norm(np.roll(self.points, -1, axis=0) - self.points, axis=1)
        if self.velocity is None:
            self.velocity = _nan_array((n, 3))
        if self.spin_rate is None:
            self.spin_rate = _nan_array((n,))

    @property
    def n_points(self) -> int:
        return self.points.shape[0]

    @property
    def perimeter(self) -> float:
        return float(np.sum(np.linalg.norm(np.roll(self.points, -1, axis=0) - self.points, axis=1)))

    @property
    def centroid(self) -> npt.NDArray[np.float64]:
        return self.points.mean(axis=0)

    @property
    def area_vector(self) -> npt.NDArray[np.float64]:
        """Vector area ``0.5 * sum(p_s x p_{s+1})``; its direction is the mean orientation."""
        centred = self.points - self.centroid
        return 0.5 * np.sum(np.cross(centred, np.roll(centred, -1, axis=0)), axis=0)

    def summary(self, time: float, component: int) -> CurveSummary:
        return CurveSummary(time=time, component=component, writhe=self.writhe, twist=self.twist, length=self.length)


@dataclass(frozen=True)
class CurveSummary:
    """Totals of one curve at one time, the record handed to the aggregator."""
    time: float
    component: int
    writhe: float
    twist: float
    length: float


@dataclass
class CurveSet:
    """All curves found at one extraction time."""
    time: float
    curves: list[Curve] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.curves)

    def __iter__(self) -> Iterator[Curve]:
        return iter(self.curves)

    def __getitem__(self, index: int) -> Curve:
        return self.curves[index]

    def summaries(self) -> list[CurveSummary]:
        return [curve.summary(self.time, c) for c, curve in enumerate(self.curves)]
