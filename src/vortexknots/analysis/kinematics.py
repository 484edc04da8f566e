"""
Kinematics Tracker
==================
Velocity and frame spin rate of each filament between two extraction times.

Why is this file needed?
------------------------
Curves are extracted afresh at every snapshot, so nothing ties point s of one
curve set to a point of the next. Components are first paired by position and
orientation, then each point of the earlier curve is followed to the place
where the later curve crosses the plane normal to the earlier curve at that
point. The displacement to that crossing and the change of the frame vector
give the velocity and spin rate, which are stored on the earlier curve.

Classes:
    Intersection: A segment-plane crossing.
    TrackingReport: Matched components and miss counters of one call.
    KinematicsTracker: Does the pairing and the per-point search.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Iterator, Optional

import numpy as np
from scipy.optimize import linear_sum_assignment

from vortexknots.utils import unit

if TYPE_CHECKING:
    import numpy.typing as npt

    from vortexknots.model.curve import Curve, CurveSet

logger = logging.getLogger(__name__)

# Segments closer to parallel with the plane than this (relative) are skipped
PARALLEL_TOLERANCE = 1e-2


@dataclass
class Intersection:
    point: npt.NDArray[np.float64]
    fraction: float


@dataclass
class TrackingReport:
    """
    Attributes:
        matches: (previous, current) component index pairs.
        misses: Previous-curve points for which no crossing was found.
        unmatched: Previous components without a partner in the current set.
    """
    matches: list[tuple[int, int]] = field(default_factory=list)
    misses: int = 0
    unmatched: int = 0


def segment_plane_intersection(
    origin: npt.NDArray[np.float64],
    normal: npt.NDArray[np.float64],
    start: npt.NDArray[np.float64],
    end: npt.NDArray[np.float64],
) -> Optional[Intersection]:
    """
    Crossing of the segment ``start -> end`` with the plane through ``origin``
    with normal ``normal``.

    Returns:
        The crossing and its fraction along the segment, or None if the
        segment misses the plane or runs (nearly) parallel to it.
    """
    u = end - start
    w = start - origin
    d = np.dot(normal, u)
    if abs(d) < PARALLEL_TOLERANCE * np.linalg.norm(normal) * np.linalg.norm(u):
        return None
    fraction = -np.dot(normal, w) / d
    if not 0.0 <= fraction <= 1.0:
        return None
    return Intersection(point=start + fraction * u, fraction=float(fraction))


def match_components(previous: CurveSet, current: CurveSet, wavelength: float) -> list[tuple[int, int]]:
    """
    Pair components of two curve sets.

    The cost of a pair is the centroid distance in wavelengths plus the
    orientation mismatch ``1 - |n_prev . n_cur|`` of the unit area vectors.
    The assignment minimizes the total cost.
    """
    if len(previous) == 0 or len(current) == 0:
        return []
    prev_centroids = np.array([c.centroid for c in previous])
    cur_centroids = np.array([c.centroid for c in current])
    prev_normals = unit(np.array([c.area_vector for c in previous]))
    cur_normals = unit(np.array([c.area_vector for c in current]))

    distance = np.linalg.norm(prev_centroids[:, None, :] - cur_centroids[None, :, :], axis=2) / wavelength
    mismatch = 1.0 - np.abs(prev_normals @ cur_normals.T)
    rows, cols = linear_sum_assignment(distance + mismatch)
    return [(int(r), int(c)) for r, c in zip(rows, cols)]


def _search_order(guess: int, n: int) -> Iterator[int]:
    """``guess, guess + 1, guess - 1, guess + 2, ...`` modulo n, n indices in total."""
    yield guess % n
    count = 1
    offset = 1
    while count < n:
        yield (guess + offset) % n
        count += 1
        if count < n:
            yield (guess - offset) % n
            count += 1
        offset += 1


class KinematicsTracker:
    """
    Computes velocity and spin rate of the previous curve set.
    """

    def __init__(self, wavelength: float) -> None:
        self.wavelength = wavelength

    def track(self, previous: CurveSet, current: CurveSet) -> TrackingReport:
        """
        Fill ``velocity`` and ``spin_rate`` of every matched previous curve.

        Points without a crossing keep NaN.

        Returns:
            What was matched and how many points were missed.
        """
        dt = current.time - previous.time
        if dt <= 0.0:
            raise ValueError(f"Current curve set must be later than the previous one, got dt = {dt}.")

        report = TrackingReport(matches=match_components(previous, current, self.wavelength))
        report.unmatched = len(previous) - len(report.matches)
        for p, c in report.matches:
            report.misses += self.track_curve(previous[p], current[c], dt)

        if report.misses:
            logger.warning(f"No correspondence found for {report.misses} point(s) at t = {previous.time:.2f}.")
        if report.unmatched:
            logger.info(f"{report.unmatched} curve(s) at t = {previous.time:.2f} have no successor.")
        return report

    def track_curve(self, previous: Curve, current: Curve, dt: float) -> int:
        """
        Follow every point of ``previous`` onto ``current``.

        Returns:
            The number of points without a crossing.
        """
        old = previous.points
        new = current.points
        n_old = old.shape[0]
        n_new = new.shape[0]
        offset = int(np.argmin(np.linalg.norm(new - old[0], axis=1)))

        velocity = np.full((n_old, 3), np.nan)
        spin_rate = np.full(n_old, np.nan)
        misses = 0
        for s in range(n_old):
            normal = old[(s + 1) % n_old] - old[s]
            guess = offset + int(round(s * n_new / n_old))
            for m in _search_order(guess, n_new):
                hit = segment_plane_intersection(old[s], normal, new[m], new[(m + 1) % n_new])
                if hit is None:
                    continue
                frame = (1.0 - hit.fraction) * current.frame[m] + hit.fraction * current.frame[(m + 1) % n_new]
                direction = unit(normal)
                frame = unit(frame - np.dot(frame, direction) * direction)
                velocity[s] = (hit.point - old[s]) / dt
                spin_rate[s] = np.linalg.norm(frame - previous.frame[s]) / dt
                break
            else:
                misses += 1

        previous.velocity = velocity
        previous.spin_rate = spin_rate
        return misses
