"""
Topology Analyzer
=================
Differential geometry and topological densities of extracted curves.

Why is this file needed?
------------------------
Writhe and twist together give the linking number of a filament with its
material frame, which is what a knotted vortex conserves (or not) while it
evolves. They are computed here along with curvature and torsion from the
discrete points and frame vectors of a :class:`Curve`.

All quantities are forward differences: the value at s uses points s to s + 3
and is attributed to the segment from s to s + 1. Indices wrap.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from vortexknots.utils import TWO_PI, unit

if TYPE_CHECKING:
    import numpy.typing as npt

    from vortexknots.model.curve import Curve

logger = logging.getLogger(__name__)


def _segments(points: npt.NDArray[np.float64], shift: int) -> npt.NDArray[np.float64]:
    """Segment vectors p[s + shift + 1] - p[s + shift] for every s."""
    return np.roll(points, -(shift + 1), axis=0) - np.roll(points, -shift, axis=0)


def writhe_density(points: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """
    Gauss-integral writhe density of a closed polyline.

    ``w_s = sum_{m != s} r . (T_s x dl_m) / (4 pi |r|^3)`` with ``r`` from
    the midpoint of segment m to the midpoint of segment s.
    """
    dl = _segments(points, 0)
    tangents = unit(dl)
    midpoints = points + 0.5 * dl

    r = midpoints[:, None, :] - midpoints[None, :, :]  # (s, m, 3)
    distance = np.linalg.norm(r, axis=2)
    np.fill_diagonal(distance, np.inf)
    cross = np.cross(tangents[:, None, :], dl[None, :, :])
    return np.sum(np.sum(r * cross, axis=2) / distance**3, axis=1) / (4.0 * np.pi)


class TopologyAnalyzer:
    """
    Fills the per-point geometry of a curve and its totals.
    """

    def __init__(self, eps: float = 1e-10) -> None:
        """
        Args:
            eps: Curvature below which the normal is undefined and torsion is 0.
        """
        self.eps = eps

    def analyze(self, curve: Curve) -> Curve:
        """
        Compute curvature, torsion, writhe and twist densities, segment
        lengths and the arclength-weighted totals of ``curve`` in place.

        Returns:
            The same ``curve``.
        """
        points = curve.points
        deltas = [np.linalg.norm(_segments(points, i), axis=1) for i in range(3)]
        tangents = [unit(_segments(points, i)) for i in range(3)]

        normal_0 = (tangents[1] - tangents[0]) / deltas[0][:, None]
        normal_1 = (tangents[2] - tangents[1]) / deltas[1][:, None]
        curvature_0 = np.linalg.norm(normal_0, axis=1)
        curvature_1 = np.linalg.norm(normal_1, axis=1)
        n_hat_0 = unit(normal_0, self.eps)
        n_hat_1 = unit(normal_1, self.eps)

        # -(dB/ds) . N with B = T x N stays finite for nearly planar curves
        binormal_change = (np.cross(tangents[1], n_hat_1) - np.cross(tangents[0], n_hat_0)) / deltas[0][:, None]
        torsion = -np.sum(binormal_change * n_hat_0, axis=1)
        torsion[(curvature_0 < self.eps) | (curvature_1 < self.eps)] = 0.0

        frame = curve.frame
        frame_change = (np.roll(frame, -1, axis=0) - frame) / deltas[0][:, None]
        twist = np.sum(tangents[0] * np.cross(frame, frame_change), axis=1) / TWO_PI

        writhe = writhe_density(points)

        curve.curvature = curvature_0
        curve.torsion = torsion
        curve.twist_density = twist
        curve.writhe_density = writhe
        curve.segment_length = deltas[0]
        curve.writhe = float(np.sum(writhe * deltas[0]))
        curve.twist = float(np.sum(twist * deltas[0]))
        curve.length = float(np.sum(deltas[0]))
        logger.debug(f"Analyzed curve of {points.shape[0]} points: writhe {curve.writhe:.4f}, twist {curve.twist:.4f}.")
        return curve
