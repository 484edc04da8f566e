"""
Geometry Normalizer
===================
Places raw filament geometry into the physical box of the grid.

Why is this file needed?
------------------------
Input curves and surfaces come in arbitrary units and positions. Before the
field engines can use them they are scaled into a target box (optionally with
one common scale factor), recentred on their bounding-box midpoint, rotated
and translated. Polylines are also resampled at roughly half a grid spacing
so the line integral of the Biot-Savart engine is well resolved.
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Sequence

import numpy as np

from vortexknots.model.geometry import (
    FilamentPolyline,
    NormalizedPolyline,
    NormalizedSurface,
    TriangulatedSurface,
)

if TYPE_CHECKING:
    import numpy.typing as npt

    from vortexknots.config import SimulationConfig

logger = logging.getLogger(__name__)


def rotation_matrix(theta: float, phi: float) -> npt.NDArray[np.float64]:
    """
    Rotation by the two placement angles.

    ``theta`` tilts about the y axis, ``phi`` then turns about the z axis.
    """
    ct, st = math.cos(theta), math.sin(theta)
    cp, sp = math.cos(phi), math.sin(phi)
    return np.array([
        [cp * ct, -sp, cp * st],
        [sp * ct, cp, sp * st],
        [-st, 0.0, ct],
    ])


def heron_area(a: npt.NDArray[np.float64], b: npt.NDArray[np.float64], c: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Triangle areas from the three corner arrays (each (T, 3)) by Heron's formula."""
    r10 = np.linalg.norm(b - a, axis=-1)
    r20 = np.linalg.norm(c - a, axis=-1)
    r21 = np.linalg.norm(c - b, axis=-1)
    s = 0.5 * (r10 + r20 + r21)
    # Round-off can push nearly degenerate triangles slightly negative
    return np.sqrt(np.maximum(s * (s - r10) * (s - r20) * (s - r21), 0.0))


def resample_closed(points: npt.NDArray[np.float64], h: float) -> npt.NDArray[np.float64]:
    """
    Resample a closed polyline at uniform arclength spacing of about h / 2.

    Args:
        points: (n, 3) ordered points, closure implied.
        h: Grid spacing.

    Returns:
        (m, 3) points with ``m = floor(2 L / h)`` spaced ``L / m`` apart.

    Raises:
        ValueError: If the component has zero length.
    """
    closed = np.vstack((points, points[:1]))
    segment = np.linalg.norm(np.diff(closed, axis=0), axis=1)
    arclength = np.concatenate(([0.0], np.cumsum(segment)))
    length = arclength[-1]
    if length <= 0.0:
        raise ValueError("Cannot resample a polyline of zero length.")

    n_samples = max(int(2.0 * length / h), 3)
    s = np.arange(n_samples) * (length / n_samples)
    return np.column_stack([np.interp(s, arclength, closed[:, axis]) for axis in range(3)])


class GeometryNormalizer:
    """
    Scales, recentres, rotates and translates input geometry into the grid box.
    """

    def __init__(
        self,
        target_extent: Sequence[float],
        h: float,
        preserve_aspect_ratio: bool = True,
        theta: float = 0.0,
        phi: float = 0.0,
        displacement: Sequence[float] = (0.0, 0.0, 0.0),
    ) -> None:
        """
        Args:
            target_extent: Physical size of the box the geometry is scaled into, per axis.
            h: Grid spacing, sets the polyline resampling density.
            preserve_aspect_ratio: Use one common scale factor for all axes.
            theta: First placement angle (radians).
            phi: Second placement angle (radians).
            displacement: Translation applied after the rotation.
        """
        self.target_extent = np.asarray(target_extent, dtype=np.float64)
        self.h = float(h)
        self.preserve_aspect_ratio = preserve_aspect_ratio
        self.rotation = rotation_matrix(theta, phi)
        self.displacement = np.asarray(displacement, dtype=np.float64)

    @classmethod
    def from_config(cls, config: SimulationConfig) -> GeometryNormalizer:
        return cls(
            target_extent=config.target_extent,
            h=config.h,
            preserve_aspect_ratio=config.preserve_aspect_ratio,
            theta=config.rotation_theta,
            phi=config.rotation_phi,
            displacement=config.displacement,
        )

    def scale_factors(self, points: npt.NDArray[np.float64]) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """
        Per-axis scale factors and bounding-box midpoint of a point cloud.

        An axis with zero extent keeps scale 1 and does not take part in
        choosing the common factor when the aspect ratio is preserved.

        Returns:
            (scale, midpoint), both (3,) arrays.
        """
        lower = points.min(axis=0)
        upper = points.max(axis=0)
        extent = upper - lower
        midpoint = 0.5 * (upper + lower)

        nonzero = extent > 0.0
        scale = np.ones(3, dtype=np.float64)
        scale[nonzero] = self.target_extent[nonzero] / extent[nonzero]

        if self.preserve_aspect_ratio and np.any(nonzero):
            scale[:] = scale[nonzero].min()

        return scale, midpoint

    def rotate_displace(self, points: npt.NDArray[np.float64], translate: bool = True) -> npt.NDArray[np.float64]:
        """Apply the placement rotation (and translation) to row vectors."""
        rotated = points @ self.rotation.T
        if translate:
            rotated = rotated + self.displacement
        return rotated

    def normalize_polyline(self, polyline: FilamentPolyline) -> NormalizedPolyline:
        """
        Place every component of a knot or link in the box.

        One bounding box is taken over all components so a link keeps its
        relative geometry. Each component is resampled and given
        central-difference line elements.
        """
        scale, midpoint = self.scale_factors(polyline.all_points)

        points: list[npt.NDArray[np.float64]] = []
        elements: list[npt.NDArray[np.float64]] = []
        offsets: list[int] = []
        total_length = 0.0
        n_points = 0
        for component in polyline.components:
            scaled = scale * (component - midpoint)
            resampled = resample_closed(scaled, self.h)
            placed = self.rotate_displace(resampled)

            offsets.append(n_points)
            n_points += placed.shape[0]
            points.append(placed)
            elements.append(0.5 * (np.roll(placed, -1, axis=0) - np.roll(placed, 1, axis=0)))
            total_length += float(np.sum(np.linalg.norm(np.roll(placed, -1, axis=0) - placed, axis=1)))

        logger.info(
            f"Polyline scaled by ({scale[0]:.4g}, {scale[1]:.4g}, {scale[2]:.4g}), "
            f"{n_points} points, total length {total_length:.3f}."
        )
        return NormalizedPolyline(
            points=np.vstack(points),
            elements=np.vstack(elements),
            component_offsets=offsets,
            scale_factors=scale,
            total_length=total_length,
        )

    def normalize_surface(self, surface: TriangulatedSurface) -> NormalizedSurface:
        """
        Place an oriented triangle mesh in the box.

        Normals scale contravariantly: component i is multiplied by the
        product of the other two scale factors before renormalizing.
        """
        scale, midpoint = self.scale_factors(surface.vertices.reshape(-1, 3))

        vertices = scale * (surface.vertices - midpoint)
        areas = heron_area(vertices[:, 0], vertices[:, 1], vertices[:, 2])
        centroids = vertices.mean(axis=1)

        contravariant = np.array([scale[1] * scale[2], scale[0] * scale[2], scale[0] * scale[1]])
        normals = surface.normals * contravariant
        norm = np.linalg.norm(normals, axis=1, keepdims=True)
        if np.any(norm == 0.0):
            raise ValueError("Surface contains a triangle with a zero normal.")
        normals = normals / norm

        total_area = float(areas.sum())
        logger.info(
            f"Surface scaled by ({scale[0]:.4g}, {scale[1]:.4g}, {scale[2]:.4g}), "
            f"{surface.n_triangles} triangles, total area {total_area:.3f}."
        )
        return NormalizedSurface(
            centroids=self.rotate_displace(centroids),
            normals=self.rotate_displace(normals, translate=False),
            areas=areas,
            scale_factors=scale,
            total_area=total_area,
        )
