"""
Filament Geometry (Input Model)
===============================
Typed in-memory containers for the geometry that seeds a run.

Why is this file needed?
------------------------
File readers (STL, point lists) live outside the package. They hand the core
one of the raw containers below; the normalizer turns them into the
normalized variants, which the field engines consume and then discard.

Classes:
    FilamentPolyline: One or more closed polylines (a knot or a link).
    TriangulatedSurface: An oriented triangle mesh spanning the filament.
    NormalizedPolyline: Resampled components with tangent line elements.
    NormalizedSurface: Triangle centroids, unit normals and areas.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt


def _as_points(points: npt.ArrayLike, what: str) -> npt.NDArray[np.float64]:
    array = np.asarray(points, dtype=np.float64)
    if array.ndim != 2 or array.shape[1] != 3:
        raise ValueError(f"{what} must have shape (n, 3), got {array.shape}.")
    if not np.all(np.isfinite(array)):
        raise ValueError(f"{what} contains non-finite coordinates.")
    return array


@dataclass
class FilamentPolyline:
    """
    Closed polylines in arbitrary input units.

    Each component is an ``(n, 3)`` array of ordered points; the segment from
    the last point back to the first is implied.
    """
    components: list[npt.NDArray[np.float64]]

    def __post_init__(self) -> None:
        if len(self.components) == 0:
            raise ValueError("A filament needs at least one component.")
        checked = []
        for c, points in enumerate(self.components):
            array = _as_points(points, f"Component {c}")
            if array.shape[0] < 3:
                raise ValueError(f"Component {c} has {array.shape[0]} points, a closed curve needs at least 3.")
            checked.append(array)
        self.components = checked

    @classmethod
    def from_points(cls, *components: npt.ArrayLike) -> FilamentPolyline:
        return cls(components=[np.asarray(c, dtype=np.float64) for c in components])

    @property
    def all_points(self) -> npt.NDArray[np.float64]:
        return np.vstack(self.components)


@dataclass
class TriangulatedSurface:
    """
    Oriented triangle mesh.

    Attributes:
        vertices: (T, 3, 3) array, three corner points per triangle.
        normals: (T, 3) array of outward normals (need not be unit length).
    """
    vertices: npt.NDArray[np.float64]
    normals: npt.NDArray[np.float64]

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=np.float64)
        self.normals = np.asarray(self.normals, dtype=np.float64)
        if self.vertices.ndim != 3 or self.vertices.shape[1:] != (3, 3):
            raise ValueError(f"Vertices must have shape (T, 3, 3), got {self.vertices.shape}.")
        if self.vertices.shape[0] == 0:
            raise ValueError("Surface has no triangles.")
        if self.normals.shape != (self.vertices.shape[0], 3):
            raise ValueError(
                f"Normals must have shape ({self.vertices.shape[0]}, 3), got {self.normals.shape}."
            )
        if not (np.all(np.isfinite(self.vertices)) and np.all(np.isfinite(self.normals))):
            raise ValueError("Surface contains non-finite values.")

    @classmethod
    def from_vertices(cls, vertices: npt.ArrayLike) -> TriangulatedSurface:
        """Build a surface whose normals follow the right-hand rule of each triangle."""
        vertices = np.asarray(vertices, dtype=np.float64)
        normals = np.cross(vertices[:, 1] - vertices[:, 0], vertices[:, 2] - vertices[:, 0])
        return cls(vertices=vertices, normals=normals)

    @property
    def n_triangles(self) -> int:
        return self.vertices.shape[0]


@dataclass
class NormalizedPolyline:
    """
    Polyline placed in the grid box.

    Attributes:
        points: (M, 3) resampled points of all components, concatenated.
        elements: (M, 3) central-difference line elements at each point.
        component_offsets: start index of each component in ``points``.
        scale_factors: (3,) per-axis scale applied to the input.
        total_length: Summed length of all components after scaling.
    """
    points: npt.NDArray[np.float64]
    elements: npt.NDArray[np.float64]
    component_offsets: list[int] = field(default_factory=list)
    scale_factors: npt.NDArray[np.float64] = field(default_factory=lambda: np.ones(3))
    total_length: float = 0.0

    @property
    def n_components(self) -> int:
        return len(self.component_offsets)

    def component(self, c: int) -> npt.NDArray[np.float64]:
        start = self.component_offsets[c]
        stop = self.component_offsets[c + 1] if c + 1 < len(self.component_offsets) else len(self.points)
        return self.points[start:stop]


@dataclass
class NormalizedSurface:
    """
    Triangle mesh placed in the grid box.

    Attributes:
        centroids: (T, 3) triangle centroids.
        normals: (T, 3) unit normals.
        areas: (T,) triangle areas.
        scale_factors: (3,) per-axis scale applied to the input.
        total_area: Sum of ``areas``.
    """
    centroids: npt.NDArray[np.float64]
    normals: npt.NDArray[np.float64]
    areas: npt.NDArray[np.float64]
    scale_factors: npt.NDArray[np.float64] = field(default_factory=lambda: np.ones(3))
    total_area: float = 0.0

    @property
    def n_triangles(self) -> int:
        return self.centroids.shape[0]


def regular_polygon(
    n_sides: int,
    radius: float,
    center: Sequence[float] = (0.0, 0.0, 0.0),
) -> npt.NDArray[np.float64]:
    """
    Corners of a regular polygon in the plane z = center[2].

    Returns:
        An (n_sides, 3) array, ordered counter-clockwise.
    """
    theta = np.linspace(0.0, 2.0 * np.pi, n_sides, endpoint=False)
    return np.c_[
        center[0] + radius * np.cos(theta),
        center[1] + radius * np.sin(theta),
        np.full(n_sides, center[2]),
    ]


def trefoil(n_points: int = 200, scale: float = 1.0) -> npt.NDArray[np.float64]:
    """Points of the standard trefoil knot parametrization."""
    t = np.linspace(0.0, 2.0 * np.pi, n_points, endpoint=False)
    return scale * np.c_[
        np.sin(t) + 2.0 * np.sin(2.0 * t),
        np.cos(t) - 2.0 * np.cos(2.0 * t),
        -np.sin(3.0 * t),
    ]
