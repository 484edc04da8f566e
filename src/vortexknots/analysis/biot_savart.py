"""
Biot-Savart Field Engine
========================
Grid-wide line and surface integrals over the normalized filament geometry.

Why is this file needed?
------------------------
1. Polyline input: the Biot-Savart field of the filament is the gradient of
   the phase we want, so the path integrator line-integrates it. The same
   sweep flags the cells too close to the filament to integrate through.
2. Surface input: the solid angle subtended by a spanning surface is already
   the phase (up to a factor 1/2), so no path integration is needed.

Both sums run over every element for every cell and are the most expensive
part of the initialization; they are compiled with numba and spread over the
worker pool with ``prange``.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import TYPE_CHECKING

import numpy as np
import numba as nb

from vortexknots.utils import wrap_phase_scalar

if TYPE_CHECKING:
    import numpy.typing as npt

    from vortexknots.model.geometry import NormalizedPolyline, NormalizedSurface
    from vortexknots.model.grid import Grid

logger = logging.getLogger(__name__)


@nb.njit(parallel=True, cache=True)
def _line_field_kernel(
    x: npt.NDArray[np.float64],
    y: npt.NDArray[np.float64],
    z: npt.NDArray[np.float64],
    points: npt.NDArray[np.float64],
    elements: npt.NDArray[np.float64],
    near_radius: float,
    very_near_radius: float,
    field: npt.NDArray[np.float64],
    near: npt.NDArray[np.bool_],
    very_near: npt.NDArray[np.bool_],
) -> None:
    """
    Accumulate ``B = sum (l x dl) / (2 |l|^3)`` with ``l = cell - point``.

    Writes disjoint cells only, so the outer loop is safe to parallelize.
    """
    nx, ny, nz = x.shape[0], y.shape[0], z.shape[0]
    n_points = points.shape[0]
    for i in nb.prange(nx):
        for j in range(ny):
            for k in range(nz):
                bx = 0.0
                by = 0.0
                bz = 0.0
                is_near = False
                is_very_near = False
                for t in range(n_points):
                    lx = x[i] - points[t, 0]
                    ly = y[j] - points[t, 1]
                    lz = z[k] - points[t, 2]
                    lmag = np.sqrt(lx * lx + ly * ly + lz * lz)
                    if lmag < near_radius:
                        is_near = True
                    if lmag < very_near_radius:
                        is_very_near = True
                    if lmag == 0.0:
                        continue
                    inv = 1.0 / (2.0 * lmag * lmag * lmag)
                    bx += (ly * elements[t, 2] - lz * elements[t, 1]) * inv
                    by += (lz * elements[t, 0] - lx * elements[t, 2]) * inv
                    bz += (lx * elements[t, 1] - ly * elements[t, 0]) * inv
                field[0, i, j, k] = bx
                field[1, i, j, k] = by
                field[2, i, j, k] = bz
                near[i, j, k] = is_near
                very_near[i, j, k] = is_very_near


@nb.njit(parallel=True, cache=True)
def _solid_angle_kernel(
    x: npt.NDArray[np.float64],
    y: npt.NDArray[np.float64],
    z: npt.NDArray[np.float64],
    centroids: npt.NDArray[np.float64],
    normals: npt.NDArray[np.float64],
    areas: npt.NDArray[np.float64],
    phi: npt.NDArray[np.float64],
) -> None:
    """Half the solid angle of the surface seen from each cell, wrapped into (-π, π]."""
    nx, ny, nz = x.shape[0], y.shape[0], z.shape[0]
    n_triangles = centroids.shape[0]
    for i in nb.prange(nx):
        for j in range(ny):
            for k in range(nz):
                total = 0.0
                for s in range(n_triangles):
                    rx = centroids[s, 0] - x[i]
                    ry = centroids[s, 1] - y[j]
                    rz = centroids[s, 2] - z[k]
                    r = np.sqrt(rx * rx + ry * ry + rz * rz)
                    if r > 0.0:
                        total += (rx * normals[s, 0] + ry * normals[s, 1] + rz * normals[s, 2]) * areas[s] / (2.0 * r * r * r)
                phi[i, j, k] = wrap_phase_scalar(total)


@dataclass
class LineField:
    """
    Biot-Savart field of a polyline and its singularity masks.

    Attributes:
        field: (3, nx, ny, nz) field.
        near_core: Cells within two core radii of the filament.
        very_near_core: Cells within half a core radius of the filament.
    """
    field: npt.NDArray[np.float64]
    near_core: npt.NDArray[np.bool_]
    very_near_core: npt.NDArray[np.bool_]


def line_field(grid: Grid, polyline: NormalizedPolyline, core_radius: float) -> LineField:
    """
    Evaluate the Biot-Savart field of ``polyline`` on every grid cell.

    Args:
        grid: The simulation grid.
        polyline: Normalized, resampled filament.
        core_radius: Filament core radius, sets the two singularity masks.

    Returns:
        The field and its near-core / very-near-core masks.
    """
    field = np.zeros((3,) + grid.shape, dtype=np.float64)
    near = np.zeros(grid.shape, dtype=np.bool_)
    very_near = np.zeros(grid.shape, dtype=np.bool_)

    logger.info(f"Calculating line field over {polyline.points.shape[0]} filament points...")
    then = time.perf_counter()
    _line_field_kernel(
        grid.x, grid.y, grid.z,
        np.ascontiguousarray(polyline.points), np.ascontiguousarray(polyline.elements),
        2.0 * core_radius, 0.5 * core_radius,
        field, near, very_near,
    )
    logger.info(
        f"Line field took {time.perf_counter() - then:.2f} s; "
        f"{int(near.sum())} near-core and {int(very_near.sum())} very-near-core cells."
    )
    return LineField(field=field, near_core=near, very_near_core=very_near)


def surface_phase(grid: Grid, surface: NormalizedSurface) -> npt.NDArray[np.float64]:
    """
    Phase field of a spanning surface, wrapped into (-π, π].

    Returns:
        (nx, ny, nz) array.
    """
    phi = grid.zeros()
    logger.info(f"Calculating solid-angle phase over {surface.centroids.shape[0]} triangles...")
    then = time.perf_counter()
    _solid_angle_kernel(
        grid.x, grid.y, grid.z,
        np.ascontiguousarray(surface.centroids), np.ascontiguousarray(surface.normals),
        np.ascontiguousarray(surface.areas),
        phi,
    )
    logger.info(f"Solid-angle phase took {time.perf_counter() - then:.2f} s.")
    return phi
