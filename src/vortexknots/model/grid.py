"""
Structured Grid
===============
Uniform cell-centred lattice shared by every field of the simulation.

Why is this file needed?
------------------------
1. Indexing: it owns the mapping from (i, j, k) to a linear C-order offset.
2. Boundaries: neighbour lookups wrap (periodic) or mirror (reflecting) per
   axis, so stencils never branch on the boundary themselves.
3. Interpolation: trilinear sampling of scalar and vector fields at arbitrary
   points, used by the filament tracer.

Classes:
    Grid: Geometry and boundary handling of the lattice.
"""
from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence

import numpy as np

from vortexknots.config import ALL_REFLECTING, BoundaryMode

if TYPE_CHECKING:
    import numpy.typing as npt

    from vortexknots.config import SimulationConfig


class Grid:
    """
    Uniform lattice of ``nx * ny * nz`` cells with spacing ``h``.

    Cell centres sit at ``x[i] = (i + 0.5 - nx / 2) * h`` so the box is
    centred on the origin. Fields are C-ordered arrays of shape
    ``(nx, ny, nz)``; vector fields carry their components on a leading
    axis, ``(3, nx, ny, nz)``.
    """

    def __init__(
        self,
        nx: int,
        ny: int,
        nz: int,
        h: float,
        boundary: Sequence[BoundaryMode] = ALL_REFLECTING,
    ) -> None:
        if min(nx, ny, nz) < 3:
            raise ValueError(f"Grid needs at least 3 cells per axis, got ({nx}, {ny}, {nz}).")
        if h <= 0.0:
            raise ValueError(f"Grid spacing must be positive, got {h}.")
        if len(boundary) != 3:
            raise ValueError("Boundary must give one mode per axis.")

        self.shape: tuple[int, int, int] = (nx, ny, nz)
        self.h = float(h)
        self.boundary: tuple[BoundaryMode, BoundaryMode, BoundaryMode] = tuple(
            BoundaryMode(mode) for mode in boundary
        )

        self.coordinates: tuple[npt.NDArray[np.float64], ...] = tuple(
            (np.arange(n, dtype=np.float64) + 0.5 - n / 2.0) * self.h for n in self.shape
        )

        # Neighbour tables per axis: _minus[axis][i] is the index one step down.
        self._plus: list[npt.NDArray[np.int64]] = []
        self._minus: list[npt.NDArray[np.int64]] = []
        for axis, n in enumerate(self.shape):
            idx = np.arange(n, dtype=np.int64)
            self._plus.append(np.array([self.wrap_index(i + 1, axis) for i in idx], dtype=np.int64))
            self._minus.append(np.array([self.wrap_index(i - 1, axis) for i in idx], dtype=np.int64))

    @classmethod
    def from_config(cls, config: SimulationConfig) -> Grid:
        return cls(config.nx, config.ny, config.nz, config.h, config.boundary)

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------
    @property
    def nx(self) -> int:
        return self.shape[0]

    @property
    def ny(self) -> int:
        return self.shape[1]

    @property
    def nz(self) -> int:
        return self.shape[2]

    @property
    def size(self) -> int:
        return self.nx * self.ny * self.nz

    @property
    def x(self) -> npt.NDArray[np.float64]:
        return self.coordinates[0]

    @property
    def y(self) -> npt.NDArray[np.float64]:
        return self.coordinates[1]

    @property
    def z(self) -> npt.NDArray[np.float64]:
        return self.coordinates[2]

    @property
    def center_cell(self) -> tuple[int, int, int]:
        """Base cell of the phase integration, ``(N + 1) // 2`` on every axis."""
        return (self.nx + 1) // 2, (self.ny + 1) // 2, (self.nz + 1) // 2

    def mesh(self) -> tuple[npt.NDArray[np.float64], ...]:
        """Cell-centre coordinates broadcast to full field shape."""
        return tuple(np.meshgrid(*self.coordinates, indexing="ij"))

    def zeros(self) -> npt.NDArray[np.float64]:
        return np.zeros(self.shape, dtype=np.float64)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------
    def index(self, i: int, j: int, k: int) -> int:
        """Linear C-order offset of cell (i, j, k)."""
        return (i * self.ny + j) * self.nz + k

    def unravel(self, n: int) -> tuple[int, int, int]:
        i, rest = divmod(int(n), self.ny * self.nz)
        j, k = divmod(rest, self.nz)
        return i, j, k

    def wrap_index(self, index: int, axis: int) -> int:
        """
        Map an index that may lie outside ``[0, N)`` back onto the axis.

        Periodic axes wrap modulo N. Reflecting axes mirror about the edge
        cell, so -1 maps to 1 and N maps to N - 2.

        Args:
            index: Possibly out-of-range index along ``axis``.
            axis: 0, 1 or 2.

        Returns:
            The in-range index.
        """
        n = self.shape[axis]
        if self.boundary[axis] == BoundaryMode.PERIODIC:
            return int(index) % n
        period = 2 * (n - 1)
        index = int(index) % period
        return index if index < n else period - index

    def clamp_index(self, index: int, axis: int) -> int:
        """Like :meth:`wrap_index` but clips reflecting axes instead of mirroring."""
        n = self.shape[axis]
        if self.boundary[axis] == BoundaryMode.PERIODIC:
            return int(index) % n
        return min(max(int(index), 0), n - 1)

    def neighbor(self, i: int, j: int, k: int, axis: int, step: int) -> tuple[int, int, int]:
        """
        Index of the neighbour of (i, j, k) one step (``step`` = ±1) along ``axis``.
        """
        cell = [i, j, k]
        table = self._plus if step > 0 else self._minus
        cell[axis] = int(table[axis][cell[axis]])
        return cell[0], cell[1], cell[2]

    def neighbor_indices(self, axis: int, step: int) -> npt.NDArray[np.int64]:
        """Neighbour table along one axis, as used by the compiled stencils."""
        return self._plus[axis] if step > 0 else self._minus[axis]

    def stratum_window(self, center: int, radius: int, axis: int) -> npt.NDArray[np.int64]:
        """
        Indices of the strata within ``radius`` of ``center`` along ``axis``.

        Reflecting axes are clipped to the box, periodic axes wrap.
        """
        return np.unique([self.clamp_index(center + q, axis) for q in range(-radius, radius + 1)])

    # ------------------------------------------------------------------
    # Point location & interpolation
    # ------------------------------------------------------------------
    def lower_index(self, point: npt.ArrayLike) -> tuple[int, int, int]:
        """Lower cell of the interpolation stencil around ``point`` (unclamped)."""
        p = np.asarray(point, dtype=np.float64)
        return tuple(
            int(math.floor(p[axis] / self.h - 0.5 + self.shape[axis] / 2.0)) for axis in range(3)
        )

    def contains(self, point: npt.ArrayLike) -> bool:
        """
        True if ``point`` can be interpolated without leaving the box.

        Periodic axes always contain the point.
        """
        lower = self.lower_index(point)
        for axis in range(3):
            if self.boundary[axis] == BoundaryMode.PERIODIC:
                continue
            if not 0 <= lower[axis] <= self.shape[axis] - 1:
                return False
        return True

    def locate(self, point: npt.ArrayLike) -> tuple[tuple[int, int, int], npt.NDArray[np.float64]]:
        """
        Lower stencil cell and fractional offsets of ``point``.

        The lower index is clamped onto the box (wrapped on periodic axes),
        the offsets are clipped to [0, 1].

        Returns:
            (i, j, k) of the lower cell and the (3,) array of offsets.
        """
        p = np.asarray(point, dtype=np.float64)
        lower = self.lower_index(p)
        cell = []
        offsets = np.empty(3, dtype=np.float64)
        for axis in range(3):
            continuous = p[axis] / self.h - 0.5 + self.shape[axis] / 2.0
            offsets[axis] = continuous - lower[axis]
            cell.append(self.clamp_index(lower[axis], axis))
            if self.boundary[axis] != BoundaryMode.PERIODIC and cell[axis] != lower[axis]:
                offsets[axis] = 0.0 if lower[axis] < 0 else 1.0
        return (cell[0], cell[1], cell[2]), np.clip(offsets, 0.0, 1.0)

    def interpolate(self, field: npt.NDArray[np.float64], point: npt.ArrayLike) -> float | npt.NDArray[np.float64]:
        """
        Trilinear interpolation of a scalar ``(nx, ny, nz)`` or vector
        ``(3, nx, ny, nz)`` field at ``point``.

        Args:
            field: Field sampled at the cell centres.
            point: Physical coordinates (3,).

        Returns:
            Interpolated scalar, or a (3,) array for a vector field.
        """
        (i0, j0, k0), (fx, fy, fz) = self.locate(point)
        i1 = int(self._plus[0][i0])
        j1 = int(self._plus[1][j0])
        k1 = int(self._plus[2][k0])

        value = 0.0
        for i, wx in ((i0, 1.0 - fx), (i1, fx)):
            for j, wy in ((j0, 1.0 - fy), (j1, fy)):
                for k, wz in ((k0, 1.0 - fz), (k1, fz)):
                    value = value + wx * wy * wz * field[..., i, j, k]
        return value

    def central_gradient(self, field: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Boundary-aware central difference gradient of a scalar field.

        Returns:
            Array of shape (3, nx, ny, nz).
        """
        grad = np.empty((3,) + self.shape, dtype=np.float64)
        for axis in range(3):
            grad[axis] = (
                np.take(field, self._plus[axis], axis=axis) - np.take(field, self._minus[axis], axis=axis)
            ) / (2.0 * self.h)
        return grad
