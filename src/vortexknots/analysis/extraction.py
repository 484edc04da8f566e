"""
Filament Extractor
==================
Finds the vortex filaments of the evolving medium as ridge curves of
``|grad u x grad v|``.

Why is this file needed?
------------------------
The filaments are where the two fields' gradients are most nearly
perpendicular, so the magnitude of the cross gradient peaks on them and its
direction is tangent to them. A filament is traced by stepping along that
direction and pulling each new point back onto the ridge with a small simplex
search. Every traced point marks the grid strata around it so the next
component starts elsewhere. Finished curves are re-spaced and low-pass
filtered, and a material frame vector is attached at every point.

Classes:
    ExtractionContext: Marks, curves and counters of one extraction pass.
    FilamentExtractor: The tracing and post-processing itself.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
import time
from typing import TYPE_CHECKING, Optional

import numpy as np
from scipy.fft import irfft, rfft
from scipy.optimize import minimize

from vortexknots.model.curve import Curve
from vortexknots.utils import unit

if TYPE_CHECKING:
    import numpy.typing as npt

    from vortexknots.config import SimulationConfig
    from vortexknots.model.grid import Grid

logger = logging.getLogger(__name__)


@dataclass
class ExtractionContext:
    """
    State of one extraction pass, owned by the time loop and handed in and
    back out of every :meth:`FilamentExtractor.extract` call.

    Attributes:
        marked: One boolean mask per axis of strata already claimed by a curve.
        curves: Curves accepted in this pass.
        abandoned: Curves dropped because they left the box or never closed.
    """
    marked: tuple[npt.NDArray[np.bool_], npt.NDArray[np.bool_], npt.NDArray[np.bool_]]
    curves: list[Curve] = field(default_factory=list)
    abandoned: int = 0

    @classmethod
    def for_grid(cls, grid: Grid) -> ExtractionContext:
        return cls(marked=tuple(np.zeros(n, dtype=np.bool_) for n in grid.shape))

    def reset(self) -> None:
        """Clear marks and curves before a new pass."""
        for mask in self.marked:
            mask[:] = False
        self.curves = []
        self.abandoned = 0

    def mark(self, grid: Grid, cell: tuple[int, int, int], radius: int) -> None:
        """Mark the strata within ``radius`` of ``cell`` on every axis."""
        for axis in range(3):
            self.marked[axis][grid.stratum_window(cell[axis], radius, axis)] = True

    def excluded(self) -> npt.NDArray[np.bool_]:
        """
        Cells no new seed may come from.

        A cell is excluded once its i, j and k strata are all marked, i.e.
        it lies inside the product of the marked strata.
        """
        mx, my, mz = self.marked
        return mx[:, None, None] & my[None, :, None] & mz[None, None, :]


def spectral_filter(values: npt.NDArray[np.float64], cutoff: float, order: int = 8) -> npt.NDArray[np.float64]:
    """
    Smooth low-pass filter of periodic sequences.

    Each Fourier mode k of every column is damped by
    ``1 / sqrt(1 + (2k / cutoff)^order)``, with 2k the position of mode k in
    an interleaved real/imaginary spectrum. The mean (k = 0) is kept exactly.

    Args:
        values: (n, d) samples of d periodic sequences.
        cutoff: Spectrum position where the response falls to 1/sqrt(2), i.e.
            mode ``cutoff / 2``.
        order: Steepness of the roll-off.

    Returns:
        The filtered (n, d) array.
    """
    n = values.shape[0]
    coefficients = rfft(values, axis=0)
    positions = 2.0 * np.arange(coefficients.shape[0], dtype=np.float64)
    response = 1.0 / np.sqrt(1.0 + (positions / cutoff) ** order)
    return irfft(coefficients * response[:, None], n=n, axis=0)


def _perpendicular(vector: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Some unit vector perpendicular to ``vector``."""
    axis = np.zeros(3)
    axis[np.argmin(np.abs(vector))] = 1.0
    return unit(np.cross(vector, axis))


class FilamentExtractor:
    """
    Traces every filament of a cross-gradient field.
    """

    def __init__(self, grid: Grid, config: SimulationConfig) -> None:
        """
        Args:
            grid: The simulation grid.
            config: Supplies the wavelength, ridge threshold and tracing limits.
        """
        self.grid = grid
        self.wavelength = config.wavelength
        self.core_radius = config.core_radius
        self.threshold = config.ridge_threshold
        self.max_points = config.max_curve_points
        self.closure_distance = config.closure_distance * grid.h
        self.min_closure_points = config.min_closure_points
        self.trial_step = config.trial_step_fraction * config.core_radius
        self.simplex_step = config.wavelength / (8.0 * math.pi)
        self.simplex_max_iterations = config.simplex_max_iterations
        self.simplex_tolerance = config.simplex_tolerance
        self.respacing_passes = config.respacing_passes
        self.filter_order = config.filter_order
        self.mark_radius = int(math.ceil(config.core_radius / grid.h))

    def extract(
        self,
        cross_grad: npt.NDArray[np.float64],
        u: npt.NDArray[np.float64],
        context: ExtractionContext,
    ) -> ExtractionContext:
        """
        Find every filament whose ridge rises above the threshold.

        Args:
            cross_grad: (3, nx, ny, nz) field ``grad u x grad v``.
            u: Activator field, its gradient sets the material frame.
            context: Reset here and filled with this pass's curves.

        Returns:
            The same ``context``.
        """
        context.reset()
        then = time.perf_counter()

        magnitude = np.linalg.norm(cross_grad, axis=0)
        grad_magnitude = self.grid.central_gradient(magnitude)
        grad_u = self.grid.central_gradient(u)

        while True:
            candidates = np.where(context.excluded(), -np.inf, magnitude)
            n = int(np.argmax(candidates))
            if candidates.flat[n] < self.threshold:
                break

            i, j, k = self.grid.unravel(n)
            seed = np.array([self.grid.x[i], self.grid.y[j], self.grid.z[k]])
            context.mark(self.grid, (i, j, k), self.mark_radius)

            points = self.trace(seed, cross_grad, grad_magnitude, context)
            if points is None:
                context.abandoned += 1
                logger.warning(f"Abandoned a curve seeded at cell {(i, j, k)}.")
                continue

            points = self.respace(points)
            cutoff = self.cutoff(points)
            points = spectral_filter(points, cutoff, self.filter_order)
            frame = self.frame_vectors(points, grad_u, cutoff)
            context.curves.append(Curve(points=points, frame=frame))
            logger.debug(f"Curve {len(context.curves) - 1}: {points.shape[0]} points.")

        logger.info(
            f"Extraction found {len(context.curves)} curve(s), abandoned {context.abandoned}, "
            f"in {time.perf_counter() - then:.2f} s."
        )
        return context

    def trace(
        self,
        seed: npt.NDArray[np.float64],
        cross_grad: npt.NDArray[np.float64],
        grad_magnitude: npt.NDArray[np.float64],
        context: ExtractionContext,
    ) -> Optional[npt.NDArray[np.float64]]:
        """
        Follow the ridge from ``seed`` until it closes on itself.

        Returns:
            (n, 3) curve points, or None if the curve left the box, lost its
            direction or exceeded the point limit.
        """
        grid = self.grid
        points = [seed]
        while True:
            current = points[-1]
            if not grid.contains(current):
                return None
            context.mark(grid, grid.locate(current)[0], self.mark_radius)

            tangent = unit(grid.interpolate(cross_grad, current))
            if not np.any(tangent):
                return None

            trial = current + self.trial_step * tangent
            if not grid.contains(trial):
                return None

            gradient = grid.interpolate(grad_magnitude, trial)
            force = unit(gradient - np.dot(gradient, tangent) * tangent)
            if not np.any(force):
                force = _perpendicular(tangent)
            binormal = np.cross(force, tangent)

            offset = self._refine(trial, force, binormal, cross_grad)
            points.append(trial + offset[0] * force + offset[1] * binormal)

            n_steps = len(points) - 1
            if n_steps > self.min_closure_points and np.linalg.norm(points[-1] - points[0]) < self.closure_distance:
                return np.array(points)
            if n_steps > self.max_points:
                return None

    def _refine(
        self,
        trial: npt.NDArray[np.float64],
        force: npt.NDArray[np.float64],
        binormal: npt.NDArray[np.float64],
        cross_grad: npt.NDArray[np.float64],
    ) -> npt.NDArray[np.float64]:
        """Offset in the (force, binormal) plane that maximizes the ridge magnitude."""
        def objective(offset: npt.NDArray[np.float64]) -> float:
            point = trial + offset[0] * force + offset[1] * binormal
            return -float(np.linalg.norm(self.grid.interpolate(cross_grad, point)))

        step = self.simplex_step
        result = minimize(
            objective,
            x0=np.zeros(2),
            method="Nelder-Mead",
            options={
                "initial_simplex": np.array([[0.0, 0.0], [step, 0.0], [0.0, step]]),
                "maxiter": self.simplex_max_iterations,
                "xatol": self.simplex_tolerance,
                "fatol": np.inf,
            },
        )
        return result.x

    def respace(self, points: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Relax the points towards uniform spacing along the curve.

        Each pass moves point s + 1 to distance perimeter / n from point s
        along the current chord direction.
        """
        points = points.copy()
        n = points.shape[0]
        for _ in range(self.respacing_passes):
            perimeter = np.sum(np.linalg.norm(np.roll(points, -1, axis=0) - points, axis=1))
            spacing = perimeter / n
            for s in range(n):
                nxt = (s + 1) % n
                chord = points[nxt] - points[s]
                norm = np.linalg.norm(chord)
                if norm > 0.0:
                    points[nxt] = points[s] + spacing * chord / norm
        return points

    def cutoff(self, points: npt.NDArray[np.float64]) -> float:
        """Filter cutoff from the curve's own length, ``2 pi L / (6 wavelength)``."""
        perimeter = np.sum(np.linalg.norm(np.roll(points, -1, axis=0) - points, axis=1))
        return 2.0 * math.pi * perimeter / (6.0 * self.wavelength)

    def frame_vectors(
        self,
        points: npt.NDArray[np.float64],
        grad_u: npt.NDArray[np.float64],
        cutoff: float,
    ) -> npt.NDArray[np.float64]:
        """
        Unit material-frame vector at every point.

        The interpolated gradient of u is projected perpendicular to the
        central-difference tangent, normalized, low-pass filtered with the
        same response as the geometry and normalized again.
        """
        tangents = 0.5 * (np.roll(points, -1, axis=0) - np.roll(points, 1, axis=0))
        gradients = np.array([self.grid.interpolate(grad_u, p) for p in points])
        along = np.sum(gradients * tangents, axis=1) / np.sum(tangents * tangents, axis=1)
        frame = unit(gradients - along[:, None] * tangents)
        return unit(spectral_filter(frame, cutoff, self.filter_order))
