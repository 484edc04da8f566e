"""
Initial-Condition Strategies
============================
Every way a run can be started, behind one common interface.

Why is this file needed?
------------------------
A run starts from a filament curve, from a spanning surface, from a phase
field or (u, v) pair saved by an earlier run, or from a phase function
written by hand. Each strategy produces the same ``InitialState`` so the
driver never needs to know which one was chosen.

Classes:
    InitialState: The fields a run starts from.
    Initializer: Abstract base of all strategies.
    PolylineInitializer, SurfaceInitializer, PhaseFieldInitializer,
    FieldPairInitializer, FunctionInitializer: The concrete strategies.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Callable, Optional, Union

import numpy as np

from vortexknots.analysis.biot_savart import line_field, surface_phase
from vortexknots.analysis.path_integrator import PathIntegrator
from vortexknots.pre.normalizer import GeometryNormalizer
from vortexknots.utils import wrap_phase

if TYPE_CHECKING:
    import numpy.typing as npt

    from vortexknots.config import SimulationConfig
    from vortexknots.model.geometry import FilamentPolyline, TriangulatedSurface
    from vortexknots.model.grid import Grid

logger = logging.getLogger(__name__)

# Resting state of the medium, assigned to cells the phase could not reach
BASELINE_U = -0.4
BASELINE_V = -0.4


@dataclass
class InitialState:
    """
    Fields a run starts from.

    ``phi`` and ``missed`` are diagnostics; strategies that resume from a
    saved (u, v) pair leave them empty.
    """
    u: npt.NDArray[np.float64]
    v: npt.NDArray[np.float64]
    phi: Optional[npt.NDArray[np.float64]] = None
    missed: Optional[npt.NDArray[np.bool_]] = None


def uv_from_phase(
    phi: npt.NDArray[np.float64],
    missed: Optional[npt.NDArray[np.bool_]] = None,
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Map a phase onto the FitzHugh-Nagumo limit cycle.

    ``u = 2 cos(phi) - 0.4``, ``v = sin(phi) - 0.4``; missed cells get the
    baseline state.
    """
    u = 2.0 * np.cos(phi) + BASELINE_U
    v = np.sin(phi) + BASELINE_V
    if missed is not None:
        u[missed] = BASELINE_U
        v[missed] = BASELINE_V
    return u, v


def _check_shape(grid: Grid, array: npt.ArrayLike, name: str) -> npt.NDArray[np.float64]:
    array = np.asarray(array, dtype=np.float64)
    if array.shape != grid.shape:
        raise ValueError(f"{name} has shape {array.shape}, grid is {grid.shape}.")
    return array


# ==========================================
# ABSTRACT CLASS FOR INITIALIZERS
# ==========================================
class Initializer(ABC):
    """
    Abstract base class for initial-condition strategies.
    """
    NAME: str = "Initializer"

    @abstractmethod
    def initial_state(self, grid: Grid, config: SimulationConfig) -> InitialState:
        """
        Produce the starting fields.

        Args:
            grid: The simulation grid.
            config: Run parameters (placement, wavelength).

        Returns:
            The initial (u, v) fields with optional phase diagnostics.
        """
        pass


# ==========================================
# GEOMETRY-BASED STRATEGIES
# ==========================================
class PolylineInitializer(Initializer):
    """
    Phase from the Biot-Savart field of a closed polyline (knot or link),
    integrated along singularity-avoiding grid paths.
    """
    NAME = "Polyline"

    def __init__(self, polyline: FilamentPolyline) -> None:
        self.polyline = polyline

    def initial_state(self, grid: Grid, config: SimulationConfig) -> InitialState:
        normalized = GeometryNormalizer.from_config(config).normalize_polyline(self.polyline)
        field = line_field(grid, normalized, config.core_radius)
        phase = PathIntegrator(grid, field).integrate()
        logger.debug(f"{int(np.count_nonzero(phase.missed))} of {grid.size} cells start at rest.")
        u, v = uv_from_phase(phase.phi, phase.missed)
        return InitialState(u=u, v=v, phi=phase.phi, missed=phase.missed)


class SurfaceInitializer(Initializer):
    """
    Phase from the solid angle of an oriented spanning surface.
    """
    NAME = "Surface"

    def __init__(self, surface: TriangulatedSurface) -> None:
        self.surface = surface

    def initial_state(self, grid: Grid, config: SimulationConfig) -> InitialState:
        normalized = GeometryNormalizer.from_config(config).normalize_surface(self.surface)
        logger.debug(f"Normalized surface: {normalized.n_triangles} triangles.")
        phi = surface_phase(grid, normalized)
        u, v = uv_from_phase(phi)
        return InitialState(u=u, v=v, phi=phi, missed=np.zeros(grid.shape, dtype=np.bool_))


# ==========================================
# PRECOMPUTED / MANUAL STRATEGIES
# ==========================================
class PhaseFieldInitializer(Initializer):
    """
    Phase field saved by an earlier run, skipping the geometry stage.
    """
    NAME = "Phase field"

    def __init__(self, phi: npt.ArrayLike, missed: Optional[npt.ArrayLike] = None) -> None:
        self.phi = phi
        self.missed = missed

    def initial_state(self, grid: Grid, config: SimulationConfig) -> InitialState:
        phi = wrap_phase(_check_shape(grid, self.phi, "Phase field"))
        missed = None
        if self.missed is not None:
            missed = np.asarray(self.missed, dtype=np.bool_)
            if missed.shape != grid.shape:
                raise ValueError(f"Missed mask has shape {missed.shape}, grid is {grid.shape}.")
        u, v = uv_from_phase(phi, missed)
        return InitialState(u=u, v=v, phi=phi, missed=missed)


class FieldPairInitializer(Initializer):
    """
    Resume the dynamics directly from a saved (u, v) pair.
    """
    NAME = "Field pair"

    def __init__(self, u: npt.ArrayLike, v: npt.ArrayLike) -> None:
        self.u = u
        self.v = v

    def initial_state(self, grid: Grid, config: SimulationConfig) -> InitialState:
        u = _check_shape(grid, self.u, "u field").copy()
        v = _check_shape(grid, self.v, "v field").copy()
        return InitialState(u=u, v=v)


PhaseFunction = Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray]


class FunctionInitializer(Initializer):
    """
    Phase given by a function of the cell coordinates, e.g. a sum of
    ``arctan2`` terms placing straight vortex lines by hand.
    """
    NAME = "Function"

    def __init__(self, phase_function: PhaseFunction) -> None:
        self.phase_function = phase_function

    def initial_state(self, grid: Grid, config: SimulationConfig) -> InitialState:
        x, y, z = grid.mesh()
        phi = wrap_phase(_check_shape(grid, self.phase_function(x, y, z), "Phase function result"))
        u, v = uv_from_phase(phi)
        return InitialState(u=u, v=v, phi=phi)


InitialCondition = Union[
    PolylineInitializer,
    SurfaceInitializer,
    PhaseFieldInitializer,
    FieldPairInitializer,
    FunctionInitializer,
]
