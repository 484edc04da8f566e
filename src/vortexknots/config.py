"""
Configuration & Run Parameters
==============================
This module serves as the central registry for the fixed scalars of a run.

Why is this file needed?
------------------------
1. Abstraction: grid size, time step, medium coefficients and snapshot cadence
   are read from one object instead of being scattered as module constants.
2. Validation: a bad bundle is rejected before any field is allocated.

Exports:
    BoundaryMode: Per-axis boundary treatment.
    UpdateScheme: Explicit time-stepping scheme.
    SimulationConfig: The configuration bundle.
    ALL_REFLECTING, Z_PERIODIC, ALL_PERIODIC: Boundary presets.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
import math


class BoundaryMode(StrEnum):
    """How neighbour lookups behave at the edge of one axis."""
    REFLECTING = "reflecting"
    PERIODIC = "periodic"


class UpdateScheme(StrEnum):
    RK4 = "rk4"
    EULER = "euler"


ALL_REFLECTING: tuple[BoundaryMode, BoundaryMode, BoundaryMode] = (
    BoundaryMode.REFLECTING, BoundaryMode.REFLECTING, BoundaryMode.REFLECTING
)
Z_PERIODIC: tuple[BoundaryMode, BoundaryMode, BoundaryMode] = (
    BoundaryMode.REFLECTING, BoundaryMode.REFLECTING, BoundaryMode.PERIODIC
)
ALL_PERIODIC: tuple[BoundaryMode, BoundaryMode, BoundaryMode] = (
    BoundaryMode.PERIODIC, BoundaryMode.PERIODIC, BoundaryMode.PERIODIC
)


@dataclass
class SimulationConfig:
    """
    Holds every fixed parameter of a run.

    Lengths are in grid units of the medium (the spiral wavelength is
    ``wavelength``), times in the medium's time units.
    """
    # Grid
    nx: int = 64
    ny: int = 64
    nz: int = 64
    h: float = 0.5
    boundary: tuple[BoundaryMode, BoundaryMode, BoundaryMode] = ALL_REFLECTING

    # Time loop
    dt: float = 0.02
    total_time: float = 100.0
    start_time: float = 0.0
    curve_interval: float = 1.0
    field_interval: float = 10.0
    scheme: UpdateScheme = UpdateScheme.RK4

    # FitzHugh-Nagumo coefficients
    epsilon: float = 0.3
    beta: float = 0.7
    gamma: float = 0.5
    wavelength: float = 21.3

    # Geometry placement
    preserve_aspect_ratio: bool = True
    fill_fraction: float = 0.75
    rotation_theta: float = 0.0
    rotation_phi: float = 0.0
    displacement: tuple[float, float, float] = (0.0, 0.0, 0.0)

    # Filament extraction
    ridge_threshold: float = 0.7
    max_curve_points: int = 50000
    closure_distance: float = 3.0  # in grid spacings
    min_closure_points: int = 10
    trial_step_fraction: float = 0.1  # of the core radius
    simplex_max_iterations: int = 500
    simplex_tolerance: float = 1e-2
    respacing_passes: int = 3
    filter_order: int = 8

    # Worker pool size handed to numba (None keeps numba's default)
    n_threads: int | None = None

    @property
    def core_radius(self) -> float:
        """Radius of a filament core, one wavelength over 2π."""
        return self.wavelength / (2.0 * math.pi)

    @property
    def shape(self) -> tuple[int, int, int]:
        return self.nx, self.ny, self.nz

    @property
    def target_extent(self) -> tuple[float, float, float]:
        """Physical box that input geometry is scaled into, per axis."""
        return (
            self.fill_fraction * self.nx * self.h,
            self.fill_fraction * self.ny * self.h,
            self.fill_fraction * self.nz * self.h,
        )

    def validate(self) -> None:
        """
        Check the bundle for values the simulation cannot run with.

        Raises:
            ValueError: If any count, spacing, step or cadence is not positive.
        """
        if min(self.nx, self.ny, self.nz) < 3:
            raise ValueError(f"Grid must have at least 3 cells per axis, got {self.shape}.")
        if self.h <= 0.0:
            raise ValueError(f"Grid spacing must be positive, got {self.h}.")
        if self.dt <= 0.0:
            raise ValueError(f"Time step must be positive, got {self.dt}.")
        if self.total_time < 0.0:
            raise ValueError(f"Total time must not be negative, got {self.total_time}.")
        if self.curve_interval <= 0.0 or self.field_interval <= 0.0:
            raise ValueError("Snapshot intervals must be positive.")
        if self.wavelength <= 0.0 or self.epsilon <= 0.0:
            raise ValueError("Wavelength and epsilon must be positive.")
        if not 0.0 < self.fill_fraction <= 1.0:
            raise ValueError(f"Fill fraction must lie in (0, 1], got {self.fill_fraction}.")
        if len(self.boundary) != 3:
            raise ValueError("Boundary must give one mode per axis.")
        if self.n_threads is not None and self.n_threads < 1:
            raise ValueError(f"Thread count must be at least 1, got {self.n_threads}.")
