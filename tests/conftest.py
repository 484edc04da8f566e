from __future__ import annotations

import numpy as np
import pytest

from vortexknots.config import SimulationConfig
from vortexknots.model.curve import Curve
from vortexknots.model.grid import Grid


@pytest.fixture
def small_grid() -> Grid:
    return Grid(8, 8, 8, 1.0)


@pytest.fixture
def ring_config() -> SimulationConfig:
    """32^3 box with unit spacing, the size used for the ring tests."""
    return SimulationConfig(nx=32, ny=32, nz=32, h=1.0, max_curve_points=3000)


def circle_points(radius: float, n: int, z: float = 0.0, phase: float = 0.0) -> np.ndarray:
    t = phase + np.linspace(0.0, 2.0 * np.pi, n, endpoint=False)
    return np.c_[radius * np.cos(t), radius * np.sin(t), np.full(n, z)]


def circle_curve(radius: float, n: int, z: float = 0.0, phase: float = 0.0) -> Curve:
    """Circle in a horizontal plane with the frame pointing up."""
    points = circle_points(radius, n, z, phase)
    frame = np.tile([0.0, 0.0, 1.0], (n, 1))
    return Curve(points=points, frame=frame)
