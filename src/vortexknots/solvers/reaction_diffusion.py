"""
Reaction-Diffusion Integrator
=============================
Explicit time stepping of the FitzHugh-Nagumo medium on the grid.

    du/dt = (u - u^3 / 3 - v) / epsilon + laplacian(u)
    dv/dt = epsilon * (u + beta - gamma * v)

Why is this file needed?
------------------------
1. Kernels: the right-hand side, the 7-point Laplacian and the cross gradient
   are grid sweeps compiled with numba. Each kernel call is one parallel
   phase; returning from it is the barrier before the next phase reads.
2. Schemes: the Runge-Kutta and Euler updates only see an abstract
   right-hand side, so the stage combination can be checked on any ODE.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import TYPE_CHECKING, Callable

import numpy as np
import numba as nb

from vortexknots.config import UpdateScheme

if TYPE_CHECKING:
    import numpy.typing as npt

    from vortexknots.config import SimulationConfig
    from vortexknots.model.grid import Grid

logger = logging.getLogger(__name__)

RightHandSide = Callable[[np.ndarray, np.ndarray], np.ndarray]


# ==========================================
# COMPILED KERNELS
# ==========================================
# The Laplacian is summed as differences to the centre so that a constant
# field gives exactly zero; fastmath would allow reassociating that away.

@nb.njit(parallel=True, cache=True)
def _laplacian_kernel(
    f: npt.NDArray[np.float64],
    ip: npt.NDArray[np.int64], im: npt.NDArray[np.int64],
    jp: npt.NDArray[np.int64], jm: npt.NDArray[np.int64],
    kp: npt.NDArray[np.int64], km: npt.NDArray[np.int64],
    inv_h2: float,
    out: npt.NDArray[np.float64],
) -> None:
    nx, ny, nz = f.shape
    for i in nb.prange(nx):
        for j in range(ny):
            for k in range(nz):
                c = f[i, j, k]
                out[i, j, k] = (
                    (f[ip[i], j, k] - c) + (f[im[i], j, k] - c)
                    + (f[i, jp[j], k] - c) + (f[i, jm[j], k] - c)
                    + (f[i, j, kp[k]] - c) + (f[i, j, km[k]] - c)
                ) * inv_h2


@nb.njit(parallel=True, cache=True)
def _fitzhugh_nagumo_kernel(
    state: npt.NDArray[np.float64],
    ip: npt.NDArray[np.int64], im: npt.NDArray[np.int64],
    jp: npt.NDArray[np.int64], jm: npt.NDArray[np.int64],
    kp: npt.NDArray[np.int64], km: npt.NDArray[np.int64],
    inv_h2: float,
    epsilon: float,
    beta: float,
    gamma: float,
    out: npt.NDArray[np.float64],
) -> None:
    """Time derivative of the stacked (u, v) state, shape (2, nx, ny, nz)."""
    u = state[0]
    v = state[1]
    nx, ny, nz = u.shape
    inv_epsilon = 1.0 / epsilon
    for i in nb.prange(nx):
        for j in range(ny):
            for k in range(nz):
                c = u[i, j, k]
                lap = (
                    (u[ip[i], j, k] - c) + (u[im[i], j, k] - c)
                    + (u[i, jp[j], k] - c) + (u[i, jm[j], k] - c)
                    + (u[i, j, kp[k]] - c) + (u[i, j, km[k]] - c)
                ) * inv_h2
                w = v[i, j, k]
                out[0, i, j, k] = (c - c * c * c / 3.0 - w) * inv_epsilon + lap
                out[1, i, j, k] = epsilon * (c + beta - gamma * w)


@nb.njit(parallel=True, cache=True)
def _cross_gradient_kernel(
    u: npt.NDArray[np.float64],
    v: npt.NDArray[np.float64],
    ip: npt.NDArray[np.int64], im: npt.NDArray[np.int64],
    jp: npt.NDArray[np.int64], jm: npt.NDArray[np.int64],
    kp: npt.NDArray[np.int64], km: npt.NDArray[np.int64],
    inv_2h: float,
    out: npt.NDArray[np.float64],
) -> None:
    nx, ny, nz = u.shape
    for i in nb.prange(nx):
        for j in range(ny):
            for k in range(nz):
                dxu = (u[ip[i], j, k] - u[im[i], j, k]) * inv_2h
                dyu = (u[i, jp[j], k] - u[i, jm[j], k]) * inv_2h
                dzu = (u[i, j, kp[k]] - u[i, j, km[k]]) * inv_2h
                dxv = (v[ip[i], j, k] - v[im[i], j, k]) * inv_2h
                dyv = (v[i, jp[j], k] - v[i, jm[j], k]) * inv_2h
                dzv = (v[i, j, kp[k]] - v[i, j, km[k]]) * inv_2h
                out[0, i, j, k] = dyu * dzv - dzu * dyv
                out[1, i, j, k] = dzu * dxv - dxu * dzv
                out[2, i, j, k] = dxu * dyv - dyu * dxv


@nb.njit(parallel=True, cache=True)
def _axpy(y: npt.NDArray[np.float64], k: npt.NDArray[np.float64], c: float, out: npt.NDArray[np.float64]) -> None:
    """out = y + c * k over flat arrays; ``out`` may alias ``y``."""
    for n in nb.prange(y.shape[0]):
        out[n] = y[n] + c * k[n]


def _neighbor_tables(grid: Grid) -> tuple[npt.NDArray[np.int64], ...]:
    return (
        grid.neighbor_indices(0, +1), grid.neighbor_indices(0, -1),
        grid.neighbor_indices(1, +1), grid.neighbor_indices(1, -1),
        grid.neighbor_indices(2, +1), grid.neighbor_indices(2, -1),
    )


def laplacian(grid: Grid, field: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """7-point Laplacian of a scalar field with the grid's boundary treatment."""
    out = np.empty(grid.shape, dtype=np.float64)
    _laplacian_kernel(np.ascontiguousarray(field), *_neighbor_tables(grid), 1.0 / grid.h**2, out)
    return out


def cross_gradient(grid: Grid, u: npt.NDArray[np.float64], v: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """
    Pointwise ``grad u x grad v`` by central differences.

    Returns:
        (3, nx, ny, nz) array. Its magnitude peaks on the filaments.
    """
    out = np.empty((3,) + grid.shape, dtype=np.float64)
    _cross_gradient_kernel(
        np.ascontiguousarray(u), np.ascontiguousarray(v), *_neighbor_tables(grid), 0.5 / grid.h, out
    )
    return out


# ==========================================
# TIME-STEPPING SCHEMES
# ==========================================
class TimeSteppingScheme(ABC):
    """
    Explicit one-step scheme for ``dy/dt = f(y)``.

    The right-hand side is called as ``rhs(y, out)`` and must fill and
    return ``out`` without touching ``y``.
    """
    NAME: str = "Time-stepping scheme"

    def __init__(self, rhs: RightHandSide) -> None:
        self.rhs = rhs
        self._k: npt.NDArray[np.float64] | None = None

    def _buffer(self, y: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        if not y.flags.c_contiguous:
            raise ValueError("State array must be C-contiguous to be updated in place.")
        if self._k is None or self._k.shape != y.shape:
            self._k = np.empty_like(y)
        return self._k

    @abstractmethod
    def step(self, y: npt.NDArray[np.float64], dt: float) -> npt.NDArray[np.float64]:
        """
        Advance ``y`` by one step in place.

        Args:
            y: C-contiguous float64 state array.
            dt: Time step.

        Returns:
            ``y``, holding the new state.
        """
        pass


class ForwardEulerScheme(TimeSteppingScheme):
    """
    First-order update; both fields are advanced from the previous state.
    """
    NAME = "Forward Euler"

    def step(self, y: npt.NDArray[np.float64], dt: float) -> npt.NDArray[np.float64]:
        k = self.rhs(y, self._buffer(y))
        _axpy(y.reshape(-1), k.reshape(-1), dt, y.reshape(-1))
        return y


class RungeKutta4Scheme(TimeSteppingScheme):
    """
    Classical four-stage Runge-Kutta with weights 1, 2, 2, 1 over 6.
    """
    NAME = "Runge-Kutta 4"

    def __init__(self, rhs: RightHandSide) -> None:
        super().__init__(rhs)
        self._stage: npt.NDArray[np.float64] | None = None
        self._accumulator: npt.NDArray[np.float64] | None = None

    def step(self, y: npt.NDArray[np.float64], dt: float) -> npt.NDArray[np.float64]:
        k_buffer = self._buffer(y)
        if self._stage is None or self._stage.shape != y.shape:
            self._stage = np.empty_like(y)
            self._accumulator = np.empty_like(y)

        flat_y = y.reshape(-1)
        stage = self._stage.reshape(-1)
        acc = self._accumulator.reshape(-1)

        # Stage 1
        k = self.rhs(y, k_buffer).reshape(-1)
        _axpy(flat_y, k, dt / 6.0, acc)
        _axpy(flat_y, k, 0.5 * dt, stage)

        # Stage 2
        k = self.rhs(self._stage, k_buffer).reshape(-1)
        _axpy(acc, k, dt / 3.0, acc)
        _axpy(flat_y, k, 0.5 * dt, stage)

        # Stage 3
        k = self.rhs(self._stage, k_buffer).reshape(-1)
        _axpy(acc, k, dt / 3.0, acc)
        _axpy(flat_y, k, dt, stage)

        # Stage 4
        k = self.rhs(self._stage, k_buffer).reshape(-1)
        _axpy(acc, k, dt / 6.0, flat_y)
        return y


def make_scheme(kind: UpdateScheme, rhs: RightHandSide) -> TimeSteppingScheme:
    match UpdateScheme(kind):
        case UpdateScheme.RK4:
            return RungeKutta4Scheme(rhs)
        case UpdateScheme.EULER:
            return ForwardEulerScheme(rhs)
    raise ValueError(f"Unknown update scheme: {kind}")


# ==========================================
# FITZHUGH-NAGUMO MEDIUM
# ==========================================
class ReactionDiffusionIntegrator:
    """
    Advances the stacked state ``(u, v)`` of shape (2, nx, ny, nz).
    """

    def __init__(self, grid: Grid, config: SimulationConfig) -> None:
        """
        Initialize the integrator.

        Args:
            grid: The simulation grid, supplies spacing and neighbour tables.
            config: Supplies the medium coefficients, time step and scheme.
        """
        self.grid = grid
        self.dt = config.dt
        self.epsilon = config.epsilon
        self.beta = config.beta
        self.gamma = config.gamma
        self._tables = _neighbor_tables(grid)
        self._inv_h2 = 1.0 / grid.h**2
        self.scheme = make_scheme(config.scheme, self.rhs)
        logger.info(f"Reaction-diffusion integrator using {self.scheme.NAME}, dt = {self.dt}.")

    @staticmethod
    def stack(u: npt.NDArray[np.float64], v: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        return np.ascontiguousarray(np.stack((u, v)), dtype=np.float64)

    def rhs(self, state: npt.NDArray[np.float64], out: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        _fitzhugh_nagumo_kernel(
            state, *self._tables, self._inv_h2, self.epsilon, self.beta, self.gamma, out
        )
        return out

    def step(self, state: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Advance ``state`` in place by one time step."""
        return self.scheme.step(state, self.dt)
