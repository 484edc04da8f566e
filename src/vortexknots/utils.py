from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import numba as nb

if TYPE_CHECKING:
    import numpy.typing as npt

TWO_PI = 2.0 * np.pi


def wrap_phase(phi: float | npt.NDArray[np.float64]) -> float | npt.NDArray[np.float64]:
    """
    Wrap a phase (or an array of phases) into the interval (-π, π].

    Wrapping an already wrapped value returns it unchanged.
    """
    return np.pi - np.mod(np.pi - phi, TWO_PI)


@nb.njit(cache=True)
def wrap_phase_scalar(phi: float) -> float:
    """Numba twin of :func:`wrap_phase` for use inside compiled kernels."""
    return np.pi - np.mod(np.pi - phi, TWO_PI)


def unit(vector: npt.NDArray[np.float64], eps: float = 1e-300) -> npt.NDArray[np.float64]:
    """Normalize a vector (or the rows of an array); zero vectors stay zero."""
    vector = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(vector, axis=-1, keepdims=True)
    return np.divide(vector, norm, out=np.zeros_like(vector), where=norm > eps)
