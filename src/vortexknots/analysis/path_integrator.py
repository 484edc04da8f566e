"""
Scalar-Potential Path Integrator
================================
Reconstructs the phase field of a polyline filament from its Biot-Savart field.

Why is this file needed?
------------------------
The Biot-Savart field is the gradient of a multivalued phase. Integrating it
along grid paths from one base cell gives a phase that jumps by 2π only across
a branch cut, provided no path runs through the singular core of the
filament. The path finder walks around the flagged core cells, the sweep
visits the box from the corners inwards and a second pass fills in what the
first, more cautious pass could not reach.

Classes:
    PathSearchState: Named states of the path finder.
    PathResult: Outcome of one path search.
    PhaseField: The reconstructed phase and the cells it could not reach.
    PathIntegrator: Runs the two sweeps over the grid.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
import itertools
import logging
import math
import time
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np

from vortexknots.utils import wrap_phase

if TYPE_CHECKING:
    import numpy.typing as npt

    from vortexknots.analysis.biot_savart import LineField
    from vortexknots.model.grid import Grid

logger = logging.getLogger(__name__)

Cell = tuple[int, int, int]

NEIGHBOR_OFFSETS: list[Cell] = [
    offset for offset in itertools.product((-1, 0, 1), repeat=3) if offset != (0, 0, 0)
]
_OFFSET_NORMS: list[float] = [math.sqrt(sum(c * c for c in offset)) for offset in NEIGHBOR_OFFSETS]


class PathSearchState(StrEnum):
    ADVANCE = "advance"
    BLOCKED_SEARCH = "blocked-search"
    BACKTRACK = "backtrack"
    FAILED = "failed"
    REACHED = "reached"


@dataclass
class PathResult:
    """
    Outcome of :func:`find_path`.

    Attributes:
        cells: Cells from start to target inclusive; empty on failure.
        state: ``REACHED`` or ``FAILED``.
        iterations: Number of search iterations spent.
        backtracks: How often the search had to step back.
    """
    cells: list[Cell] = field(default_factory=list)
    state: PathSearchState = PathSearchState.FAILED
    iterations: int = 0
    backtracks: int = 0

    @property
    def found(self) -> bool:
        return self.state == PathSearchState.REACHED

    @property
    def length(self) -> int:
        """Number of steps along the path (0 for start == target or failure)."""
        return max(len(self.cells) - 1, 0)


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _best_neighbor(
    current: Cell,
    delta: Cell,
    blocked: npt.NDArray[np.bool_],
    visited: set[Cell],
    vector_field: npt.NDArray[np.float64],
) -> Optional[Cell]:
    """
    Highest-scoring free neighbour among all 26.

    The score adds the cosine between the step and the direction to the
    target to the cosine between the step and the field at the neighbour.
    """
    nx, ny, nz = blocked.shape
    delta_norm = math.sqrt(delta[0] ** 2 + delta[1] ** 2 + delta[2] ** 2)

    best: Optional[Cell] = None
    best_score = -math.inf
    for (oi, oj, ok), o_norm in zip(NEIGHBOR_OFFSETS, _OFFSET_NORMS):
        cell = (current[0] + oi, current[1] + oj, current[2] + ok)
        if not (0 <= cell[0] < nx and 0 <= cell[1] < ny and 0 <= cell[2] < nz):
            continue
        if blocked[cell] or cell in visited:
            continue

        toward_target = (delta[0] * oi + delta[1] * oj + delta[2] * ok) / (delta_norm * o_norm)

        bx, by, bz = vector_field[:, cell[0], cell[1], cell[2]]
        b_norm = math.sqrt(bx * bx + by * by + bz * bz)
        along_field = (bx * oi + by * oj + bz * ok) / (b_norm * o_norm) if b_norm > 0.0 else 0.0

        score = toward_target + along_field
        if score > best_score:
            best_score = score
            best = cell
    return best


def find_path(
    start: Sequence[int],
    target: Sequence[int],
    blocked: npt.NDArray[np.bool_],
    vector_field: npt.NDArray[np.float64],
    max_length: Optional[int] = None,
    max_iterations: Optional[int] = None,
) -> PathResult:
    """
    Greedy grid walk from ``start`` to ``target`` avoiding blocked cells.

    The walk takes the direct diagonal step while it is free. When it is not,
    every free neighbour is scored and the best one is taken; with no free
    neighbour the walk steps back. Cells are never revisited within one search.

    Args:
        start: Start cell.
        target: Target cell.
        blocked: Boolean mask of cells the path may not enter.
        vector_field: (3, nx, ny, nz) field used to steer around obstacles.
        max_length: Longest path accepted, defaults to ``nx + ny + nz``.
        max_iterations: Hard cap on search iterations, defaults to twice the cell count.

    Returns:
        A :class:`PathResult`. A failed search carries an empty path.
    """
    start_cell: Cell = (int(start[0]), int(start[1]), int(start[2]))
    target_cell: Cell = (int(target[0]), int(target[1]), int(target[2]))
    if max_length is None:
        max_length = sum(blocked.shape)
    if max_iterations is None:
        max_iterations = 2 * blocked.size + 1

    if start_cell == target_cell:
        return PathResult(cells=[start_cell], state=PathSearchState.REACHED)

    stack: list[Cell] = [start_cell]
    visited: set[Cell] = {start_cell}
    state = PathSearchState.ADVANCE
    backtracks = 0

    for iteration in range(1, max_iterations + 1):
        current = stack[-1]
        if current == target_cell:
            return PathResult(cells=stack, state=PathSearchState.REACHED, iterations=iteration, backtracks=backtracks)
        if len(stack) - 1 >= max_length:
            break

        delta = (
            target_cell[0] - current[0],
            target_cell[1] - current[1],
            target_cell[2] - current[2],
        )
        direct = (
            current[0] + _sign(delta[0]),
            current[1] + _sign(delta[1]),
            current[2] + _sign(delta[2]),
        )
        if not blocked[direct] and direct not in visited:
            state = PathSearchState.ADVANCE
            step = direct
        else:
            state = PathSearchState.BLOCKED_SEARCH
            step = _best_neighbor(current, delta, blocked, visited, vector_field)

        if step is None:
            if len(stack) == 1:
                break
            state = PathSearchState.BACKTRACK
            backtracks += 1
            stack.pop()
            continue

        stack.append(step)
        visited.add(step)
    else:
        iteration = max_iterations

    logger.debug(
        f"No path from {start_cell} to {target_cell} (last state {state}, "
        f"{iteration} iterations, {backtracks} backtracks)."
    )
    return PathResult(cells=[], state=PathSearchState.FAILED, iterations=iteration, backtracks=backtracks)


@dataclass
class PhaseField:
    """
    Reconstructed phase.

    Attributes:
        phi: (nx, ny, nz) phase in (-π, π].
        missed: Cells no path reached; their phase is meaningless.
    """
    phi: npt.NDArray[np.float64]
    missed: npt.NDArray[np.bool_]

    @property
    def n_missed(self) -> int:
        return int(self.missed.sum())


class PathIntegrator:
    """
    Integrates a line field along grid paths from the centre cell.
    """

    def __init__(self, grid: Grid, line_field: LineField) -> None:
        """
        Args:
            grid: The simulation grid.
            line_field: Biot-Savart field with its singularity masks.
        """
        self.grid = grid
        self.line_field = line_field
        self.failed_paths = 0

    def integrate(self) -> PhaseField:
        """
        Run both sweeps and return the phase with its missed-cell mask.

        Pass 1 sweeps from the eight corners inwards and avoids every
        near-core cell. Pass 2 visits all remaining cells and only avoids
        the very-near-core cells, which stay missed for good.
        """
        grid = self.grid
        phi = grid.zeros()
        missed = np.ones(grid.shape, dtype=np.bool_)

        base = grid.center_cell
        phi[base] = 0.0
        missed[base] = False
        self.failed_paths = 0

        near = self.line_field.near_core
        very_near = self.line_field.very_near_core
        nx, ny, nz = grid.shape

        logger.info("Calculating scalar potential...")
        then = time.perf_counter()

        # 1. Corners inwards, staying clear of the cores
        for i_d in range((nx + 1) // 2):
            for j_d in range((ny + 1) // 2):
                for k_d in range((nz + 1) // 2):
                    for i in (i_d, nx - 1 - i_d):
                        for j in (j_d, ny - 1 - j_d):
                            for k in (k_d, nz - 1 - k_d):
                                if missed[i, j, k] and not near[i, j, k]:
                                    self._integrate_to(base, (i, j, k), near, phi, missed)

        first_pass_missed = int(missed.sum())

        # 2. Everything left except the innermost core cells
        for i in range(nx):
            for j in range(ny):
                for k in range(nz):
                    if missed[i, j, k] and not very_near[i, j, k]:
                        self._integrate_to(base, (i, j, k), very_near, phi, missed)

        result = PhaseField(phi=phi, missed=missed)
        logger.info(
            f"Phase field calc took {time.perf_counter() - then:.2f} s; "
            f"{first_pass_missed} cells left after pass 1, {result.n_missed} after pass 2, "
            f"{self.failed_paths} failed path search(es)."
        )
        unreachable = int((missed & ~very_near).sum())
        if unreachable:
            logger.warning(f"{unreachable} cells could not be reached by any path and keep the baseline state.")
        return result

    def _integrate_to(
        self,
        base: Cell,
        target: Cell,
        blocked: npt.NDArray[np.bool_],
        phi: npt.NDArray[np.float64],
        missed: npt.NDArray[np.bool_],
    ) -> bool:
        """Find one path and integrate the phase along it; False if no path exists."""
        result = find_path(base, target, blocked, self.line_field.field)
        if not result.found:
            self.failed_paths += 1
            return False
        if result.length == 0:
            return True

        cells = np.asarray(result.cells, dtype=np.int64)
        i, j, k = cells[:, 0], cells[:, 1], cells[:, 2]
        values = self.line_field.field[:, i, j, k]  # (3, L + 1)
        midpoint = 0.5 * (values[:, 1:] + values[:, :-1])
        steps = np.diff(cells, axis=0).T
        increments = self.grid.h * np.sum(midpoint * steps, axis=0)

        # Wrapping each partial sum equals wrapping after every single step
        phi[i[1:], j[1:], k[1:]] = wrap_phase(phi[base] + np.cumsum(increments))
        missed[i[1:], j[1:], k[1:]] = False
        return True
