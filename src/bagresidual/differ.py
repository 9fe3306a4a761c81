"""Paired-row differencing.

RowStreamDiffer walks the first grid row by row, reads the matching row of
the second grid, and yields the residual (first minus second) for every
column valid in both. Only one row per grid is held in memory.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Tuple

import numpy as np

from .config import NULL_ELEVATION
from .geometry import CommonGridSpec
from .stats import RunningStats
from .writer import OutputRasterWriter

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class ResidualRow:
    """Valid residuals of one row, in column order."""

    row: int
    cols: np.ndarray
    diffs: np.ndarray
    depths: np.ndarray

    def __len__(self) -> int:
        return int(self.cols.size)


def difference_row(
    elev_a: np.ndarray,
    elev_b: np.ndarray,
    null_elevation: float = NULL_ELEVATION,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Residuals for one pair of rows.

    Only the columns the two rows share are compared. A column is valid when
    both elevations are strictly below ``null_elevation``.

    Returns
    -------
    cols, diffs, depths : np.ndarray
        Valid column indices, ``elev_a - elev_b`` and ``elev_a`` at them.
    """
    n = min(len(elev_a), len(elev_b))
    a = np.asarray(elev_a[:n], dtype=np.float64)
    b = np.asarray(elev_b[:n], dtype=np.float64)
    valid = (a < null_elevation) & (b < null_elevation)
    cols = np.flatnonzero(valid)
    depths = a[cols]
    return cols, depths - b[cols], depths


class ProgressTracker:
    """
    Integer percent-complete notifications.

    The callback fires only when ``floor(100 * processed / total)`` changes.
    """

    def __init__(self, total: int, callback: Optional[ProgressCallback] = None):
        self.total = total
        self.callback = callback
        self.processed = 0
        self.last_percent = -1

    def _emit(self, percent: int) -> None:
        if percent == self.last_percent:
            return
        self.last_percent = percent
        if self.callback is not None:
            self.callback(percent)

    def start(self) -> None:
        self._emit(0)

    def advance(self, cells: int) -> None:
        self.processed += cells
        if self.total <= 0:
            return
        self._emit(min(100, self.processed * 100 // self.total))

    def finish(self) -> None:
        self._emit(100)


class RowStreamDiffer:
    """
    Row-major residual scan over two validated grids.

    ``grid_a`` and ``grid_b`` need ``metadata``, ``allocate_row()`` and
    ``read_row(row, col_start, col_end, out)``; see ElevationGrid. Rows or
    columns of the first grid that the second does not have are treated as
    no data and never read.
    """

    def __init__(
        self,
        grid_a,
        grid_b,
        spec: CommonGridSpec,
        null_elevation: float = NULL_ELEVATION,
        progress: Optional[ProgressCallback] = None,
    ):
        self.grid_a = grid_a
        self.grid_b = grid_b
        self.spec = spec
        self.null_elevation = null_elevation
        self.progress = progress

    def rows(self) -> Iterator[ResidualRow]:
        """Yield one ResidualRow per row of the first grid, in order."""
        width_a = self.grid_a.metadata.columns
        width_b = self.grid_b.metadata.columns
        buffer_a = self.grid_a.allocate_row()
        buffer_b = self.grid_b.allocate_row()
        empty = np.empty(0, dtype=np.intp)
        no_values = np.empty(0, dtype=np.float64)

        tracker = ProgressTracker(self.spec.total_cells, self.progress)
        tracker.start()
        for row in range(self.spec.rows):
            if row < self.spec.overlap_rows:
                self.grid_a.read_row(row, 0, width_a - 1, buffer_a)
                self.grid_b.read_row(row, 0, width_b - 1, buffer_b)
                cols, diffs, depths = difference_row(
                    buffer_a[:self.spec.overlap_columns],
                    buffer_b[:self.spec.overlap_columns],
                    self.null_elevation,
                )
                yield ResidualRow(row, cols, diffs, depths)
            else:
                yield ResidualRow(row, empty, no_values, no_values)
            tracker.advance(self.spec.columns)
        tracker.finish()

    def run(
        self,
        writer: Optional[OutputRasterWriter] = None,
        stats: Optional[RunningStats] = None,
    ) -> RunningStats:
        """
        Scan every row, writing residuals to ``writer`` and accumulating them.

        Returns the accumulator, a new one unless ``stats`` was given.
        """
        stats = RunningStats() if stats is None else stats
        for residuals in self.rows():
            if not len(residuals):
                continue
            if writer is not None:
                writer.write_records(residuals.row, residuals.cols, residuals.diffs)
            stats.update_many(residuals.diffs, residuals.depths)
        logger.debug(f"Scanned {self.spec.rows} rows, {stats.count} valid residuals")
        return stats
