"""Elevation grid access for residual computation.

Provides GridMetadata, the header values compared between two grids, and
ElevationGrid, a read-only row reader over any raster GDAL can open
(BAG, GeoTIFF, ...). Rows are read one at a time into caller-owned buffers.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import numpy as np
import rasterio
from rasterio.errors import RasterioError
from rasterio.windows import Window

from .config import NULL_ELEVATION
from .errors import AllocationError, OpenError, RowReadError

logger = logging.getLogger(__name__)

# Band holding elevation; BAG uncertainty is band 2.
ELEVATION_BAND = 1


@dataclass(frozen=True)
class GridMetadata:
    """
    Geometry of one elevation grid.

    The origin is the south-west corner of the grid.
    """

    columns: int
    rows: int
    origin_lon: float
    origin_lat: float
    cell_size_lon: float
    cell_size_lat: float
    path: str = ""
    crs: Optional[Any] = None
    nodata: Optional[float] = None

    @property
    def total_cells(self) -> int:
        return self.columns * self.rows

    @property
    def max_lon(self) -> float:
        return self.origin_lon + self.columns * self.cell_size_lon

    @property
    def max_lat(self) -> float:
        return self.origin_lat + self.rows * self.cell_size_lat

    @classmethod
    def from_dataset(cls, src, path: str = "") -> "GridMetadata":
        """
        Read the geometry of an open rasterio dataset.

        Works for north-up and south-up grids; for a south-up grid rasterio
        reports the northern edge as ``bounds.bottom`` and a negative y resolution.
        """
        res_x, res_y = src.res
        bounds = src.bounds
        return cls(
            columns=int(src.width),
            rows=int(src.height),
            origin_lon=float(min(bounds.left, bounds.right)),
            origin_lat=float(min(bounds.bottom, bounds.top)),
            cell_size_lon=abs(float(res_x)),
            cell_size_lat=abs(float(res_y)),
            path=path,
            crs=src.crs,
            nodata=src.nodata,
        )


class ElevationGrid:
    """
    Read-only handle on one elevation grid.

    Values equal to the dataset's declared nodata, and NaNs, are rewritten to
    ``null_elevation`` when a row is read so that validity is always the
    single test ``value < null_elevation``.

    Rows are numbered from the south edge of the grid, as in BAG, so two
    grids that share a south-west corner pair up row for row even when one
    of them is a bin or two taller.

    Use as a context manager::

        with ElevationGrid.open("survey.bag") as grid:
            row = grid.allocate_row()
            grid.read_row(0, 0, grid.metadata.columns - 1, row)
    """

    def __init__(self, path: str, dataset, null_elevation: float = NULL_ELEVATION, band: int = ELEVATION_BAND):
        self.path = path
        self.null_elevation = null_elevation
        self.band = band
        self._dataset = dataset
        self.metadata = GridMetadata.from_dataset(dataset, path=path)
        self._south_up = dataset.transform.e > 0

    @classmethod
    def open(cls, path: Union[str, Path], null_elevation: float = NULL_ELEVATION) -> "ElevationGrid":
        path = str(path)
        try:
            dataset = rasterio.open(path)
        except RasterioError as exc:
            raise OpenError(path, str(exc)) from exc
        logger.debug(f"Opened {path}: driver={dataset.driver} size={dataset.width}x{dataset.height}")
        try:
            return cls(path, dataset, null_elevation=null_elevation)
        except Exception:
            dataset.close()
            raise

    @property
    def closed(self) -> bool:
        return self._dataset is None or self._dataset.closed

    def allocate_row(self) -> np.ndarray:
        """Allocate a buffer holding one full row of this grid."""
        try:
            return np.full(self.metadata.columns, self.null_elevation, dtype=np.float64)
        except MemoryError as exc:
            raise AllocationError(f"Allocating data row for {self.path}") from exc

    def read_row(self, row: int, col_start: int, col_end: int, out: np.ndarray) -> np.ndarray:
        """
        Read elevations ``col_start..col_end`` (inclusive) of ``row`` into ``out``.

        Raises
        ------
        RowReadError
            If the row is outside the grid or the driver fails to read it.
        """
        if self.closed:
            raise RowReadError(self.path, row, "grid is closed")
        if not 0 <= row < self.metadata.rows:
            raise RowReadError(self.path, row, f"row outside grid of {self.metadata.rows} rows")
        if not 0 <= col_start <= col_end < self.metadata.columns:
            raise RowReadError(self.path, row, f"column range {col_start}..{col_end} outside grid")

        count = col_end - col_start + 1
        src_row = row if self._south_up else self.metadata.rows - 1 - row
        window = Window(col_start, src_row, count, 1)
        try:
            data = self._dataset.read(self.band, window=window, out_dtype="float64")
        except RasterioError as exc:
            raise RowReadError(self.path, row, str(exc)) from exc

        values = out[col_start:col_end + 1]
        values[:] = data[0, :count]
        nodata = self.metadata.nodata
        if nodata is not None and not np.isnan(nodata) and nodata != self.null_elevation:
            values[values == nodata] = self.null_elevation
        values[np.isnan(values)] = self.null_elevation
        return out

    def close(self) -> None:
        if self._dataset is not None and not self._dataset.closed:
            self._dataset.close()

    def __enter__(self) -> "ElevationGrid":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
