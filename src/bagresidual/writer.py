"""Residual surface output.

The residual surface carries a CHRTR2-style header (metres, z range
[-326, 326], z scale 100, no uncertainty) and is written as a single band
float32 GeoTIFF. Cells never written keep the nodata value (NaN).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
import rasterio
from rasterio.errors import RasterioError
from rasterio.transform import from_origin
from rasterio.windows import Window

from .config import (
    OUTPUT_HORIZONTAL_UNCERTAINTY_SCALE,
    OUTPUT_MAX_Z,
    OUTPUT_MIN_Z,
    OUTPUT_VERTICAL_UNCERTAINTY_SCALE,
    OUTPUT_Z_SCALE,
    OUTPUT_Z_UNITS,
    VERSION,
)
from .errors import CreateError, WriteError
from .geometry import CommonGridSpec

logger = logging.getLogger(__name__)

OUTPUT_DRIVER = "GTiff"
OUTPUT_DTYPE = "float32"
OUTPUT_NODATA = float("nan")


class RecordStatus(IntEnum):
    NULL = 0
    REAL = 1


@dataclass(frozen=True)
class ResidualRecord:
    z: float
    status: RecordStatus = RecordStatus.REAL


@dataclass(frozen=True)
class OutputHeader:
    """Header of the residual surface, built from the first grid's geometry."""

    width: int
    height: int
    west_lon: float
    south_lat: float
    lon_grid_size: float
    lat_grid_size: float
    creation_software: str = VERSION
    z_units: str = OUTPUT_Z_UNITS
    min_z: float = OUTPUT_MIN_Z
    max_z: float = OUTPUT_MAX_Z
    z_scale: float = OUTPUT_Z_SCALE
    horizontal_uncertainty_scale: float = OUTPUT_HORIZONTAL_UNCERTAINTY_SCALE
    vertical_uncertainty_scale: float = OUTPUT_VERTICAL_UNCERTAINTY_SCALE
    crs: Optional[Any] = None

    @classmethod
    def from_grid_spec(cls, spec: CommonGridSpec, **overrides) -> "OutputHeader":
        fields = dict(
            width=spec.columns,
            height=spec.rows,
            west_lon=spec.origin_lon,
            south_lat=spec.origin_lat,
            lon_grid_size=spec.cell_size_lon,
            lat_grid_size=spec.cell_size_lat,
            crs=spec.crs,
        )
        fields.update(overrides)
        return cls(**fields)

    @property
    def north_lat(self) -> float:
        return self.south_lat + self.height * self.lat_grid_size

    def to_profile(self) -> Dict[str, Any]:
        return {
            "driver": OUTPUT_DRIVER,
            "dtype": OUTPUT_DTYPE,
            "count": 1,
            "width": self.width,
            "height": self.height,
            "crs": self.crs,
            "transform": from_origin(self.west_lon, self.north_lat, self.lon_grid_size, self.lat_grid_size),
            "nodata": OUTPUT_NODATA,
        }

    def to_tags(self) -> Dict[str, str]:
        return {
            "CREATION_SOFTWARE": self.creation_software,
            "Z_UNITS": self.z_units,
            "MIN_Z": f"{self.min_z:.2f}",
            "MAX_Z": f"{self.max_z:.2f}",
            "Z_SCALE": f"{self.z_scale:.1f}",
            "HORIZONTAL_UNCERTAINTY_SCALE": f"{self.horizontal_uncertainty_scale:.1f}",
            "VERTICAL_UNCERTAINTY_SCALE": f"{self.vertical_uncertainty_scale:.1f}",
        }


class OutputRasterWriter:
    """
    Record writer for the residual surface.

    Records are addressed by (row, col), rows counted from the south edge,
    and must arrive in non-decreasing row order. One row is buffered and written as a window when the next row
    starts; rows with no records are written as nodata.
    """

    def __init__(self, path: str, dataset, header: OutputHeader):
        self.path = path
        self.header = header
        self.out_of_range_count = 0
        self.records_written = 0
        self._dataset = dataset
        self._row_buffer = np.full(header.width, OUTPUT_NODATA, dtype=OUTPUT_DTYPE)
        self._pending_row: Optional[int] = None
        self._next_row = 0

    @classmethod
    def create(cls, path: Union[str, Path], header: OutputHeader) -> "OutputRasterWriter":
        path = str(path)
        try:
            dataset = rasterio.open(path, "w", **header.to_profile())
        except (RasterioError, OSError) as exc:
            raise CreateError(path, str(exc)) from exc
        try:
            dataset.update_tags(**header.to_tags())
        except RasterioError as exc:
            dataset.close()
            raise CreateError(path, str(exc)) from exc
        logger.debug(f"Created {path} ({header.width}x{header.height})")
        return cls(path, dataset, header)

    @property
    def closed(self) -> bool:
        return self._dataset is None or self._dataset.closed

    def _start_row(self, row: int) -> None:
        if not 0 <= row < self.header.height:
            raise IndexError(f"Row {row} outside output grid of {self.header.height} rows")
        if self._pending_row is not None:
            if row < self._pending_row:
                raise ValueError(f"Row {row} written after row {self._pending_row}")
            if row == self._pending_row:
                return
            self._flush()
        elif row < self._next_row:
            raise ValueError(f"Row {row} written after row {self._next_row - 1}")
        self._pending_row = row

    def _write_row(self, row: int, values: np.ndarray) -> None:
        # Row 0 is the southern edge; the GeoTIFF is stored north-up.
        window = Window(0, self.header.height - 1 - row, self.header.width, 1)
        self._dataset.write(values.reshape(1, -1), 1, window=window)

    def _fill_empty_rows(self, stop: int) -> None:
        if self._next_row >= stop:
            return
        empty = np.full(self.header.width, OUTPUT_NODATA, dtype=OUTPUT_DTYPE)
        for row in range(self._next_row, stop):
            self._write_row(row, empty)
        self._next_row = stop

    def _flush(self) -> None:
        row = self._pending_row
        if row is None:
            return
        try:
            self._fill_empty_rows(row)
            self._write_row(row, self._row_buffer)
        except RasterioError as exc:
            raise WriteError(self.path, row, str(exc)) from exc
        self._row_buffer.fill(OUTPUT_NODATA)
        self._next_row = row + 1
        self._pending_row = None

    def _check_range(self, z: np.ndarray) -> None:
        outside = np.count_nonzero((z < self.header.min_z) | (z > self.header.max_z))
        self.out_of_range_count += int(outside)

    def write_record(self, row: int, col: int, record: ResidualRecord) -> None:
        """Write one record; NULL records leave the cell as nodata."""
        if self.closed:
            raise ValueError(f"{self.path} is closed")
        if not 0 <= col < self.header.width:
            raise IndexError(f"Column {col} outside output grid of {self.header.width} columns")
        self._start_row(row)
        if record.status != RecordStatus.REAL:
            self._row_buffer[col] = OUTPUT_NODATA
            return
        z = np.float32(record.z)
        self._check_range(np.asarray([z]))
        self._row_buffer[col] = z
        self.records_written += 1

    def write_records(self, row: int, cols: Sequence[int], z: Sequence[float]) -> None:
        """Write REAL records for several columns of one row."""
        if self.closed:
            raise ValueError(f"{self.path} is closed")
        cols = np.asarray(cols, dtype=np.intp)
        z = np.asarray(z, dtype=OUTPUT_DTYPE)
        if cols.shape != z.shape:
            raise ValueError(f"cols and z differ in shape: {cols.shape} vs {z.shape}")
        if cols.size and (cols.min() < 0 or cols.max() >= self.header.width):
            raise IndexError(f"Columns outside output grid of {self.header.width} columns")
        self._start_row(row)
        self._check_range(z)
        self._row_buffer[cols] = z
        self.records_written += int(cols.size)

    def close(self) -> None:
        """
        Flush the buffered row, fill the remaining rows and close the file.

        If any of that fails the partial file is removed.
        """
        if self.closed:
            return
        try:
            self._flush()
            self._fill_empty_rows(self.header.height)
            self._dataset.close()
        except RasterioError as exc:
            self.discard()
            raise WriteError(self.path, self._next_row, str(exc)) from exc
        except Exception:
            self.discard()
            raise
        if self.out_of_range_count:
            logger.warning(
                f"{self.out_of_range_count} residuals in {self.path} fall outside "
                f"[{self.header.min_z}, {self.header.max_z}] {self.header.z_units}"
            )

    def discard(self) -> None:
        """Close without flushing and delete the partial file."""
        if self._dataset is not None and not self._dataset.closed:
            try:
                self._dataset.close()
            except RasterioError as exc:
                logger.debug(f"Closing {self.path} before removal failed: {exc}")
        if os.path.exists(self.path):
            os.remove(self.path)
            logger.info(f"Removed incomplete output {self.path}")

    def __enter__(self) -> "OutputRasterWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.discard()
