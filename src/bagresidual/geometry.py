"""Grid compatibility checks.

Two grids can be differenced cell for cell only when their origins and bin
sizes agree to within SKOSH and their dimensions differ by at most a couple
of bins. Nothing is resampled.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from .config import MAX_BIN_DELTA, SKOSH
from .errors import GeometryMismatchError
from .grid import GridMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommonGridSpec:
    """
    Validated geometry shared by both grids.

    Dimensions, origin and bin sizes come from the first grid and size the
    output surface. ``overlap_columns``/``overlap_rows`` bound the cells
    present in both grids.
    """

    columns: int
    rows: int
    origin_lon: float
    origin_lat: float
    cell_size_lon: float
    cell_size_lat: float
    overlap_columns: int
    overlap_rows: int
    crs: Optional[Any] = None

    @property
    def total_cells(self) -> int:
        return self.columns * self.rows


def geometry_mismatches(
    first: GridMetadata,
    second: GridMetadata,
    tolerance: float = SKOSH,
    max_bin_delta: int = MAX_BIN_DELTA,
) -> List[str]:
    """List every reason the two grids are incompatible; empty if they match."""
    reasons = []
    if abs(first.columns - second.columns) > max_bin_delta:
        reasons.append(f"Widths differ by more than {max_bin_delta}: {first.columns} vs {second.columns}")
    if abs(first.rows - second.rows) > max_bin_delta:
        reasons.append(f"Heights differ by more than {max_bin_delta}: {first.rows} vs {second.rows}")

    checks = (
        ("Origin X", first.origin_lon, second.origin_lon),
        ("Origin Y", first.origin_lat, second.origin_lat),
        ("Bin size X", first.cell_size_lon, second.cell_size_lon),
        ("Bin size Y", first.cell_size_lat, second.cell_size_lat),
    )
    for label, a, b in checks:
        if not abs(a - b) < tolerance:
            reasons.append(f"{label} differs: {a!r} vs {b!r}")
    return reasons


def validate_geometry(
    first: GridMetadata,
    second: GridMetadata,
    tolerance: float = SKOSH,
    max_bin_delta: int = MAX_BIN_DELTA,
) -> CommonGridSpec:
    """
    Check that two grids can be differenced and return their shared geometry.

    Raises
    ------
    GeometryMismatchError
        If widths or heights differ by more than ``max_bin_delta`` or any
        origin/bin-size difference is not below ``tolerance``.
    """
    reasons = geometry_mismatches(first, second, tolerance=tolerance, max_bin_delta=max_bin_delta)
    if reasons:
        logger.debug(f"Geometry mismatch between {first.path} and {second.path}: {reasons}")
        raise GeometryMismatchError(first, second, reasons)

    if (first.columns, first.rows) != (second.columns, second.rows):
        logger.info(
            f"Grid sizes differ slightly ({first.columns}x{first.rows} vs "
            f"{second.columns}x{second.rows}); differencing the overlap only"
        )

    return CommonGridSpec(
        columns=first.columns,
        rows=first.rows,
        origin_lon=first.origin_lon,
        origin_lat=first.origin_lat,
        cell_size_lon=first.cell_size_lon,
        cell_size_lat=first.cell_size_lat,
        overlap_columns=min(first.columns, second.columns),
        overlap_rows=min(first.rows, second.rows),
        crs=first.crs,
    )
