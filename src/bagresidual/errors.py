"""Exceptions raised while building a residual surface.

Every error is fatal to a run; the command line reports the message and
exits with a nonzero status.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .grid import GridMetadata


class ResidualError(Exception):
    """Root exception for the package."""


class UsageError(ResidualError):
    """Raised when the required input paths are missing or unusable."""


class OpenError(ResidualError):
    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        msg = f"Error opening BAG file {path}"
        if reason:
            msg += f"\n{reason}"
        super().__init__(msg)


class GeometryMismatchError(ResidualError):
    """
    Raised when two grids do not share extents and bin spacing.

    Carries both metadata blocks so the caller can print them.
    """

    def __init__(self, first: "GridMetadata", second: "GridMetadata", reasons: Optional[list] = None):
        self.first = first
        self.second = second
        self.reasons = list(reasons or [])
        super().__init__("BAG file extents and/or spacing do not match.")

    def describe(self) -> str:
        lines = [str(self)]
        for label, meta in (("BAG1", self.first), ("BAG2", self.second)):
            lines.append(
                f"{label} MinX = {meta.origin_lon:.7f}  MinY = {meta.origin_lat:.7f}  "
                f"MaxX = {meta.max_lon:.7f}  MaxY = {meta.max_lat:.7f}  "
                f"X = {meta.cell_size_lon:.7f}  Y = {meta.cell_size_lat:.7f}  "
                f"Width = {meta.columns}  Height = {meta.rows}"
            )
        lines.extend(f"  {reason}" for reason in self.reasons)
        return "\n".join(lines)


class AllocationError(ResidualError):
    """Raised when a row buffer cannot be allocated."""


class CreateError(ResidualError):
    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        msg = f"Unable to create output file {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class RowReadError(ResidualError):
    def __init__(self, path: str, row: int, reason: str = ""):
        self.path = path
        self.row = row
        self.reason = reason
        msg = f"Error reading row {row} from {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class WriteError(ResidualError):
    def __init__(self, path: str, row: int, reason: str = ""):
        self.path = path
        self.row = row
        self.reason = reason
        msg = f"Error writing row {row} to {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
