"""Residual surfaces between two co-registered elevation grids.

This package provides tools for:
- Checking that two grids share extents and bin spacing
- Streaming paired rows and differencing every cell valid in both
- Accumulating residual statistics (RMS, mean, standard deviation)
- Writing the residual surface and a fixed-column report

Example usage:
    from bagresidual import compute_residual_surface, format_report

    result = compute_residual_surface("survey_2019.bag", "survey_2023.bag")
    print(result.report())
"""

__version__ = "1.0.0"

from .errors import (
    AllocationError,
    CreateError,
    GeometryMismatchError,
    OpenError,
    ResidualError,
    RowReadError,
    UsageError,
    WriteError,
)
from .config import ResidualConfig, apply_environment_overrides
from .grid import ElevationGrid, GridMetadata
from .geometry import CommonGridSpec, validate_geometry
from .stats import ResidualSummary, RunningStats
from .writer import OutputHeader, OutputRasterWriter, RecordStatus, ResidualRecord
from .differ import ResidualRow, RowStreamDiffer, difference_row
from .report import format_report, print_report
from .pipeline import ResidualResult, compute_residual_surface, output_path_for
