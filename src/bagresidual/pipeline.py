"""End-to-end residual surface generation.

compute_residual_surface opens both grids, validates their geometry,
creates the output surface, runs the row scan and returns the accumulated
statistics. Either the whole surface is written or, on any error, the
partial file is removed and the error propagates.
"""
from __future__ import annotations

import logging
import os
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .config import OUTPUT_SUFFIX, ResidualConfig
from .differ import ProgressCallback, RowStreamDiffer
from .errors import UsageError
from .geometry import CommonGridSpec, validate_geometry
from .grid import ElevationGrid, GridMetadata
from .report import format_report
from .stats import ResidualSummary, RunningStats
from .unit_utils import METER, UNKNOWN_UNIT, get_crs_units
from .writer import OutputHeader, OutputRasterWriter

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def output_path_for(first_path: PathLike, suffix: str = OUTPUT_SUFFIX) -> str:
    """
    Output name: the first grid's path with its last four characters
    replaced by ``suffix`` ("survey.bag" -> "survey.ch2").
    """
    first_path = str(first_path)
    if len(first_path) < 4:
        raise UsageError(f"Input path {first_path!r} is too short to derive an output name")
    return first_path[:-4] + suffix


@dataclass(frozen=True)
class ResidualResult:
    first: GridMetadata
    second: GridMetadata
    spec: CommonGridSpec
    output_path: str
    stats: RunningStats

    @property
    def summary(self) -> ResidualSummary:
        return self.stats.summarize()

    def report(self) -> str:
        return format_report(self.stats, self.first.path, self.second.path)


def _same_file(a: str, b: str) -> bool:
    return os.path.abspath(a) == os.path.abspath(b)


def _check_units(meta: GridMetadata) -> None:
    horizontal, vertical = get_crs_units(meta.crs)
    if vertical != UNKNOWN_UNIT and vertical.category == "linear" and vertical.name != METER.name:
        logger.warning(
            f"{meta.path} elevations are in {vertical}; the residual surface is labelled {METER}"
        )
    logger.debug(f"{meta.path}: horizontal unit {horizontal}, vertical unit {vertical}")


def compute_residual_surface(
    first_path: PathLike,
    second_path: PathLike,
    output_path: Optional[PathLike] = None,
    config: Optional[ResidualConfig] = None,
    progress: Optional[ProgressCallback] = None,
) -> ResidualResult:
    """
    Subtract the second grid from the first and write the residual surface.

    Parameters
    ----------
    first_path, second_path : str or Path
        Input grids. Residual = first - second.
    output_path : str or Path, optional
        Defaults to ``output_path_for(first_path)``.
    config : ResidualConfig, optional
        Tolerances and no-data sentinel.
    progress : callable, optional
        Called with the integer percent complete whenever it changes.

    Raises
    ------
    ResidualError
        OpenError, GeometryMismatchError, AllocationError, CreateError,
        RowReadError, WriteError or UsageError; nothing is left on disk.
    """
    config = ResidualConfig() if config is None else config
    first_path = str(first_path)
    second_path = str(second_path)
    output_path = output_path_for(first_path, config.output_suffix) if output_path is None else str(output_path)

    for input_path in (first_path, second_path):
        if _same_file(output_path, input_path):
            raise UsageError(f"Output file {output_path} would overwrite input {input_path}")

    with ExitStack() as stack:
        grid_a = stack.enter_context(ElevationGrid.open(first_path, null_elevation=config.null_elevation))
        grid_b = stack.enter_context(ElevationGrid.open(second_path, null_elevation=config.null_elevation))

        spec = validate_geometry(
            grid_a.metadata,
            grid_b.metadata,
            tolerance=config.tolerance,
            max_bin_delta=config.max_bin_delta,
        )
        _check_units(grid_a.metadata)

        header = OutputHeader.from_grid_spec(spec)
        with OutputRasterWriter.create(output_path, header) as writer:
            differ = RowStreamDiffer(grid_a, grid_b, spec, null_elevation=config.null_elevation, progress=progress)
            stats = differ.run(writer)

    logger.info(f"Wrote {stats.count} residuals to {output_path}")
    return ResidualResult(
        first=grid_a.metadata,
        second=grid_b.metadata,
        spec=spec,
        output_path=output_path,
        stats=stats,
    )
