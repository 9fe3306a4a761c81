"""Run-time constants and configuration for residual surface generation.

Values follow the original BAG/CHRTR2 tooling: a BAG null elevation of
1,000,000, a geometry tolerance of 1e-8 (degrees or metres, whatever the
grid uses) and a fixed CHRTR2-style header for the output surface.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, Mapping, MutableMapping, Optional

from . import __version__

logger = logging.getLogger(__name__)

VERSION = f"bag_residual V{__version__}"

# Geometry tolerance for origin and bin spacing comparison.
SKOSH = 1e-8

# Allowed difference in rows/columns between the two grids.
MAX_BIN_DELTA = 2

# BAG null elevation. Anything at or above it is "no data".
NULL_ELEVATION = 1000000.0

OUTPUT_SUFFIX = ".ch2"

# Output header constants.
OUTPUT_Z_UNITS = "meters"
OUTPUT_MIN_Z = -326.0
OUTPUT_MAX_Z = 326.0
OUTPUT_Z_SCALE = 100.0
OUTPUT_HORIZONTAL_UNCERTAINTY_SCALE = 0.0
OUTPUT_VERTICAL_UNCERTAINTY_SCALE = 0.0

# Environment needed by the format libraries before any file is opened.
# HDF5 refuses to read BAGs written with an older library without this.
ENVIRONMENT_OVERRIDES: Dict[str, str] = {
    "HDF5_DISABLE_VERSION_CHECK": "2",
}

NULL_ELEVATION_ENV = "BAG_RESIDUAL_NULL_ELEVATION"


@dataclass(frozen=True)
class ResidualConfig:
    """
    Settings for one residual run.

    Attributes
    ----------
    tolerance : float
        Maximum absolute difference allowed between origins and bin sizes.
    max_bin_delta : int
        Maximum difference allowed between the grids' widths and heights.
    null_elevation : float
        No-data sentinel; a cell is valid only when strictly below it.
    output_suffix : str
        Replaces the last four characters of the first grid's path.
    """

    tolerance: float = SKOSH
    max_bin_delta: int = MAX_BIN_DELTA
    null_elevation: float = NULL_ELEVATION
    output_suffix: str = OUTPUT_SUFFIX

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "ResidualConfig":
        """Build a config, honouring ``BAG_RESIDUAL_NULL_ELEVATION`` if set."""
        environ = os.environ if environ is None else environ
        raw = environ.get(NULL_ELEVATION_ENV)
        if raw is None or not raw.strip():
            return cls()
        try:
            null_elevation = float(raw)
        except ValueError:
            raise ValueError(f"{NULL_ELEVATION_ENV} must be a number, got {raw!r}")
        logger.debug(f"Using null elevation {null_elevation} from {NULL_ELEVATION_ENV}")
        return cls(null_elevation=null_elevation)


def apply_environment_overrides(environ: Optional[MutableMapping[str, str]] = None) -> Dict[str, str]:
    """
    Set the format-library environment variables that are not already set.

    Returns the variables that were actually applied.
    """
    environ = os.environ if environ is None else environ
    applied = {}
    for key, value in ENVIRONMENT_OVERRIDES.items():
        if key in environ:
            continue
        environ[key] = value
        applied[key] = value
    if applied:
        logger.debug(f"Applied environment overrides: {applied}")
    return applied
