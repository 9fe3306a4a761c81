"""
unit_utils.py - Unit inspection for grid coordinate reference systems.

This module provides:
- UnitInfo dataclass to encapsulate unit metadata
- A small registry of the linear and angular units found in survey grids
- Extraction of horizontal and vertical units from pyproj CRS objects

The residual surface is always declared in metres, so the vertical unit of
the first grid is checked against METER before the output is written.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from pyproj import CRS as _CRS


@dataclass(frozen=True)
class UnitInfo:
    """
    Information about a measurement unit.

    Attributes
    ----------
    name : str
        Canonical normalized name (lowercase, underscores).
    abbreviation : str
        Short form for display. Examples: "m", "ft", "°"
    to_base_factor : float
        Multiply values in this unit by this factor to get metres (linear)
        or radians (angular).
    category : str
        One of: "linear", "angular", "unknown"
    """
    name: str
    abbreviation: str
    to_base_factor: float
    category: str

    def __str__(self) -> str:
        return f"{self.name} ({self.abbreviation})"


_UNITS: Dict[str, UnitInfo] = {
    "metre": UnitInfo("meter", "m", 1.0, "linear"),
    "meter": UnitInfo("meter", "m", 1.0, "linear"),
    "m": UnitInfo("meter", "m", 1.0, "linear"),
    "foot": UnitInfo("foot", "ft", 0.3048, "linear"),
    "ft": UnitInfo("foot", "ft", 0.3048, "linear"),
    "us survey foot": UnitInfo("us_survey_foot", "ftUS", 1200.0 / 3937.0, "linear"),
    "us_survey_foot": UnitInfo("us_survey_foot", "ftUS", 1200.0 / 3937.0, "linear"),
    "fathom": UnitInfo("fathom", "fath", 1.8288, "linear"),
    "degree": UnitInfo("degree", "°", math.pi / 180.0, "angular"),
    "degrees": UnitInfo("degree", "°", math.pi / 180.0, "angular"),
    "radian": UnitInfo("radian", "rad", 1.0, "angular"),
}

METER = _UNITS["meter"]
DEGREE = _UNITS["degree"]
UNKNOWN_UNIT = UnitInfo("unknown", "?", 1.0, "unknown")


def lookup_unit(name: Optional[str]) -> Optional[UnitInfo]:
    if not name:
        return None
    return _UNITS.get(name.strip().lower())


def _ensure_crs_obj(crs: Any) -> _CRS:
    """
    Accept WKT, proj string, EPSG code, a rasterio CRS or a pyproj CRS.
    Return a pyproj.CRS instance, raising on failure.
    """
    if isinstance(crs, _CRS):
        return crs
    if hasattr(crs, "to_wkt"):
        return _CRS.from_wkt(crs.to_wkt())
    return _CRS.from_user_input(crs)


def _unit_from_axis(axis) -> UnitInfo:
    """
    Build a UnitInfo from a pyproj Axis, trusting pyproj's conversion factor.
    """
    factor = axis.unit_conversion_factor
    if factor is None:
        return UNKNOWN_UNIT

    matched = lookup_unit(axis.unit_name)
    if matched is not None and abs(matched.to_base_factor - factor) < 1e-9:
        return matched

    name = (axis.unit_name or "unknown").lower().replace(" ", "_")
    category = matched.category if matched is not None else ("angular" if factor < 0.1 else "linear")
    return UnitInfo(name, "?", factor, category)


def get_horizontal_unit(crs: Any) -> UnitInfo:
    """
    Horizontal unit of a CRS; degrees for geographic grids.

    For a compound CRS the first (horizontal) component is used.
    """
    if crs is None:
        return UNKNOWN_UNIT
    try:
        crs_obj = _ensure_crs_obj(crs)
    except Exception:
        return UNKNOWN_UNIT

    if crs_obj.is_compound and crs_obj.sub_crs_list:
        crs_obj = crs_obj.sub_crs_list[0]

    if crs_obj.coordinate_system and crs_obj.coordinate_system.axis_list:
        return _unit_from_axis(crs_obj.coordinate_system.axis_list[0])
    return UNKNOWN_UNIT


def get_vertical_unit(crs: Any) -> UnitInfo:
    """
    Vertical unit of a CRS.

    Compound CRS use their vertical component, 3D CRS their third axis.
    A plain 2D CRS gives UNKNOWN_UNIT.
    """
    if crs is None:
        return UNKNOWN_UNIT
    try:
        crs_obj = _ensure_crs_obj(crs)
    except Exception:
        return UNKNOWN_UNIT

    if crs_obj.is_compound:
        sub_crs_list = crs_obj.sub_crs_list or []
        if len(sub_crs_list) >= 2:
            vert_crs = sub_crs_list[1]
            if vert_crs.coordinate_system and vert_crs.coordinate_system.axis_list:
                return _unit_from_axis(vert_crs.coordinate_system.axis_list[0])

    if getattr(crs_obj, "is_vertical", False):
        if crs_obj.coordinate_system and crs_obj.coordinate_system.axis_list:
            return _unit_from_axis(crs_obj.coordinate_system.axis_list[0])

    if crs_obj.coordinate_system and len(crs_obj.coordinate_system.axis_list) >= 3:
        return _unit_from_axis(crs_obj.coordinate_system.axis_list[2])

    return UNKNOWN_UNIT


def get_crs_units(crs: Any) -> Tuple[UnitInfo, UnitInfo]:
    """(horizontal, vertical) units of a CRS."""
    return get_horizontal_unit(crs), get_vertical_unit(crs)
