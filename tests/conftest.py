from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import Affine, from_origin

from bagresidual.config import NULL_ELEVATION
from bagresidual.errors import RowReadError
from bagresidual.grid import GridMetadata


def write_grid(path, data, origin=(-76.0, 36.0), cell_size=(0.0001, 0.0001), nodata=NULL_ELEVATION, crs="EPSG:4326",
               south_up=False):
    """
    Write ``data`` as a float32 GeoTIFF with its SW corner at ``origin``.

    Row 0 of ``data`` is the northern row, or the southern one with ``south_up``.
    """
    data = np.asarray(data, dtype="float32")
    rows, columns = data.shape
    west, south = origin
    if south_up:
        transform = Affine(cell_size[0], 0.0, west, 0.0, cell_size[1], south)
    else:
        transform = from_origin(west, south + rows * cell_size[1], cell_size[0], cell_size[1])
    with rasterio.open(
        str(path),
        "w",
        driver="GTiff",
        width=columns,
        height=rows,
        count=1,
        dtype="float32",
        crs=crs,
        transform=transform,
        nodata=nodata,
    ) as dst:
        dst.write(data, 1)
    return str(path)


@pytest.fixture
def make_grid(tmp_path):
    def _make(name, data, **kwargs):
        return write_grid(Path(tmp_path) / name, data, **kwargs)
    return _make


class ArrayGrid:
    """In-memory stand-in for ElevationGrid."""

    def __init__(self, data, path="memory", fail_on_row=None, null_elevation=NULL_ELEVATION):
        self.data = np.asarray(data, dtype=np.float64)
        self.path = path
        self.fail_on_row = fail_on_row
        self.null_elevation = null_elevation
        self.rows_read = []
        rows, columns = self.data.shape
        self.metadata = GridMetadata(columns, rows, 0.0, 0.0, 1.0, 1.0, path=path)

    def allocate_row(self):
        return np.full(self.metadata.columns, self.null_elevation)

    def read_row(self, row, col_start, col_end, out):
        if row == self.fail_on_row:
            raise RowReadError(self.path, row, "simulated failure")
        self.rows_read.append(row)
        out[col_start:col_end + 1] = self.data[row, col_start:col_end + 1]
        return out


def metadata(columns=3, rows=2, origin_lon=-76.0, origin_lat=36.0, cell_size_lon=0.0001, cell_size_lat=0.0001, path=""):
    return GridMetadata(columns, rows, origin_lon, origin_lat, cell_size_lon, cell_size_lat, path=path)
