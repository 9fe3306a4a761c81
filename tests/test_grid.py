import numpy as np
import pytest

from bagresidual.config import NULL_ELEVATION
from bagresidual.errors import OpenError, RowReadError
from bagresidual.grid import ElevationGrid
from bagresidual.unit_utils import get_crs_units


def test_metadata_from_raster(make_grid):
    path = make_grid("a.tif", np.zeros((2, 3)), origin=(-70.5, 41.25), cell_size=(0.5, 0.25))
    with ElevationGrid.open(path) as grid:
        meta = grid.metadata

    assert (meta.columns, meta.rows) == (3, 2)
    assert meta.origin_lon == pytest.approx(-70.5)
    assert meta.origin_lat == pytest.approx(41.25)
    assert meta.cell_size_lon == pytest.approx(0.5)
    assert meta.cell_size_lat == pytest.approx(0.25)
    assert meta.max_lon == pytest.approx(-69.0)
    assert meta.max_lat == pytest.approx(41.75)
    assert meta.path == path
    assert get_crs_units(meta.crs)[0].name == "degree"


def test_read_row_into_buffer(make_grid):
    path = make_grid("a.tif", [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    with ElevationGrid.open(path) as grid:
        row = grid.allocate_row()
        # Row 0 is the southern row, the last one in the file.
        grid.read_row(1, 0, 2, row)
        assert row.tolist() == [1.0, 2.0, 3.0]
        grid.read_row(0, 1, 2, row)
        assert row.tolist() == [1.0, 5.0, 6.0]


def test_declared_nodata_and_nan_become_null_elevation(make_grid):
    path = make_grid("a.tif", [[-9999.0, np.nan, 7.0]], nodata=-9999.0)
    with ElevationGrid.open(path) as grid:
        row = grid.read_row(0, 0, 2, grid.allocate_row())
    assert row.tolist() == [NULL_ELEVATION, NULL_ELEVATION, 7.0]


def test_read_outside_grid_raises(make_grid):
    path = make_grid("a.tif", np.zeros((2, 3)))
    with ElevationGrid.open(path) as grid:
        with pytest.raises(RowReadError):
            grid.read_row(2, 0, 2, grid.allocate_row())
        with pytest.raises(RowReadError):
            grid.read_row(0, 0, 3, grid.allocate_row())


def test_read_after_close_raises(make_grid):
    grid = ElevationGrid.open(make_grid("a.tif", np.zeros((1, 1))))
    grid.close()
    assert grid.closed
    with pytest.raises(RowReadError):
        grid.read_row(0, 0, 0, np.zeros(1))


def test_open_missing_file(tmp_path):
    with pytest.raises(OpenError) as excinfo:
        ElevationGrid.open(tmp_path / "missing.bag")
    assert "missing.bag" in str(excinfo.value)
    assert excinfo.value.reason


def test_south_up_grid_uses_south_west_corner(make_grid):
    path = make_grid(
        "south_up.tif", [[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]],
        origin=(-76.0, 36.0), cell_size=(0.5, 0.5), south_up=True,
    )
    with ElevationGrid.open(path) as grid:
        meta = grid.metadata
        row = grid.read_row(0, 0, 1, grid.allocate_row())
        assert row.tolist() == [1.0, 2.0]

    assert meta.origin_lon == pytest.approx(-76.0)
    assert meta.origin_lat == pytest.approx(36.0)
    assert meta.cell_size_lon == pytest.approx(0.5)
    assert meta.cell_size_lat == pytest.approx(0.5)
    assert meta.max_lat == pytest.approx(37.5)
