import os

import numpy as np
import pytest
import rasterio

from bagresidual.config import NULL_ELEVATION, ResidualConfig
from bagresidual.errors import GeometryMismatchError, OpenError, UsageError
from bagresidual.pipeline import compute_residual_surface, output_path_for

NULL = NULL_ELEVATION


def test_output_path_replaces_last_four_characters():
    assert output_path_for("/data/survey.bag") == "/data/survey.ch2"
    assert output_path_for("abcd") == ".ch2"
    with pytest.raises(UsageError):
        output_path_for("abc")


def test_three_cell_example(make_grid, tmp_path):
    a = make_grid("first.tif", [[10.0, 20.0, 30.0]])
    b = make_grid("second.tif", [[9.0, 21.0, 29.0]])
    seen = []

    result = compute_residual_surface(a, b, progress=seen.append)

    assert result.output_path == str(tmp_path / "first.ch2")
    stats = result.stats
    assert stats.count == 3
    assert stats.sum_diff == 1.0
    assert stats.sum_diff_squared == 3.0
    assert (stats.neg_count, stats.pos_count) == (1, 2)
    assert stats.max_abs_diff == 1.0
    summary = result.summary
    assert summary.rms == 1.0
    assert (summary.neg_percent_rounded, summary.pos_percent_rounded) == (33, 67)
    assert seen == [0, 100]

    with rasterio.open(result.output_path) as src:
        assert src.read(1).tolist() == [[1.0, -1.0, 1.0]]
        assert src.tags()["Z_UNITS"] == "meters"

    report = result.report()
    assert report.startswith(f"#FIRST BAG file  : {a}\n#SECOND BAG file : {b}\n")
    assert "    033    067" in report


def test_invalid_cells_have_no_record(make_grid):
    a = make_grid("first.tif", [[1.0, NULL, 3.0], [4.0, 5.0, 6.0]])
    b = make_grid("second.tif", [[1.5, 2.0, NULL], [-9999.0, 5.0, 5.0]])

    result = compute_residual_surface(a, b)

    with rasterio.open(result.output_path) as src:
        data = src.read(1)
    assert data[0, 0] == -0.5
    assert np.isnan(data[0, 1])
    assert np.isnan(data[0, 2])
    assert data[1].tolist() == [4.0 + 9999.0, 0.0, 1.0]
    assert result.stats.count == 4


def test_no_overlap_produces_empty_surface(make_grid):
    a = make_grid("first.tif", [[1.0, NULL]])
    b = make_grid("second.tif", [[NULL, 2.0]])

    result = compute_residual_surface(a, b)

    assert result.stats.count == 0
    assert not result.summary.has_bias
    assert all(line.startswith("#") for line in result.report().split("\n") if line)
    with rasterio.open(result.output_path) as src:
        assert np.isnan(src.read(1)).all()


def test_slightly_smaller_second_grid(make_grid):
    a = make_grid("first.tif", np.full((4, 5), 3.0))
    b = make_grid("second.tif", np.full((3, 4), 1.0))

    result = compute_residual_surface(a, b)

    assert (result.spec.columns, result.spec.rows) == (5, 4)
    assert result.stats.count == 12
    with rasterio.open(result.output_path) as src:
        data = src.read(1)
    assert data.shape == (4, 5)
    assert np.isnan(data[:, 4]).all()
    # Both grids share the south-west corner, so the northern row has no pair.
    assert np.isnan(data[0]).all()
    assert (data[1:, :4] == 2.0).all()


def test_geometry_mismatch_writes_nothing(make_grid, tmp_path):
    a = make_grid("first.tif", np.ones((2, 2)))
    b = make_grid("second.tif", np.ones((2, 2)), cell_size=(0.0002, 0.0001))

    with pytest.raises(GeometryMismatchError):
        compute_residual_surface(a, b)
    assert not os.path.exists(tmp_path / "first.ch2")


def test_missing_input(make_grid, tmp_path):
    a = make_grid("first.tif", np.ones((2, 2)))
    with pytest.raises(OpenError):
        compute_residual_surface(a, str(tmp_path / "nothing.bag"))
    assert not os.path.exists(tmp_path / "first.ch2")


def test_output_may_not_overwrite_an_input(make_grid):
    a = make_grid("first.ch2", np.ones((1, 1)))
    with pytest.raises(UsageError):
        compute_residual_surface(a, a)


def test_custom_null_elevation(make_grid):
    a = make_grid("first.tif", [[1.0, 50.0]], nodata=None)
    b = make_grid("second.tif", [[0.0, 0.0]], nodata=None)

    result = compute_residual_surface(a, b, config=ResidualConfig(null_elevation=50.0))
    assert result.stats.count == 1


def test_runs_are_repeatable(make_grid):
    rng = np.random.default_rng(7)
    a = make_grid("first.tif", rng.uniform(-50.0, -10.0, size=(20, 30)))
    b = make_grid("second.tif", rng.uniform(-50.0, -10.0, size=(20, 30)))

    first = compute_residual_surface(a, b)
    with open(first.output_path, "rb") as fh:
        first_bytes = fh.read()
    os.remove(first.output_path)

    second = compute_residual_surface(a, b)
    with open(second.output_path, "rb") as fh:
        second_bytes = fh.read()

    assert first_bytes == second_bytes
    assert first.stats == second.stats
    assert first.report() == second.report()


def test_south_up_grids_sharing_south_west_corner(make_grid):
    a = make_grid("first.tif", np.full((4, 2), 3.0), south_up=True)
    b = make_grid("second.tif", np.full((3, 2), 1.0), south_up=True)

    result = compute_residual_surface(a, b)

    assert result.spec.origin_lat == pytest.approx(36.0)
    assert result.stats.count == 6
    with rasterio.open(result.output_path) as src:
        data = src.read(1)
        assert src.bounds.bottom == pytest.approx(36.0)
        assert src.bounds.top == pytest.approx(36.0003)
    assert data.shape == (3, 2)
    assert (data == 2.0).all()
