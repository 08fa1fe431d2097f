import pytest
import numpy as np
import geopandas as gpd

from habsdm.errors import ArtifactError
from habsdm.raster.clip import clip_stack, study_area_hull
from habsdm.raster.grid import cells_to_points, points_to_cells, stack_valid_mask
from habsdm.raster.io import read_stack, write_stack

from conftest import cell_points


def test_points_to_cells_round_trips_cell_centres(env_stack):
    transform = env_stack.rio.transform()
    rows = np.array([0, 5, 19])
    cols = np.array([0, 12, 19])

    xs, ys = cells_to_points(transform, rows, cols)
    back_rows, back_cols, inside = points_to_cells(transform, xs, ys, (20, 20))

    assert inside.all()
    assert back_rows.tolist() == rows.tolist()
    assert back_cols.tolist() == cols.tolist()


def test_points_outside_grid_are_flagged(env_stack):
    _, _, inside = points_to_cells(
        env_stack.rio.transform(), np.array([-0.1, 20.1, 5.0, np.nan]), np.array([5.0, 5.0, 20.5, 5.0]), (20, 20)
    )
    assert not inside.any()


def test_hull_of_points(presence_points):
    hull = study_area_hull(presence_points)

    assert len(hull) == 1
    assert hull.geometry.iloc[0].geom_type == "Polygon"
    assert hull.crs == presence_points.crs
    assert hull.geometry.iloc[0].area == pytest.approx(81.0)


def test_buffered_hull_is_larger(presence_points):
    plain = study_area_hull(presence_points).geometry.iloc[0]
    buffered = study_area_hull(presence_points, buffer=1.0).geometry.iloc[0]

    assert buffered.contains(plain)
    assert buffered.area > plain.area


def test_collinear_points_need_a_buffer():
    points = cell_points([(5, 1), (5, 2), (5, 3)])
    with pytest.raises(ValueError):
        study_area_hull(points)
    assert study_area_hull(points, buffer=0.5).geometry.iloc[0].area > 0


def test_clip_shares_grid_and_masks_outside(env_stack, presence_points):
    hull = study_area_hull(presence_points)

    clipped = clip_stack(env_stack, hull)

    assert clipped.sizes["y"] < env_stack.sizes["y"]
    assert clipped.sizes["x"] < env_stack.sizes["x"]
    assert clipped.rio.crs == env_stack.rio.crs
    shapes = {clipped[name].shape for name in clipped.data_vars}
    assert len(shapes) == 1
    assert stack_valid_mask(clipped).sum() >= len(presence_points)


def test_stack_round_trip(tmp_path, env_stack):
    path = write_stack(env_stack, tmp_path / "stack.tif")

    loaded = read_stack(path, expected_layers=["bio_1", "bio_5", "bio_12"])

    assert list(loaded.data_vars) == ["bio_1", "bio_5", "bio_12"]
    assert loaded.rio.crs == env_stack.rio.crs
    assert np.allclose(loaded["bio_12"].values, env_stack["bio_12"].values)


def test_stack_with_other_layers_is_rejected(tmp_path, env_stack):
    path = write_stack(env_stack, tmp_path / "stack.tif")

    with pytest.raises(ArtifactError):
        read_stack(path, expected_layers=["bio_1", "bio_12"])
