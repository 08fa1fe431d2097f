from typing import Dict, List

import pytest
import numpy as np
import pandas as pd
import geopandas as gpd
import xarray as xr
import rioxarray as rxr  # noqa: F401

from habsdm.raster.io import stack_from_layers


def make_layer(values: np.ndarray, crs: str = "EPSG:4326") -> xr.DataArray:
    """A layer on a 1 degree grid with its top-left corner at (0, height)."""
    height, width = values.shape
    layer = xr.DataArray(
        values.astype("float32"),
        coords={"y": np.arange(height - 0.5, 0, -1.0), "x": np.arange(0.5, width, 1.0)},
        dims=("y", "x"),
    )
    return layer.rio.write_crs(crs)


def make_stack(layers: Dict[str, np.ndarray]) -> xr.Dataset:
    return stack_from_layers({name: make_layer(values) for name, values in layers.items()})


def cell_points(cells: List[tuple], crs: str = "EPSG:4326") -> gpd.GeoDataFrame:
    """Points at the centres of (row, col) cells of a make_layer grid."""
    height = 20
    xs = [col + 0.5 for _, col in cells]
    ys = [height - row - 0.5 for row, _ in cells]
    return gpd.GeoDataFrame(
        {"gbif_id": np.arange(1000, 1000 + len(cells)), "class": 1},
        geometry=gpd.points_from_xy(xs, ys),
        crs=crs,
    )


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(0)


@pytest.fixture
def grid_values() -> Dict[str, np.ndarray]:
    """Three 20 x 20 layers. ``bio_5`` is nearly a copy of ``bio_1``."""
    rows, cols = np.mgrid[0:20, 0:20]
    noise = np.random.default_rng(1).normal(0, 0.3, size=(20, 20))
    bio_1 = cols.astype(float)
    bio_5 = cols + noise
    bio_12 = (rows * 3.0) + np.random.default_rng(2).normal(0, 1.0, size=(20, 20))
    return {"bio_1": bio_1, "bio_5": bio_5, "bio_12": bio_12}


@pytest.fixture
def env_stack(grid_values) -> xr.Dataset:
    return make_stack(grid_values)


@pytest.fixture
def stack_with_gaps(grid_values) -> xr.Dataset:
    """Stack where the top two rows are missing in bio_1 and the left column in bio_12."""
    values = {name: arr.copy() for name, arr in grid_values.items()}
    values["bio_1"][:2, :] = np.nan
    values["bio_12"][:, 0] = np.nan
    return make_stack(values)


@pytest.fixture
def presence_points() -> gpd.GeoDataFrame:
    cells = [(r, c) for r in range(5, 15) for c in range(5, 15)]
    return cell_points(cells)


@pytest.fixture
def gbif_records() -> List[dict]:
    """Fake GBIF records scattered over the interior of the 20 x 20 grid."""
    gen = np.random.default_rng(3)
    lons = gen.uniform(3, 17, size=60)
    lats = gen.uniform(3, 17, size=60)
    return [
        {
            "key": 5000 + i,
            "scientificName": "Myotis testus",
            "decimalLongitude": float(lon),
            "decimalLatitude": float(lat),
            "coordinateUncertaintyInMeters": 10.0,
            "eventDate": "2020-06-01",
            "year": 2020,
            "country": "United Kingdom",
            "basisOfRecord": "HUMAN_OBSERVATION",
        }
        for i, (lon, lat) in enumerate(zip(lons, lats))
    ]


@pytest.fixture
def fake_search(gbif_records):
    """A stand-in for pygbif.occurrences.search that pages over gbif_records."""
    calls = []

    def search(limit, offset, **params):
        calls.append({"limit": limit, "offset": offset, **params})
        page = gbif_records[offset:offset + limit]
        return {
            "offset": offset,
            "limit": limit,
            "endOfRecords": offset + len(page) >= len(gbif_records),
            "count": len(gbif_records),
            "results": page,
        }

    search.calls = calls
    return search


@pytest.fixture
def labelled_table() -> pd.DataFrame:
    """A feature table with a clean signal: presence rows have higher ``bio_1``."""
    gen = np.random.default_rng(4)
    n = 100
    presence = pd.DataFrame({
        "bio_1": gen.normal(2.0, 1.0, n),
        "bio_12": gen.normal(0.0, 1.0, n),
        "class": 1,
    })
    background = pd.DataFrame({
        "bio_1": gen.normal(-2.0, 1.0, n),
        "bio_12": gen.normal(0.0, 1.0, n),
        "class": 0,
    })
    table = pd.concat([presence, background], ignore_index=True)
    table.insert(0, "point_id", np.arange(1, len(table) + 1))
    return table
