"""Sample raster stack values at labelled points."""

import logging
from typing import List, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import xarray as xr
import rioxarray as rxr  # noqa: F401

from habsdm.raster.grid import grid_shape, points_to_cells

logger = logging.getLogger(__name__)


def extract_features(
    stack: xr.Dataset,
    points: gpd.GeoDataFrame,
    class_col: str = "class",
    predictors: Optional[List[str]] = None,
) -> gpd.GeoDataFrame:
    """
    Read the value of each stack layer in the cell containing each point.

    Every point gets a row, in input order. Points outside the grid or on a nodata
    cell get NaN for the affected layers. The input frames are not modified, so
    running the extraction twice gives identical tables.

    Args:
        stack: Raster stack with one variable per predictor.
        points: Labelled points. Re-projected to the stack CRS for lookup only.
        class_col: Label column copied into the output.
        predictors: Layers to sample. Defaults to every stack variable.

    Returns:
        GeoDataFrame with ``point_id`` (if present), ``class_col``, ``longitude``,
        ``latitude``, one column per predictor and the input geometry.
    """
    predictors = list(stack.data_vars) if predictors is None else list(predictors)
    missing = [name for name in predictors if name not in stack.data_vars]
    if missing:
        raise KeyError(f"Layers {missing} not in raster stack {list(stack.data_vars)}")
    if class_col not in points.columns:
        raise KeyError(f"Label column '{class_col}' not in points.")

    lookup = points
    if stack.rio.crs is not None and points.crs is not None and points.crs != stack.rio.crs:
        lookup = points.to_crs(stack.rio.crs)

    shape = grid_shape(stack)
    rows, cols, inside = points_to_cells(
        stack.rio.transform(), lookup.geometry.x.values, lookup.geometry.y.values, shape
    )

    table = pd.DataFrame(index=points.index)
    if "point_id" in points.columns:
        table["point_id"] = points["point_id"].values
    table[class_col] = points[class_col].values
    table["longitude"] = points.geometry.x.values
    table["latitude"] = points.geometry.y.values
    for name in predictors:
        grid = stack[name].transpose("y", "x").values
        values = np.full(len(points), np.nan, dtype=float)
        values[inside] = grid[rows[inside], cols[inside]]
        table[name] = values

    features = gpd.GeoDataFrame(table, geometry=points.geometry.values, crs=points.crs)

    n_outside = int((~inside).sum())
    n_incomplete = int(features[predictors].isna().any(axis=1).sum())
    if n_outside:
        logger.warning(f"{n_outside} points fall outside the raster grid.")
    if n_incomplete:
        logger.warning(
            f"{n_incomplete} of {len(features)} points have missing values in at least one layer."
        )
    logger.info(f"Extracted {len(predictors)} features for {len(features)} points")
    return features


def predictor_columns(table: pd.DataFrame, class_col: str = "class") -> List[str]:
    """Columns of a feature table that hold predictor values."""
    reserved = {"point_id", class_col, "longitude", "latitude", "geometry"}
    return [col for col in table.columns if col not in reserved]
