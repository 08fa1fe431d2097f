import logging

import geopandas as gpd
import xarray as xr
import rioxarray as rxr  # noqa: F401

from habsdm.raster.grid import stack_valid_mask

logger = logging.getLogger(__name__)


def study_area_hull(points: gpd.GeoDataFrame, buffer: float = 0.0) -> gpd.GeoDataFrame:
    """
    Convex hull around a set of points, optionally buffered.

    Parameters:
    points (GeoDataFrame): Presence points.
    buffer (float): Buffer distance in the units of the points' CRS. If 0, no buffer is applied.

    Returns:
    GeoDataFrame: A single polygon boundary in the points' CRS.
    """
    if points.empty:
        raise ValueError("Cannot build a study area from zero points.")
    hull = points.geometry.union_all().convex_hull
    if buffer > 0:
        hull = hull.buffer(buffer)
    if hull.geom_type != "Polygon" or hull.area == 0:
        raise ValueError(
            f"Convex hull of {len(points)} points is a {hull.geom_type}; "
            "need at least three non-collinear points or a positive hull buffer."
        )
    return gpd.GeoDataFrame({"name": ["study_area"]}, geometry=[hull], crs=points.crs)


def clip_stack(stack: xr.Dataset, boundary: gpd.GeoDataFrame) -> xr.Dataset:
    """Crop the stack to the boundary's extent and mask cells outside it.

    Cells touched by the boundary are kept so points on the hull edge stay inside
    the clipped grid. Every layer shares the clipped grid.
    """
    if stack.rio.crs is None:
        raise ValueError("Raster stack has no CRS.")
    boundary = boundary.to_crs(stack.rio.crs)
    clipped = stack.rio.clip(
        boundary.geometry.values,
        boundary.crs,
        drop=True,
        all_touched=True,
    )
    n_valid = int(stack_valid_mask(clipped).sum())
    if n_valid == 0:
        raise ValueError("Clipped raster stack has no cells with data in every layer.")
    logger.info(
        f"Clipped stack to {clipped.sizes['y']} x {clipped.sizes['x']} cells "
        f"({n_valid} valid across all layers)"
    )
    return clipped
