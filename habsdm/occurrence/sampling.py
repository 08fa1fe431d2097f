import logging

import numpy as np
import geopandas as gpd
import xarray as xr
import rioxarray as rxr  # Required for .rio accessor, even if not directly called

from habsdm.errors import InsufficientCellsError
from habsdm.raster.grid import cells_to_points, grid_shape, points_to_cells, reference_layer


def _as_2d(layer: xr.DataArray) -> xr.DataArray:
    if "band" in layer.dims:
        if layer.sizes["band"] != 1:
            raise ValueError(f"Reference layer must have one band, got {layer.sizes['band']}.")
        layer = layer.squeeze("band", drop=True)
    if set(layer.dims) != {"y", "x"}:
        raise ValueError(f"Reference layer must have (y, x) dims, got {layer.dims}.")
    return layer.transpose("y", "x")


def presence_mask(layer: xr.DataArray, points: gpd.GeoDataFrame) -> np.ndarray:
    """
    Rasterise presence points onto the grid of a reference layer.

    Args:
        layer: Reference layer defining the grid.
        points: Presence points. Re-projected to the layer CRS if needed.

    Returns:
        Boolean array of the layer's shape, True in every cell holding at least one point.
    """
    layer = _as_2d(layer)
    crs = layer.rio.crs
    if crs is not None and points.crs is not None and points.crs != crs:
        logging.info(f"Re-projecting presence points from {points.crs} to {crs}")
        points = points.to_crs(crs)

    shape = grid_shape(layer)
    rows, cols, inside = points_to_cells(
        layer.rio.transform(), points.geometry.x.values, points.geometry.y.values, shape
    )
    n_outside = int((~inside).sum())
    if n_outside:
        logging.warning(f"{n_outside} presence points fall outside the reference grid.")

    mask = np.zeros(shape, dtype=bool)
    mask[rows[inside], cols[inside]] = True
    return mask


def sample_pseudo_absences(
    layer: xr.DataArray,
    n_points: int,
    occupied: np.ndarray,
    rng: np.random.Generator,
) -> gpd.GeoDataFrame:
    """Draw pseudo-absence points uniformly from valid, unoccupied cells.

    Cells are drawn without replacement, so no two points share a cell. Each point
    sits at the centre of its cell.

    Args:
        layer: Reference layer. Cells that are NaN are not sampled.
        n_points: Number of points to draw.
        occupied: Boolean presence mask on the layer grid (see ``presence_mask``).
        rng: Random generator.

    Returns:
        GeoDataFrame of ``n_points`` points with ``class`` = 0.

    Raises:
        InsufficientCellsError: If fewer than ``n_points`` cells are valid and unoccupied.
    """
    if n_points < 0:
        raise ValueError(f"n_points must be non-negative, got {n_points}")
    layer = _as_2d(layer)
    shape = grid_shape(layer)
    if occupied.shape != shape:
        raise ValueError(f"Presence mask shape {occupied.shape} does not match layer shape {shape}.")

    valid = np.isfinite(layer.values)
    candidates = np.flatnonzero(valid & ~occupied)
    logging.info(
        f"Sampling {n_points} pseudo-absence points from {len(candidates)} free cells "
        f"({int(valid.sum())} valid, {int((occupied & valid).sum())} occupied)"
    )
    if len(candidates) < n_points:
        logging.error(f"Only {len(candidates)} free cells for {n_points} pseudo-absence points.")
        raise InsufficientCellsError(n_points, len(candidates))

    chosen = rng.choice(candidates, size=n_points, replace=False)
    rows, cols = np.unravel_index(chosen, shape)
    xs, ys = cells_to_points(layer.rio.transform(), rows, cols)

    background = gpd.GeoDataFrame(
        {"longitude": xs, "latitude": ys, "class": np.zeros(n_points, dtype=int)},
        geometry=gpd.points_from_xy(xs, ys),
        crs=layer.rio.crs,
    )
    logging.info(f"Generated {len(background)} pseudo-absence points.")
    return background


def generate_pseudo_absences(
    stack: xr.Dataset,
    presence: gpd.GeoDataFrame,
    rng: np.random.Generator,
) -> gpd.GeoDataFrame:
    """One pseudo-absence per presence point, from cells valid in every stack layer."""
    layer = reference_layer(stack)
    occupied = presence_mask(layer, presence)
    return sample_pseudo_absences(layer, len(presence), occupied, rng)
