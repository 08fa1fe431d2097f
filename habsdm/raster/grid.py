from typing import Tuple, Union

import numpy as np
import xarray as xr
import rioxarray as rxr  # noqa: F401  registers the .rio accessor
from affine import Affine


def points_to_cells(
    transform: Affine,
    xs: np.ndarray,
    ys: np.ndarray,
    shape: Tuple[int, int],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Convert coordinates to the (row, col) of the cell containing them.

    Parameters:
    transform (Affine): The grid's affine transform.
    xs, ys (np.ndarray): Point coordinates in the grid's CRS.
    shape (tuple): (height, width) of the grid.

    Returns:
    tuple: rows, cols and a boolean mask of points that fall inside the grid.
    Rows and cols of points outside the grid are not valid indexes.
    """
    xs = np.asarray(xs, dtype=float)
    ys = np.asarray(ys, dtype=float)
    cols_f, rows_f = ~transform * (xs, ys)
    finite = np.isfinite(cols_f) & np.isfinite(rows_f)
    rows = np.floor(np.where(finite, rows_f, -1)).astype(int)
    cols = np.floor(np.where(finite, cols_f, -1)).astype(int)
    height, width = shape
    inside = finite & (rows >= 0) & (rows < height) & (cols >= 0) & (cols < width)
    return rows, cols, inside


def cells_to_points(
    transform: Affine, rows: np.ndarray, cols: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Return the centre coordinates of the given cells."""
    rows = np.asarray(rows, dtype=float)
    cols = np.asarray(cols, dtype=float)
    xs, ys = transform * (cols + 0.5, rows + 0.5)
    return np.asarray(xs), np.asarray(ys)


def grid_shape(data: Union[xr.Dataset, xr.DataArray]) -> Tuple[int, int]:
    return data.sizes["y"], data.sizes["x"]


def stack_valid_mask(stack: xr.Dataset) -> np.ndarray:
    """Cells where every layer of the stack has data."""
    mask = np.ones(grid_shape(stack), dtype=bool)
    for name in stack.data_vars:
        mask &= np.isfinite(stack[name].values)
    return mask


def reference_layer(stack: xr.Dataset) -> xr.DataArray:
    """A layer on the stack grid that is NaN wherever any stack layer is missing."""
    mask = stack_valid_mask(stack)
    first = stack[list(stack.data_vars)[0]]
    layer = xr.DataArray(
        np.where(mask, 1.0, np.nan),
        coords={"y": first.y, "x": first.x},
        dims=("y", "x"),
        name="valid",
    )
    layer = layer.rio.write_crs(stack.rio.crs)
    layer = layer.rio.write_transform(stack.rio.transform())
    return layer
