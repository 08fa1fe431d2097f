import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import xarray as xr
import rioxarray as rxr

from habsdm.errors import ArtifactError

logger = logging.getLogger(__name__)


def band_names(data: xr.DataArray) -> List[str]:
    """Band names from the ``long_name`` attribute, which is a str for single band rasters."""
    long_name = data.attrs.get("long_name")
    if long_name is None:
        return []
    if isinstance(long_name, str):
        return [long_name]
    return list(long_name)


def stack_from_layers(layers: Dict[str, xr.DataArray]) -> xr.Dataset:
    """Combine 2D layers that share a grid into a raster stack dataset."""
    if not layers:
        raise ValueError("Cannot build a raster stack from zero layers.")
    crs = next(iter(layers.values())).rio.crs
    cleaned = {}
    for name, layer in layers.items():
        if "band" in layer.dims:
            layer = layer.squeeze("band", drop=True)
        elif "band" in layer.coords:
            layer = layer.drop_vars("band")
        layer = layer.astype("float32")
        layer.attrs = {}
        layer.encoding = {}
        cleaned[name] = layer.rio.write_nodata(np.nan, encoded=False).rename(name)
    stack = xr.Dataset(cleaned)
    stack = stack.rio.write_crs(crs)
    return stack


def write_stack(stack: xr.Dataset, path: Union[str, Path]) -> Path:
    """Write a raster stack as a multi-band GeoTIFF with band descriptions set to layer names."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    names = list(stack.data_vars)
    data = stack.to_array(dim="band").astype("float32")
    data.attrs = {"long_name": tuple(names)}
    data = data.rio.write_crs(stack.rio.crs)
    data = data.rio.write_nodata(np.nan, encoded=False)
    data.rio.to_raster(path)
    logger.info(f"Wrote {len(names)} layer raster stack to {path}")
    return path


def read_stack(
    path: Union[str, Path],
    expected_layers: Optional[Sequence[str]] = None,
) -> xr.Dataset:
    """Load a raster stack written by :func:`write_stack`.

    Args:
        path: GeoTIFF path.
        expected_layers: If given, the stack must contain exactly these layers.

    Returns:
        Dataset with one variable per band, nodata as NaN.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster stack not found: {path}")
    try:
        with rxr.open_rasterio(path, masked=True) as data:
            data = data.load()
    except Exception as e:
        raise ArtifactError(f"Error reading raster stack {path}: {e}") from e

    names = band_names(data)
    if len(names) != data.sizes["band"]:
        raise ArtifactError(f"{path} has {data.sizes['band']} bands but {len(names)} band names.")
    if expected_layers is not None and list(expected_layers) != names:
        raise ArtifactError(
            f"{path} holds layers {names}, expected {list(expected_layers)}. "
            "Re-run with --force to rebuild it."
        )

    crs = data.rio.crs
    data.coords["band"] = names
    stack = data.to_dataset(dim="band")
    for name in names:
        stack[name].attrs = {}
        stack[name].encoding = {}
        stack[name] = stack[name].rio.write_nodata(np.nan, encoded=False)
    return stack.rio.write_crs(crs)
