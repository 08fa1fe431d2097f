"""
Climate data loading functionality.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

import geopandas as gpd
import numpy as np
import xarray as xr
import rioxarray as rxr

from habsdm.config import EnvironmentSettings
from habsdm.errors import DataSourceError
from habsdm.raster.io import band_names, stack_from_layers

logger = logging.getLogger(__name__)


def tidy_long_name(long_name: str) -> str:
    return re.sub(r"^wc2\.1_[^_]+_", "", long_name).replace(" ", "_").lower()


def layer_variable(layer: str) -> str:
    """The WorldClim variable a layer belongs to, e.g. ``bio_12`` -> ``bio``."""
    prefix, _, suffix = layer.rpartition("_")
    if prefix and suffix.isdigit():
        return prefix
    return layer


class ClimateData:
    """
    A class to handle downloading and caching WorldClim 2.1 country tiles.
    """
    datasets = {
        "tmin": "Minimum temperature",
        "tmax": "Maximum temperature",
        "tavg": "Average temperature",
        "prec": "Precipitation",
        "bio": "Bioclimatic variables",
        "wind": "Wind speed",
        "srad": "Solar radiation",
        "vapr": "Water vapour pressure",
        "elev": "Elevation",
    }

    def __init__(self, settings: EnvironmentSettings, cache_folder: Union[str, Path]):
        self.settings = settings
        self.cache_folder = Path(cache_folder)
        self.cache_folder.mkdir(parents=True, exist_ok=True)

    def _url(self, variable: str) -> str:
        return self.settings.url_template.format(
            iso3=self.settings.iso3, resolution=self.settings.resolution, variable=variable
        )

    def _local_path(self, variable: str) -> Path:
        return self.cache_folder / f"{self.settings.iso3}_{self.settings.resolution}_{variable}.tif"

    def download_dataset(self, variable: str) -> Path:
        """Download a climate variable dataset and cache it."""
        if variable not in self.datasets:
            raise ValueError(f"Unknown WorldClim variable '{variable}'. Must be one of {list(self.datasets)}")
        cache_path = self._local_path(variable)
        if cache_path.exists():
            return cache_path

        url = self._url(variable)
        logger.info(f"Downloading {self.datasets[variable].lower()} from {url}")
        try:
            data = rxr.open_rasterio(url)
            if not isinstance(data, xr.DataArray):
                raise ValueError(f"Expected DataArray from {url}, got {type(data)}")
            data.rio.to_raster(cache_path)
        except Exception as e:
            if cache_path.exists():
                cache_path.unlink()
            logger.error(f"Error downloading {url}: {e}")
            raise DataSourceError(f"Failed to download WorldClim '{variable}' from {url}: {e}") from e
        return cache_path

    def get_dataset(self, variable: str, aoi: Optional[gpd.GeoDataFrame] = None) -> xr.DataArray:
        """Get a climate dataset with tidy band names, optionally clipped to the area of interest."""
        cache_path = self.download_dataset(variable)
        data = rxr.open_rasterio(cache_path, masked=True)
        if not isinstance(data, xr.DataArray):
            raise DataSourceError(f"Expected DataArray from {cache_path}, got {type(data)}")

        names = band_names(data)
        if len(names) == data.sizes["band"]:
            names = [tidy_long_name(name) for name in names]
        elif data.sizes["band"] == 1:
            names = [variable]
        else:
            names = [f"{variable}_{i}" for i in range(1, data.sizes["band"] + 1)]
        data.coords["band"] = names

        if aoi is not None:
            aoi = aoi.to_crs(data.rio.crs)
            data = data.rio.clip_box(*aoi.total_bounds)
        return data


def fetch_environmental_layers(
    settings: EnvironmentSettings,
    cache_folder: Union[str, Path],
    aoi: Optional[gpd.GeoDataFrame] = None,
) -> xr.Dataset:
    """Fetch the configured subset of WorldClim layers as a raster stack.

    Args:
        settings: Environment settings naming the layers, e.g. ``["bio_1", "bio_12"]``.
        cache_folder: Folder the downloaded tiles are kept in.
        aoi: Optional area of interest; layers are cut to its bounding box.

    Returns:
        Dataset with one variable per requested layer, in the requested order.
    """
    climate = ClimateData(settings, cache_folder)
    by_variable: Dict[str, List[str]] = {}
    for layer in settings.layers:
        by_variable.setdefault(layer_variable(layer), []).append(layer)

    layers: Dict[str, xr.DataArray] = {}
    for variable, wanted in by_variable.items():
        data = climate.get_dataset(variable, aoi=aoi)
        available = list(data.coords["band"].values)
        missing = [name for name in wanted if name not in available]
        if missing:
            raise DataSourceError(
                f"WorldClim '{variable}' tile has no layers {missing}; available: {available}"
            )
        for name in wanted:
            layers[name] = data.sel(band=name)

    stack = stack_from_layers({name: layers[name] for name in settings.layers})
    n_valid = int(np.isfinite(stack[settings.layers[0]].values).sum())
    if n_valid == 0:
        raise DataSourceError("Environmental layers contain no valid cells.")
    logger.info(f"Loaded environmental layers {settings.layers} ({stack.sizes['y']} x {stack.sizes['x']})")
    return stack
