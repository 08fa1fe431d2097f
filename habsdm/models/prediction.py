"""Suitability prediction over the raster stack."""

import logging
from pathlib import Path
from typing import Sequence, Union

import numpy as np
import pandas as pd
import rasterio
import xarray as xr
import rioxarray as rxr

from habsdm.errors import ArtifactError
from habsdm.models.base import Scorer
from habsdm.raster.grid import grid_shape

logger = logging.getLogger(__name__)


def predict_suitability(
    scorer: Scorer,
    stack: xr.Dataset,
    predictors: Sequence[str],
) -> xr.DataArray:
    """Score every cell that has data in all predictor layers.

    Args:
        scorer: Fitted model.
        stack: Raster stack holding the predictor layers.
        predictors: Layers the model was fitted on.

    Returns:
        Single-band DataArray of scores on the stack grid, NaN where any predictor is missing.
    """
    predictors = list(predictors)
    shape = grid_shape(stack)
    values = np.stack([stack[name].transpose("y", "x").values for name in predictors], axis=-1)
    values = values.reshape(-1, len(predictors))
    valid = np.isfinite(values).all(axis=1)

    scores = np.full(values.shape[0], np.nan, dtype="float32")
    if valid.any():
        X = pd.DataFrame(values[valid], columns=predictors)
        scores[valid] = scorer.predict(X)
    logger.info(f"Predicted suitability for {int(valid.sum())} of {valid.size} cells")

    template = stack[predictors[0]].transpose("y", "x")
    suitability = xr.DataArray(
        scores.reshape(shape),
        coords={"y": template.y, "x": template.x},
        dims=("y", "x"),
        name="suitability",
    )
    suitability = suitability.rio.write_crs(stack.rio.crs)
    suitability = suitability.rio.write_transform(stack.rio.transform())
    return suitability.rio.write_nodata(np.nan, encoded=False)


def save_prediction_raster(
    suitability: xr.DataArray,
    output_path: Union[str, Path],
) -> Path:
    """Save a suitability surface as a single band GeoTIFF with NaN nodata."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    data = suitability.values.astype("float32")
    with rasterio.open(
        output_path,
        "w",
        driver="GTiff",
        height=data.shape[0],
        width=data.shape[1],
        count=1,
        dtype="float32",
        crs=suitability.rio.crs,
        transform=suitability.rio.transform(),
        nodata=np.nan,
    ) as dst:
        dst.write(data, 1)
        dst.set_band_description(1, "suitability")
    logger.info(f"Saved prediction raster to: {output_path}")
    return output_path


def load_prediction_raster(path: Union[str, Path]) -> xr.DataArray:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Prediction raster not found: {path}")
    try:
        with rxr.open_rasterio(path, masked=True) as data:
            data = data.load()
    except Exception as e:
        raise ArtifactError(f"Error reading prediction raster {path}: {e}") from e
    if data.sizes["band"] != 1:
        raise ArtifactError(f"{path} should have one band, found {data.sizes['band']}")
    return data.squeeze("band", drop=True).rename("suitability")
