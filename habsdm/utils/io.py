import json
import logging
import pickle
from pathlib import Path
from typing import Any, Iterable, Union

import geopandas as gpd
import pandas as pd

from habsdm.errors import ArtifactError

logger = logging.getLogger(__name__)


def check_columns(df: pd.DataFrame, required: Iterable[str], source: Union[str, Path]) -> None:
    """Raise ArtifactError if any required column is missing from df."""
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ArtifactError(
            f"{source} is missing expected columns {missing}; found {list(df.columns)}. "
            "Re-run with --force to rebuild it."
        )


def write_points(gdf: gpd.GeoDataFrame, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    gdf.to_file(path, driver="GeoJSON")
    return path


def read_points(path: Union[str, Path], required_columns: Iterable[str] = ()) -> gpd.GeoDataFrame:
    """Loads a point layer written by :func:`write_points` and checks its schema."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Point file not found: {path}")
    try:
        gdf = gpd.read_file(path)
    except Exception as e:
        raise ArtifactError(f"Error reading points from {path}: {e}") from e
    check_columns(gdf, required_columns, path)
    if len(gdf) and not (gdf.geometry.geom_type == "Point").all():
        raise ArtifactError(f"{path} contains non-point geometries.")
    return gdf


def write_table(gdf: gpd.GeoDataFrame, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    gdf.to_parquet(path)
    return path


def read_table(path: Union[str, Path], required_columns: Iterable[str] = ()) -> gpd.GeoDataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Table not found: {path}")
    try:
        gdf = gpd.read_parquet(path)
    except Exception as e:
        raise ArtifactError(f"Error reading table from {path}: {e}") from e
    check_columns(gdf, required_columns, path)
    return gdf


def write_json(obj: Any, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(obj, f, indent=2)
    return path


def read_json(path: Union[str, Path]) -> Any:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"JSON file not found: {path}")
    try:
        with open(path, "r") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ArtifactError(f"Error parsing JSON from {path}: {e}") from e


def save_pickled_model(model: Any, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        pickle.dump(model, f)
    logger.info(f"Saved model object to: {path}")
    return path


def load_pickled_model(model_path: Union[str, Path]) -> Any:
    """Loads a pickled model object from a given path."""
    model_path = Path(model_path)
    if not model_path.exists():
        raise FileNotFoundError(f"Model file not found: {model_path}")
    try:
        with open(model_path, "rb") as f:
            return pickle.load(f)
    except Exception as e:
        raise ArtifactError(f"Error loading model from {model_path}: {e}") from e
