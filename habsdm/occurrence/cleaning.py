import logging

import geopandas as gpd
import pandas as pd

from habsdm.errors import DataSourceError

logger = logging.getLogger(__name__)

PRESENCE_COLUMNS = ["gbif_id", "longitude", "latitude", "class"]


def to_presence_points(
    records: pd.DataFrame,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
    crs: str = "EPSG:4326",
) -> gpd.GeoDataFrame:
    """Converts occurrence records to presence points.

    Records without usable coordinates are dropped and the number dropped is
    logged. Duplicate coordinates are kept.
    """
    if lon_col not in records.columns or lat_col not in records.columns:
        raise ValueError(f"Occurrence records have no {lon_col}/{lat_col} columns.")

    df = records.copy()
    df[lon_col] = pd.to_numeric(df[lon_col], errors="coerce")
    df[lat_col] = pd.to_numeric(df[lat_col], errors="coerce")
    valid = (
        df[lon_col].between(-180, 180)
        & df[lat_col].between(-90, 90)
    )
    n_dropped = int((~valid).sum())
    if n_dropped:
        logger.warning(f"Dropped {n_dropped} records with missing or out-of-range coordinates.")
    df = df[valid].reset_index(drop=True)

    if df.empty:
        raise DataSourceError("No occurrence records have valid coordinates.")

    n_duplicates = int(df.duplicated(subset=[lon_col, lat_col]).sum())
    if n_duplicates:
        logger.info(f"{n_duplicates} records share coordinates with an earlier record; keeping them.")

    df["class"] = 1
    gdf = gpd.GeoDataFrame(
        df,
        geometry=gpd.points_from_xy(df[lon_col], df[lat_col]),
        crs=crs,
    )
    return gdf
