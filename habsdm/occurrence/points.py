import logging

import geopandas as gpd
import numpy as np
import pandas as pd

from habsdm.errors import ArtifactError

logger = logging.getLogger(__name__)

LABELLED_COLUMNS = ["point_id", "gbif_id", "class"]


def merge_labelled_points(
    presence: gpd.GeoDataFrame,
    background: gpd.GeoDataFrame,
) -> gpd.GeoDataFrame:
    """Stack presence and background points into one labelled point set.

    Presence points come first. Every row gets a ``point_id`` counting up from 1.
    Background rows have no ``gbif_id``.
    """
    if presence.crs != background.crs:
        background = background.to_crs(presence.crs)

    pres = presence[["gbif_id", "geometry"]].copy()
    pres["class"] = 1
    bg = background[["geometry"]].copy()
    bg["gbif_id"] = pd.NA
    bg["class"] = 0

    merged = pd.concat([pres, bg], ignore_index=True)
    merged = gpd.GeoDataFrame(merged, geometry="geometry", crs=presence.crs)
    merged.insert(0, "point_id", np.arange(1, len(merged) + 1))
    merged["class"] = merged["class"].astype(int)
    merged["gbif_id"] = pd.to_numeric(merged["gbif_id"], errors="coerce").astype("Int64")

    validate_labelled_points(merged)
    logger.info(
        f"Labelled point set: {len(merged)} points "
        f"({int(merged['class'].sum())} presence, {int((merged['class'] == 0).sum())} background)"
    )
    return merged[LABELLED_COLUMNS + ["geometry"]]


def validate_labelled_points(points: gpd.GeoDataFrame) -> None:
    """Check ids are 1..N, labels are binary and every row has one point geometry."""
    missing = [col for col in LABELLED_COLUMNS if col not in points.columns]
    if missing:
        raise ArtifactError(f"Labelled points are missing columns {missing}.")
    expected_ids = np.arange(1, len(points) + 1)
    if not np.array_equal(points["point_id"].to_numpy(), expected_ids):
        raise ArtifactError("Labelled point ids are not unique and contiguous from 1.")
    if not points["class"].isin([0, 1]).all():
        raise ArtifactError(f"Labels must be 0 or 1, found {sorted(points['class'].unique())}.")
    if points.geometry.isna().any() or not (points.geometry.geom_type == "Point").all():
        raise ArtifactError("Every labelled point must have exactly one point geometry.")
