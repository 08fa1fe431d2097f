"""Model output visualization functionality."""

import logging
from pathlib import Path
from typing import Optional

import matplotlib

matplotlib.use("Agg")

import geopandas as gpd
import matplotlib.pyplot as plt
import numpy as np
import xarray as xr
from sklearn.metrics import auc, roc_curve

logger = logging.getLogger(__name__)


def plot_roc_curve(
    y_true: np.ndarray,
    y_pred_proba: np.ndarray,
    output_path: Path,
    threshold: Optional[float] = None,
    title: Optional[str] = None
) -> Path:
    """Plot ROC curve.

    Args:
        y_true: True labels
        y_pred_proba: Predicted scores
        output_path: Path to save plot
        threshold: Decision threshold to mark on the curve
        title: Optional plot title
    """
    fpr, tpr, _ = roc_curve(y_true, y_pred_proba)
    roc_auc = auc(fpr, tpr)

    fig, ax = plt.subplots(figsize=(8, 8))
    try:
        ax.plot(fpr, tpr, color='darkorange', lw=2, label=f'ROC curve (AUC = {roc_auc:.2f})')
        ax.plot([0, 1], [0, 1], color='navy', lw=2, linestyle='--')
        if threshold is not None:
            predicted = np.asarray(y_pred_proba) >= threshold
            y_true = np.asarray(y_true)
            point_tpr = predicted[y_true == 1].mean()
            point_fpr = predicted[y_true == 0].mean()
            ax.scatter([point_fpr], [point_tpr], color='black', zorder=3,
                       label=f'Threshold = {threshold:.3f}')
        ax.set_xlim([0.0, 1.0])
        ax.set_ylim([0.0, 1.05])
        ax.set_xlabel('False Positive Rate')
        ax.set_ylabel('True Positive Rate')
        ax.set_title(title or 'Receiver Operating Characteristic (ROC) Curve')
        ax.legend(loc="lower right")
        fig.tight_layout()

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=150, bbox_inches='tight')
    finally:
        plt.close(fig)

    logger.info(f"Saved ROC curve plot to: {output_path}")
    return output_path


def plot_suitability_map(
    suitability: xr.DataArray,
    output_path: Path,
    presence: Optional[gpd.GeoDataFrame] = None,
    title: Optional[str] = None,
    cmap: str = 'viridis'
) -> Path:
    """Plot the suitability surface with presence points overlaid."""
    fig, ax = plt.subplots(figsize=(10, 10))
    try:
        suitability.plot(ax=ax, cmap=cmap, vmin=0, vmax=1,
                         cbar_kwargs={'label': 'Suitability'})
        if presence is not None and len(presence):
            if suitability.rio.crs is not None and presence.crs != suitability.rio.crs:
                presence = presence.to_crs(suitability.rio.crs)
            presence.plot(ax=ax, color='red', markersize=6, label='Presence')
            ax.legend(loc='upper right')
        ax.set_title(title or 'Habitat suitability')
        ax.set_axis_off()

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=150, bbox_inches='tight')
    finally:
        plt.close(fig)

    logger.info(f"Saved suitability map to: {output_path}")
    return output_path
