"""Model fitting and model artifact persistence."""

import logging
from pathlib import Path
from typing import List, Sequence, Tuple, Union

import pandas as pd

from habsdm.errors import ArtifactError
from habsdm.models.base import Scorer, Trainer
from habsdm.utils.io import load_pickled_model, read_json, save_pickled_model, write_json

logger = logging.getLogger(__name__)


def prepare_training_data(
    table: pd.DataFrame,
    predictors: Sequence[str],
    class_col: str = "class",
) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Select the predictor columns and drop rows with any missing predictor value.

    Args:
        table: Feature table.
        predictors: Predictor columns to keep.
        class_col: Binary label column.

    Returns:
        Tuple of (X, y).
    """
    predictors = list(predictors)
    complete = table[predictors].notna().all(axis=1)
    n_dropped = int((~complete).sum())
    if n_dropped:
        logger.info(f"Dropping {n_dropped} of {len(table)} rows with missing predictor values")
    subset = table.loc[complete]
    X = subset[predictors].astype(float).reset_index(drop=True)
    y = subset[class_col].astype(int).reset_index(drop=True)
    return X, y


def fit_model(
    trainer: Trainer,
    table: pd.DataFrame,
    predictors: Sequence[str],
    class_col: str = "class",
) -> Scorer:
    """Fit ``trainer`` on the complete rows of ``table``."""
    X, y = prepare_training_data(table, predictors, class_col)
    classes = set(y.unique())
    if classes != {0, 1}:
        raise ValueError(f"Training data needs presence and background rows, found classes {sorted(classes)}")
    logger.info(
        f"Fitting {trainer.name} model on {len(X)} rows "
        f"({int(y.sum())} presence, {int((y == 0).sum())} background) with {len(predictors)} predictors"
    )
    scorer = trainer.fit(X, y)
    logger.info("Model fitted")
    return scorer


def save_trained_model(
    scorer: Scorer,
    feature_names: List[str],
    model_path: Union[str, Path],
    features_path: Union[str, Path],
) -> Path:
    """Saves a trained model object and its feature list."""
    model_path = save_pickled_model(scorer, model_path)
    write_json(list(feature_names), features_path)
    logger.info(f"Saved model features to: {features_path}")
    return model_path


def load_trained_model(
    model_path: Union[str, Path],
    features_path: Union[str, Path],
    expected_features: Sequence[str],
) -> Scorer:
    """Load a model saved by :func:`save_trained_model` and check its feature list."""
    saved_features = read_json(features_path)
    if saved_features != list(expected_features):
        raise ArtifactError(
            f"Saved model uses features {saved_features}, expected {list(expected_features)}. "
            "Re-run with --force to refit it."
        )
    scorer = load_pickled_model(model_path)
    if not isinstance(scorer, Scorer):
        raise ArtifactError(f"{model_path} does not hold a fitted scorer (got {type(scorer).__name__}).")
    if list(scorer.feature_names) != list(expected_features):
        raise ArtifactError(f"{model_path} was fitted on {scorer.feature_names}, expected {list(expected_features)}.")
    return scorer
