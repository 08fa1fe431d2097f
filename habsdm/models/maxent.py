# Model families behind the Trainer interface: elapid MaxEnt and a logistic baseline.
import logging
from typing import List, Optional

import pandas as pd
from elapid.models import MaxentModel as BaseMaxentModel
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from habsdm.config import MaxentSettings, ModelKind, ModelSettings
from habsdm.models.base import PipelineScorer, Scorer, Trainer
from habsdm.models.feature_subsetter import FeatureSubsetter

logger = logging.getLogger(__name__)


class MaxentModel(BaseMaxentModel):
    """
    A wrapper around elapid.MaxentModel that can be built from the pipeline config.
    """
    @classmethod
    def from_settings(cls, settings: MaxentSettings) -> "MaxentModel":
        """
        Create a MaxentModel from MaxentSettings.
        """
        return cls(
            feature_types=list(settings.feature_types),
            tau=settings.tau,
            transform=settings.transform,  # type: ignore
            clamp=settings.clamp,
            beta_multiplier=settings.beta_multiplier,
            beta_lqp=settings.beta_lqp,
            beta_hinge=settings.beta_hinge,
            beta_threshold=settings.beta_threshold,
            beta_categorical=settings.beta_categorical,
            n_hinge_features=settings.n_hinge_features,
            n_threshold_features=settings.n_threshold_features,
            convergence_tolerance=settings.convergence_tolerance,
            class_weights=settings.class_weights,
            n_cpus=settings.n_cpus,
            use_sklearn=True,
        )


def create_maxent_pipeline(
    feature_names: List[str],
    settings: Optional[MaxentSettings] = None,
) -> Pipeline:
    """Creates a scikit-learn Pipeline for MaxEnt modeling.
    Includes feature selection (custom FeatureSubsetter), scaling, and the Elapid MaxentModel.

    Args:
        feature_names: List of feature names to be selected by FeatureSubsetter.
        settings: MaxEnt hyperparameters. Defaults to MaxentSettings().

    Returns:
        A scikit-learn Pipeline instance.
    """
    settings = settings or MaxentSettings()
    logger.info(f"Creating MaxEnt pipeline for features: {feature_names}")
    return Pipeline([
        ("feature_selection", FeatureSubsetter(feature_names=feature_names)),
        ("scaling", StandardScaler()),
        ("maxent", MaxentModel.from_settings(settings)),
    ])


def create_logistic_pipeline(feature_names: List[str], c: float = 1.0, seed: int = 42) -> Pipeline:
    logger.info(f"Creating logistic regression pipeline for features: {feature_names}")
    return Pipeline([
        ("feature_selection", FeatureSubsetter(feature_names=feature_names)),
        ("scaling", StandardScaler()),
        ("logistic", LogisticRegression(C=c, max_iter=1000, random_state=seed)),
    ])


class MaxentTrainer(Trainer):
    """Presence/background MaxEnt with cloglog output (by default)."""

    name = ModelKind.MAXENT.value

    def __init__(self, settings: Optional[MaxentSettings] = None):
        self.settings = settings or MaxentSettings()

    def fit(self, X: pd.DataFrame, y: pd.Series) -> Scorer:
        features = list(X.columns)
        pipeline = create_maxent_pipeline(features, self.settings)
        pipeline.fit(X, y)
        return PipelineScorer(pipeline, features)


class LogisticTrainer(Trainer):
    name = ModelKind.LOGISTIC.value

    def __init__(self, c: float = 1.0, seed: int = 42):
        self.c = c
        self.seed = seed

    def fit(self, X: pd.DataFrame, y: pd.Series) -> Scorer:
        features = list(X.columns)
        pipeline = create_logistic_pipeline(features, c=self.c, seed=self.seed)
        pipeline.fit(X, y)
        return PipelineScorer(pipeline, features)


def get_trainer(settings: ModelSettings, seed: int = 42) -> Trainer:
    """Trainer for the configured model kind."""
    if settings.kind == ModelKind.MAXENT:
        return MaxentTrainer(settings.maxent)
    if settings.kind == ModelKind.LOGISTIC:
        return LogisticTrainer(c=settings.logistic_c, seed=seed)
    raise ValueError(f"Unknown model kind: {settings.kind}")
