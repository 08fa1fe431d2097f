"""Training interface shared by every model family.

A :class:`Trainer` fits on a predictor table and a binary label and returns a
:class:`Scorer`. The scorer is the only thing the evaluation and prediction
stages see, so new model families only need to implement these two classes.
"""

from abc import ABC, abstractmethod
from typing import List

import numpy as np
import pandas as pd
from sklearn.pipeline import Pipeline


class Scorer(ABC):
    """Maps a feature table to suitability scores in [0, 1]."""

    feature_names: List[str]

    @abstractmethod
    def predict(self, X: pd.DataFrame) -> np.ndarray:
        ...


class Trainer(ABC):
    name: str = "base"

    @abstractmethod
    def fit(self, X: pd.DataFrame, y: pd.Series) -> Scorer:
        ...


class PipelineScorer(Scorer):
    """Scorer backed by a fitted scikit-learn pipeline with a ``predict_proba`` step."""

    def __init__(self, pipeline: Pipeline, feature_names: List[str]):
        self.pipeline = pipeline
        self.feature_names = list(feature_names)

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        if len(X) == 0:
            return np.empty(0, dtype=float)
        proba = np.asarray(self.pipeline.predict_proba(X[self.feature_names]))
        scores = proba[:, 1] if proba.ndim == 2 else proba
        return np.clip(scores.astype(float), 0.0, 1.0)

    def __repr__(self) -> str:
        steps = [name for name, _ in self.pipeline.steps]
        return f"PipelineScorer(steps={steps}, features={self.feature_names})"
