from typing import List

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin


class FeatureSubsetter(BaseEstimator, TransformerMixin):
    """
    Selects the model's predictor columns from a feature table, in a fixed order.
    Keeps the predictor names on the fitted pipeline so they survive pickling.
    """
    def __init__(self, feature_names: List[str]):
        self.feature_names = feature_names

    def fit(self, X, y=None):
        return self

    def transform(self, X):
        if isinstance(X, pd.DataFrame):
            missing = [name for name in self.feature_names if name not in X.columns]
            if missing:
                raise KeyError(f"Feature table is missing predictors {missing}")
            return X[self.feature_names]
        X = np.asarray(X)
        if X.ndim != 2 or X.shape[1] != len(self.feature_names):
            raise ValueError(
                f"Expected an array with {len(self.feature_names)} columns, got shape {X.shape}"
            )
        return pd.DataFrame(X, columns=self.feature_names)

    def get_feature_names_out(self, input_features=None):
        return np.asarray(self.feature_names, dtype=object)
