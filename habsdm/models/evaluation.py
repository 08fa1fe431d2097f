"""Model evaluation on a held-out test split."""

import logging
from pathlib import Path
from typing import List, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from pydantic import BaseModel, ValidationError
from sklearn.metrics import roc_auc_score, roc_curve
from sklearn.model_selection import train_test_split

from habsdm.errors import ArtifactError
from habsdm.models.base import Scorer
from habsdm.utils.io import check_columns, read_json, write_json

logger = logging.getLogger(__name__)

PREDICTION_COLUMNS = ["point_id", "class", "score", "predicted"]


class EvaluationResult(BaseModel):
    """Test-set performance at the Youden-optimal threshold."""

    threshold: float
    tpr: float
    fnr: float
    fpr: float
    tnr: float
    auc: float
    n_test: int
    n_presence: int
    n_background: int
    predictors: List[str]


def stratified_split(
    table: pd.DataFrame,
    test_size: float = 0.2,
    seed: int = 42,
    class_col: str = "class",
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Split a feature table so both classes appear in train and test in proportion.

    Args:
        table: Feature table.
        test_size: Fraction of rows held out.
        seed: Random state for the split.
        class_col: Binary label column to stratify on.

    Returns:
        Tuple of (train, test) tables.
    """
    counts = table[class_col].value_counts()
    if set(counts.index) != {0, 1} or counts.min() < 2:
        raise ValueError(
            f"Stratified split needs at least two rows of each class, got {counts.to_dict()}"
        )
    train, test = train_test_split(
        table,
        test_size=test_size,
        random_state=seed,
        stratify=table[class_col],
    )
    logger.info(
        f"Split {len(table)} rows into {len(train)} train / {len(test)} test "
        f"({int(test[class_col].sum())} presence in test)"
    )
    return train, test


def youden_threshold(y_true: np.ndarray, scores: np.ndarray) -> float:
    """Score threshold maximising sensitivity + specificity on the ROC curve."""
    fpr, tpr, thresholds = roc_curve(y_true, scores)
    best = int(np.argmax(tpr - fpr))
    threshold = float(thresholds[best])
    if not np.isfinite(threshold):
        # The (0, 0) ROC point. Keep it as a finite threshold above every score.
        threshold = float(np.nextafter(np.max(scores), np.inf))
    return threshold


def evaluate_scorer(
    scorer: Scorer,
    test_table: pd.DataFrame,
    predictors: Sequence[str],
    class_col: str = "class",
) -> Tuple[EvaluationResult, pd.DataFrame]:
    """
    Score the test split and report classification rates.

    Points are classified as presence when ``score >= threshold``, with the
    threshold chosen by Youden's J on the test ROC curve. Rows with missing
    predictor values cannot be scored and are dropped.

    Args:
        scorer: Fitted model.
        test_table: Held-out feature table.
        predictors: Predictor columns the model was fitted on.
        class_col: Binary label column.

    Returns:
        Tuple of (EvaluationResult, per-point predictions).

    Raises:
        ValueError: If the test table lacks presence or background rows.
    """
    predictors = list(predictors)
    complete = test_table[predictors].notna().all(axis=1)
    n_dropped = int((~complete).sum())
    if n_dropped:
        logger.info(f"Dropping {n_dropped} test rows with missing predictor values")
    test = test_table.loc[complete]

    y_true = test[class_col].astype(int).to_numpy()
    n_presence = int((y_true == 1).sum())
    n_background = int((y_true == 0).sum())
    if n_presence == 0 or n_background == 0:
        raise ValueError(
            f"Test split needs both classes, got {n_presence} presence and {n_background} background rows"
        )

    scores = scorer.predict(test[predictors])
    threshold = youden_threshold(y_true, scores)
    predicted = (scores >= threshold).astype(int)

    tp = int(np.sum((y_true == 1) & (predicted == 1)))
    fn = int(np.sum((y_true == 1) & (predicted == 0)))
    fp = int(np.sum((y_true == 0) & (predicted == 1)))
    tn = int(np.sum((y_true == 0) & (predicted == 0)))

    result = EvaluationResult(
        threshold=threshold,
        tpr=tp / n_presence,
        fnr=fn / n_presence,
        fpr=fp / n_background,
        tnr=tn / n_background,
        auc=float(roc_auc_score(y_true, scores)),
        n_test=len(test),
        n_presence=n_presence,
        n_background=n_background,
        predictors=predictors,
    )
    logger.info(
        f"Test AUC {result.auc:.3f}, threshold {result.threshold:.4f}: "
        f"TPR {result.tpr:.3f}, FNR {result.fnr:.3f}, FPR {result.fpr:.3f}, TNR {result.tnr:.3f}"
    )

    point_ids = test["point_id"].to_numpy() if "point_id" in test.columns else np.arange(1, len(test) + 1)
    predictions = pd.DataFrame(
        {"point_id": point_ids, "class": y_true, "score": scores, "predicted": predicted}
    )
    return result, predictions


def save_evaluation_results(
    result: EvaluationResult,
    predictions: pd.DataFrame,
    results_path: Union[str, Path],
    predictions_path: Union[str, Path],
) -> Path:
    """Save metrics as JSON and per-point test predictions as CSV."""
    write_json(result.model_dump(mode="json"), results_path)
    Path(predictions_path).parent.mkdir(parents=True, exist_ok=True)
    predictions.to_csv(predictions_path, index=False)
    logger.info(f"Saved evaluation results to: {results_path}")
    return Path(results_path)


def load_evaluation_results(
    results_path: Union[str, Path],
    predictions_path: Union[str, Path],
) -> Tuple[EvaluationResult, pd.DataFrame]:
    try:
        result = EvaluationResult.model_validate(read_json(results_path))
    except ValidationError as e:
        raise ArtifactError(f"{results_path} does not hold evaluation results: {e}") from e
    predictions = pd.read_csv(predictions_path)
    check_columns(predictions, PREDICTION_COLUMNS, predictions_path)
    return result, predictions
