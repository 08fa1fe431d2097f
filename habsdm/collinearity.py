"""Greedy removal of highly correlated predictors.

The pair with the highest absolute Pearson correlation is found. If it exceeds the
threshold, the member with the higher variance inflation factor is dropped and the
search repeats on the remaining predictors.
"""

import logging
import math
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from statsmodels.stats.outliers_influence import variance_inflation_factor
from statsmodels.tools.tools import add_constant

from habsdm.errors import CollinearityConvergenceError

logger = logging.getLogger(__name__)

REPORT_COLUMNS = ["iteration", "dropped", "kept", "correlation", "dropped_vif", "kept_vif"]
VIF_TOLERANCE = 1e-9


@dataclass
class CollinearityResult:
    selected: List[str]
    report: pd.DataFrame
    vifs: Dict[str, float] = field(default_factory=dict)

    @property
    def dropped(self) -> List[str]:
        return self.report["dropped"].tolist()


def correlation_matrix(data: pd.DataFrame) -> pd.DataFrame:
    """Absolute Pearson correlations. Undefined correlations (constant columns) count as 0."""
    corr = data.corr(method="pearson").abs()
    return corr.fillna(0.0)


def compute_vifs(data: pd.DataFrame) -> Dict[str, float]:
    """Variance inflation factor of each column, with an intercept in the design matrix."""
    columns = list(data.columns)
    if len(columns) == 1:
        return {columns[0]: 1.0}
    exog = add_constant(data.to_numpy(dtype=float), has_constant="add")
    vifs = {}
    with np.errstate(divide="ignore", invalid="ignore"):
        for i, name in enumerate(columns):
            vif = float(variance_inflation_factor(exog, i + 1))
            vifs[name] = math.inf if math.isnan(vif) else vif
    return vifs


def most_correlated_pair(corr: pd.DataFrame) -> Tuple[Optional[Tuple[str, str]], float]:
    """Pair with the highest absolute correlation. Ties go to the lexicographically smallest pair."""
    best_pair = None
    best_corr = -1.0
    for a, b in combinations(sorted(corr.columns), 2):
        value = float(corr.loc[a, b])
        if value > best_corr:
            best_pair, best_corr = (a, b), value
    return best_pair, best_corr


def _choose_drop(
    a: str, b: str, vifs: Dict[str, float], corr: pd.DataFrame
) -> Tuple[str, str]:
    """Return (dropped, kept) for a correlated pair."""
    vif_a, vif_b = vifs[a], vifs[b]
    if not math.isclose(vif_a, vif_b, rel_tol=VIF_TOLERANCE):
        return (a, b) if vif_a > vif_b else (b, a)

    others = [c for c in corr.columns if c not in (a, b)]
    if others:
        mean_a = float(corr.loc[a, others].mean())
        mean_b = float(corr.loc[b, others].mean())
        if not math.isclose(mean_a, mean_b, rel_tol=VIF_TOLERANCE, abs_tol=1e-12):
            return (a, b) if mean_a > mean_b else (b, a)

    return (max(a, b), min(a, b))


def reduce_collinearity(
    table: pd.DataFrame,
    predictors: Sequence[str],
    threshold: float = 0.7,
    max_iterations: Optional[int] = None,
) -> CollinearityResult:
    """
    Drop predictors until no pair has an absolute correlation above ``threshold``.

    Rows with a missing value in any predictor are ignored. The outcome does not
    depend on the order of ``predictors``.

    Args:
        table: Feature table.
        predictors: Candidate predictor columns.
        threshold: Maximum allowed absolute pairwise correlation.
        max_iterations: Upper bound on removal rounds. Defaults to the number of predictors.

    Returns:
        CollinearityResult with the surviving predictors (sorted), one report row per
        dropped predictor and the final VIFs.

    Raises:
        CollinearityConvergenceError: If correlated pairs remain after ``max_iterations`` rounds.
    """
    if not 0 < threshold <= 1:
        raise ValueError(f"threshold must be in (0, 1], got {threshold}")
    if len(set(predictors)) != len(predictors):
        raise ValueError(f"Duplicate predictors: {list(predictors)}")
    missing = [p for p in predictors if p not in table.columns]
    if missing:
        raise KeyError(f"Predictors {missing} not in table.")

    surviving = sorted(predictors)
    data = table[surviving].dropna()
    n_ignored = len(table) - len(data)
    if n_ignored:
        logger.info(f"Ignoring {n_ignored} rows with missing values for the correlation analysis")
    if len(data) < 2 and len(surviving) > 1:
        raise ValueError(f"Need at least two complete rows to compute correlations, got {len(data)}.")

    max_iterations = len(surviving) if max_iterations is None else max_iterations
    drops = []

    for iteration in range(1, max_iterations + 1):
        if len(surviving) < 2:
            break
        corr = correlation_matrix(data[surviving])
        pair, value = most_correlated_pair(corr)
        if value <= threshold:
            break

        vifs = compute_vifs(data[surviving])
        dropped, kept = _choose_drop(pair[0], pair[1], vifs, corr)
        logger.info(
            f"Dropping '{dropped}' (VIF {vifs[dropped]:.2f}), correlated with "
            f"'{kept}' (VIF {vifs[kept]:.2f}) at |r| = {value:.3f}"
        )
        drops.append(
            {
                "iteration": iteration,
                "dropped": dropped,
                "kept": kept,
                "correlation": value,
                "dropped_vif": vifs[dropped],
                "kept_vif": vifs[kept],
            }
        )
        surviving.remove(dropped)
    else:
        if len(surviving) > 1:
            _, value = most_correlated_pair(correlation_matrix(data[surviving]))
            if value > threshold:
                raise CollinearityConvergenceError(
                    f"Predictors still correlated at |r| = {value:.3f} after {max_iterations} rounds."
                )

    report = pd.DataFrame(drops, columns=REPORT_COLUMNS)
    vifs = compute_vifs(data[surviving]) if surviving else {}
    logger.info(f"Kept {len(surviving)} of {len(predictors)} predictors: {surviving}")
    return CollinearityResult(selected=surviving, report=report, vifs=vifs)
