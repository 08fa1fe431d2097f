"""End-to-end pipeline: occurrences to an evaluated habitat suitability model.

Stages run strictly in order. Each one goes through :class:`StageCache`, so a
stage is only recomputed when its parameters, or the result of a stage it
consumes, changed since the artifacts on disk were written.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
import xarray as xr

from habsdm.cache import StageCache
from habsdm.collinearity import REPORT_COLUMNS, CollinearityResult, reduce_collinearity
from habsdm.config import PipelineConfig
from habsdm.data.climate import fetch_environmental_layers
from habsdm.errors import ArtifactError
from habsdm.features import extract_features
from habsdm.models.base import Scorer
from habsdm.models.evaluation import (
    EvaluationResult,
    evaluate_scorer,
    load_evaluation_results,
    save_evaluation_results,
    stratified_split,
)
from habsdm.models.maxent import get_trainer
from habsdm.models.prediction import load_prediction_raster, predict_suitability, save_prediction_raster
from habsdm.models.training import fit_model, load_trained_model, save_trained_model
from habsdm.occurrence.cleaning import PRESENCE_COLUMNS, to_presence_points
from habsdm.occurrence.gbif import search_occurrences
from habsdm.occurrence.points import LABELLED_COLUMNS, merge_labelled_points, validate_labelled_points
from habsdm.occurrence.sampling import generate_pseudo_absences
from habsdm.raster.clip import clip_stack, study_area_hull
from habsdm.raster.io import read_stack, write_stack
from habsdm.utils.io import check_columns, read_json, read_points, read_table, write_json, write_points, write_table
from habsdm.viz.model_evaluation import plot_roc_curve, plot_suitability_map

logger = logging.getLogger(__name__)

# Artifact file names, relative to the data directory
PRESENCE_FILE = "presence_points.geojson"
ENV_LAYERS_FILE = "env_layers.tif"
STUDY_AREA_FILE = "study_area.geojson"
ENV_STACK_FILE = "env_stack.tif"
BACKGROUND_FILE = "background_points.geojson"
LABELLED_FILE = "labelled_points.geojson"
FEATURES_FILE = "features.parquet"
COLLINEARITY_REPORT_FILE = "collinearity_report.csv"
SELECTED_PREDICTORS_FILE = "selected_predictors.json"
MODEL_FILE = "model.pkl"
MODEL_FEATURES_FILE = "model_features.json"
EVALUATION_FILE = "evaluation.json"
TEST_PREDICTIONS_FILE = "test_predictions.csv"
SUITABILITY_FILE = "suitability.tif"
ROC_FIGURE_FILE = "roc_curve.png"
SUITABILITY_FIGURE_FILE = "suitability.png"

OccurrenceSearch = Callable[..., Dict[str, Any]]
LayerLoader = Callable[..., xr.Dataset]


@dataclass
class PipelineResult:
    presence: gpd.GeoDataFrame
    study_area: gpd.GeoDataFrame
    stack: xr.Dataset
    background: gpd.GeoDataFrame
    labelled: gpd.GeoDataFrame
    features: gpd.GeoDataFrame
    collinearity: CollinearityResult
    scorer: Scorer
    evaluation: EvaluationResult
    test_predictions: pd.DataFrame
    suitability: xr.DataArray
    stage_keys: Dict[str, str]


def _save_collinearity(result: CollinearityResult, cache: StageCache) -> None:
    result.report.to_csv(cache.path(COLLINEARITY_REPORT_FILE), index=False)
    write_json({"selected": result.selected, "vifs": result.vifs}, cache.path(SELECTED_PREDICTORS_FILE))


def _load_collinearity(cache: StageCache, predictors: List[str]) -> CollinearityResult:
    report = pd.read_csv(cache.path(COLLINEARITY_REPORT_FILE))
    check_columns(report, REPORT_COLUMNS, cache.path(COLLINEARITY_REPORT_FILE))
    saved = read_json(cache.path(SELECTED_PREDICTORS_FILE))
    selected = saved.get("selected", [])
    unknown = [name for name in selected if name not in predictors]
    if not selected or unknown:
        raise ArtifactError(
            f"{cache.path(SELECTED_PREDICTORS_FILE)} lists predictors {selected}, "
            f"which do not match the stack layers {predictors}."
        )
    return CollinearityResult(selected=selected, report=report, vifs=saved.get("vifs", {}))


def _load_background(cache: StageCache, n_presence: int) -> gpd.GeoDataFrame:
    background = read_points(cache.path(BACKGROUND_FILE), required_columns=["class"])
    if len(background) != n_presence:
        raise ArtifactError(
            f"{cache.path(BACKGROUND_FILE)} holds {len(background)} points, expected {n_presence}."
        )
    return background


def _load_labelled(cache: StageCache) -> gpd.GeoDataFrame:
    labelled = read_points(cache.path(LABELLED_FILE), required_columns=LABELLED_COLUMNS)
    validate_labelled_points(labelled)
    return labelled


def _clip(
    presence: gpd.GeoDataFrame, layers: xr.Dataset, buffer: float
) -> Tuple[gpd.GeoDataFrame, xr.Dataset]:
    hull = study_area_hull(presence, buffer=buffer)
    return hull, clip_stack(layers, hull)


def _save_clip(result: Tuple[gpd.GeoDataFrame, xr.Dataset], cache: StageCache) -> None:
    hull, stack = result
    hull.to_file(cache.path(STUDY_AREA_FILE), driver="GeoJSON")
    write_stack(stack, cache.path(ENV_STACK_FILE))


def _make_figures(
    cache: StageCache,
    predictions: pd.DataFrame,
    evaluation: EvaluationResult,
    suitability: xr.DataArray,
    presence: gpd.GeoDataFrame,
    species: str,
) -> List[str]:
    plot_roc_curve(
        predictions["class"].to_numpy(),
        predictions["score"].to_numpy(),
        cache.path(ROC_FIGURE_FILE),
        threshold=evaluation.threshold,
        title=f"{species}: test ROC curve",
    )
    plot_suitability_map(
        suitability,
        cache.path(SUITABILITY_FIGURE_FILE),
        presence=presence,
        title=f"{species}: habitat suitability",
    )
    return [ROC_FIGURE_FILE, SUITABILITY_FIGURE_FILE]


def run_pipeline(
    config: PipelineConfig,
    occurrence_search: Optional[OccurrenceSearch] = None,
    layer_loader: Optional[LayerLoader] = None,
) -> PipelineResult:
    """
    Run every stage, reusing cached artifacts where they are still current.

    Args:
        config: Pipeline configuration.
        occurrence_search: Replacement for ``pygbif.occurrences.search``.
        layer_loader: Replacement for :func:`fetch_environmental_layers`, called with
            the environment settings and the climate cache folder.

    Returns:
        PipelineResult holding every stage output.
    """
    logger.info(f"Running pipeline for '{config.species}' in {config.data_dir} (force={config.force})")
    cache = StageCache(config.data_dir, force=config.force)
    layer_loader = layer_loader or fetch_environmental_layers
    layers_expected = list(config.environment.layers)

    presence = cache.run(
        "occurrences",
        params=config.stage_params("species", "occurrence"),
        artifacts=[PRESENCE_FILE],
        compute=lambda: to_presence_points(
            search_occurrences(config.species, config.occurrence, search=occurrence_search)
        ),
        save=lambda gdf: write_points(gdf, cache.path(PRESENCE_FILE)),
        load=lambda: read_points(cache.path(PRESENCE_FILE), required_columns=PRESENCE_COLUMNS),
    )
    logger.info(f"{len(presence)} presence points")

    env_layers = cache.run(
        "environment",
        params=config.stage_params("environment"),
        artifacts=[ENV_LAYERS_FILE],
        compute=lambda: layer_loader(config.environment, config.climate_cache_folder),
        save=lambda stack: write_stack(stack, cache.path(ENV_LAYERS_FILE)),
        load=lambda: read_stack(cache.path(ENV_LAYERS_FILE), expected_layers=layers_expected),
        upstream=[],
    )

    study_area, stack = cache.run(
        "clip",
        params=config.stage_params("hull_buffer"),
        artifacts=[STUDY_AREA_FILE, ENV_STACK_FILE],
        compute=lambda: _clip(presence, env_layers, config.hull_buffer),
        save=lambda result: _save_clip(result, cache),
        load=lambda: (
            gpd.read_file(cache.path(STUDY_AREA_FILE)),
            read_stack(cache.path(ENV_STACK_FILE), expected_layers=layers_expected),
        ),
        upstream=["occurrences", "environment"],
    )

    background = cache.run(
        "background",
        params=config.stage_params("random_seed"),
        artifacts=[BACKGROUND_FILE],
        compute=lambda: generate_pseudo_absences(
            stack, presence, np.random.default_rng(config.random_seed)
        ),
        save=lambda gdf: write_points(gdf, cache.path(BACKGROUND_FILE)),
        load=lambda: _load_background(cache, len(presence)),
        upstream=["occurrences", "clip"],
    )

    labelled = cache.run(
        "labelled_points",
        params={},
        artifacts=[LABELLED_FILE],
        compute=lambda: merge_labelled_points(presence, background),
        save=lambda gdf: write_points(gdf, cache.path(LABELLED_FILE)),
        load=lambda: _load_labelled(cache),
        upstream=["occurrences", "background"],
    )

    features = cache.run(
        "features",
        params={},
        artifacts=[FEATURES_FILE],
        compute=lambda: extract_features(stack, labelled, predictors=layers_expected),
        save=lambda gdf: write_table(gdf, cache.path(FEATURES_FILE)),
        load=lambda: read_table(
            cache.path(FEATURES_FILE),
            required_columns=["point_id", "class", "longitude", "latitude"] + layers_expected,
        ),
        upstream=["labelled_points", "clip"],
    )

    collinearity = cache.run(
        "collinearity",
        params=config.stage_params("correlation_threshold"),
        artifacts=[COLLINEARITY_REPORT_FILE, SELECTED_PREDICTORS_FILE],
        compute=lambda: reduce_collinearity(
            features, layers_expected, threshold=config.correlation_threshold
        ),
        save=lambda result: _save_collinearity(result, cache),
        load=lambda: _load_collinearity(cache, layers_expected),
        upstream=["features"],
    )
    selected = collinearity.selected

    train, test = stratified_split(features, test_size=config.test_size, seed=config.random_seed)

    scorer = cache.run(
        "model",
        params=config.stage_params("model", "random_seed", "test_size"),
        artifacts=[MODEL_FILE, MODEL_FEATURES_FILE],
        compute=lambda: fit_model(get_trainer(config.model, seed=config.random_seed), train, selected),
        save=lambda model: save_trained_model(
            model, selected, cache.path(MODEL_FILE), cache.path(MODEL_FEATURES_FILE)
        ),
        load=lambda: load_trained_model(
            cache.path(MODEL_FILE), cache.path(MODEL_FEATURES_FILE), selected
        ),
        upstream=["features", "collinearity"],
    )

    evaluation, test_predictions = cache.run(
        "evaluation",
        params=config.stage_params("random_seed", "test_size"),
        artifacts=[EVALUATION_FILE, TEST_PREDICTIONS_FILE],
        compute=lambda: evaluate_scorer(scorer, test, selected),
        save=lambda result: save_evaluation_results(
            result[0], result[1], cache.path(EVALUATION_FILE), cache.path(TEST_PREDICTIONS_FILE)
        ),
        load=lambda: load_evaluation_results(
            cache.path(EVALUATION_FILE), cache.path(TEST_PREDICTIONS_FILE)
        ),
        upstream=["model"],
    )

    suitability = cache.run(
        "suitability",
        params={},
        artifacts=[SUITABILITY_FILE],
        compute=lambda: predict_suitability(scorer, stack, selected),
        save=lambda surface: save_prediction_raster(surface, cache.path(SUITABILITY_FILE)),
        load=lambda: load_prediction_raster(cache.path(SUITABILITY_FILE)),
        upstream=["model", "clip"],
    )

    cache.run(
        "figures",
        params=config.stage_params("species"),
        artifacts=[ROC_FIGURE_FILE, SUITABILITY_FIGURE_FILE],
        compute=lambda: _make_figures(
            cache, test_predictions, evaluation, suitability, presence, config.species
        ),
        save=lambda _: None,
        load=lambda: [ROC_FIGURE_FILE, SUITABILITY_FIGURE_FILE],
        upstream=["evaluation", "suitability", "occurrences"],
    )

    logger.info(
        f"Pipeline finished: AUC {evaluation.auc:.3f} with predictors {selected}"
    )
    return PipelineResult(
        presence=presence,
        study_area=study_area,
        stack=stack,
        background=background,
        labelled=labelled,
        features=features,
        collinearity=collinearity,
        scorer=scorer,
        evaluation=evaluation,
        test_predictions=test_predictions,
        suitability=suitability,
        stage_keys=dict(cache.keys),
    )
