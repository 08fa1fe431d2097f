import pytest
import numpy as np

from habsdm.config import PipelineConfig
from habsdm.occurrence.points import validate_labelled_points
from habsdm.pipeline import (
    EVALUATION_FILE,
    FEATURES_FILE,
    MODEL_FILE,
    PRESENCE_FILE,
    ROC_FIGURE_FILE,
    SUITABILITY_FILE,
    run_pipeline,
)

from conftest import make_stack


@pytest.fixture
def config(tmp_path) -> PipelineConfig:
    return PipelineConfig(
        species="Myotis testus",
        data_dir=tmp_path / "data",
        hull_buffer=1.0,
        environment={"layers": ["bio_1", "bio_5", "bio_12"]},
        occurrence={"limit": 100, "page_size": 50},
    )


@pytest.fixture
def layer_loader(grid_values):
    calls = []

    def load(settings, cache_folder):
        calls.append(cache_folder)
        return make_stack({name: grid_values[name] for name in settings.layers})

    load.calls = calls
    return load


def test_full_run_writes_every_artifact(config, fake_search, layer_loader):
    result = run_pipeline(config, occurrence_search=fake_search, layer_loader=layer_loader)

    n_presence = len(result.presence)
    assert n_presence == 60
    assert len(result.background) == n_presence
    assert len(result.labelled) == 2 * n_presence
    validate_labelled_points(result.labelled)
    assert len(result.features) == len(result.labelled)

    # bio_5 is a noisy copy of bio_1, so one of them goes
    assert len(result.collinearity.selected) == 2
    assert "bio_12" in result.collinearity.selected

    ev = result.evaluation
    assert ev.tpr + ev.fnr == pytest.approx(1.0)
    assert ev.fpr + ev.tnr == pytest.approx(1.0)
    assert 0.0 <= ev.auc <= 1.0
    assert ev.n_presence > 0 and ev.n_background > 0

    values = result.suitability.values
    assert np.nanmin(values) >= 0.0 and np.nanmax(values) <= 1.0

    for name in (FEATURES_FILE, MODEL_FILE, EVALUATION_FILE, SUITABILITY_FILE, ROC_FIGURE_FILE):
        assert (config.data_dir / name).exists()


def test_second_run_reuses_cached_stages(config, fake_search, layer_loader):
    first = run_pipeline(config, occurrence_search=fake_search, layer_loader=layer_loader)
    n_search_calls = len(fake_search.calls)

    second = run_pipeline(config, occurrence_search=fake_search, layer_loader=layer_loader)

    assert len(fake_search.calls) == n_search_calls
    assert len(layer_loader.calls) == 1
    assert second.stage_keys == first.stage_keys
    assert second.evaluation == first.evaluation
    assert second.collinearity.selected == first.collinearity.selected


def test_force_recomputes_everything(config, fake_search, layer_loader):
    run_pipeline(config, occurrence_search=fake_search, layer_loader=layer_loader)
    n_search_calls = len(fake_search.calls)

    forced = config.model_copy(update={"force": True})
    run_pipeline(forced, occurrence_search=fake_search, layer_loader=layer_loader)

    assert len(fake_search.calls) > n_search_calls
    assert len(layer_loader.calls) == 2


def test_changed_threshold_only_reruns_downstream(config, fake_search, layer_loader):
    first = run_pipeline(config, occurrence_search=fake_search, layer_loader=layer_loader)
    n_search_calls = len(fake_search.calls)

    looser = config.model_copy(update={"correlation_threshold": 1.0})
    second = run_pipeline(looser, occurrence_search=fake_search, layer_loader=layer_loader)

    assert len(fake_search.calls) == n_search_calls
    assert second.stage_keys["features"] == first.stage_keys["features"]
    assert second.stage_keys["collinearity"] != first.stage_keys["collinearity"]
    assert second.stage_keys["model"] != first.stage_keys["model"]
    assert set(second.collinearity.selected) == {"bio_1", "bio_5", "bio_12"}


def test_recomputed_occurrences_rebuild_downstream_stages(config, fake_search, layer_loader, gbif_records):
    first = run_pipeline(config, occurrence_search=fake_search, layer_loader=layer_loader)

    (config.data_dir / PRESENCE_FILE).unlink()
    for record in gbif_records:
        record["decimalLongitude"] = 20.0 - record["decimalLongitude"]
    second = run_pipeline(config, occurrence_search=fake_search, layer_loader=layer_loader)

    assert not np.allclose(second.presence.geometry.x.values, first.presence.geometry.x.values)
    labelled_presence = second.labelled[second.labelled["class"] == 1]
    assert np.allclose(labelled_presence.geometry.x.values, second.presence.geometry.x.values)
    assert np.allclose(labelled_presence.geometry.y.values, second.presence.geometry.y.values)
    for stage in ("clip", "background", "labelled_points", "features", "model", "evaluation"):
        assert second.stage_keys[stage] != first.stage_keys[stage]
    # the environment stage does not consume occurrences
    assert second.stage_keys["environment"] == first.stage_keys["environment"]
    assert len(layer_loader.calls) == 1
