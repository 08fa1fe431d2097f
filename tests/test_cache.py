import json

import pytest

from habsdm.cache import MANIFEST_NAME, StageCache, artifact_digest, compute_cache_key
from habsdm.errors import ArtifactError


class Counter:
    """A stage that writes its result to a text file and counts computations."""

    def __init__(self, cache: StageCache, name: str, value: str = "result"):
        self.cache = cache
        self.name = name
        self.value = value
        self.computed = 0

    def compute(self):
        self.computed += 1
        return self.value

    def save(self, result):
        self.cache.path(self.name).write_text(result)

    def load(self):
        return self.cache.path(self.name).read_text()

    def run(self, stage, params, upstream=()):
        return self.cache.run(
            stage, params, [self.name], self.compute, self.save, self.load, upstream=upstream
        )


def test_cache_key_depends_on_params_and_upstream():
    base = compute_cache_key({"a": 1})
    assert compute_cache_key({"a": 1}) == base
    assert compute_cache_key({"a": 2}) != base
    assert compute_cache_key({"a": 1}, ["upstream"]) != base


def test_second_run_reuses_artifact(tmp_path):
    stage = Counter(StageCache(tmp_path), "a.txt")
    assert stage.run("a", {"x": 1}) == "result"

    again = Counter(StageCache(tmp_path), "a.txt", value="other")
    assert again.run("a", {"x": 1}) == "result"
    assert again.computed == 0


def test_force_recomputes(tmp_path):
    Counter(StageCache(tmp_path), "a.txt").run("a", {"x": 1})

    forced = Counter(StageCache(tmp_path, force=True), "a.txt", value="new")
    assert forced.run("a", {"x": 1}) == "new"
    assert forced.computed == 1


def test_changed_params_recompute(tmp_path):
    Counter(StageCache(tmp_path), "a.txt").run("a", {"x": 1})

    changed = Counter(StageCache(tmp_path), "a.txt", value="new")
    assert changed.run("a", {"x": 2}) == "new"


def test_missing_artifact_recomputes(tmp_path):
    cache = StageCache(tmp_path)
    Counter(cache, "a.txt").run("a", {"x": 1})
    (tmp_path / "a.txt").unlink()

    stage = Counter(StageCache(tmp_path), "a.txt")
    stage.run("a", {"x": 1})
    assert stage.computed == 1


def test_upstream_change_invalidates_downstream(tmp_path):
    cache = StageCache(tmp_path)
    Counter(cache, "a.txt").run("a", {"x": 1})
    Counter(cache, "b.txt").run("b", {}, upstream=["a"])

    cache = StageCache(tmp_path)
    upstream = Counter(cache, "a.txt", value="changed")
    downstream = Counter(cache, "b.txt")
    upstream.run("a", {"x": 2})
    downstream.run("b", {}, upstream=["a"])

    assert upstream.computed == 1
    assert downstream.computed == 1


def test_unchanged_upstream_keeps_downstream(tmp_path):
    cache = StageCache(tmp_path)
    Counter(cache, "a.txt").run("a", {"x": 1})
    Counter(cache, "b.txt").run("b", {}, upstream=["a"])

    cache = StageCache(tmp_path)
    Counter(cache, "a.txt").run("a", {"x": 1})
    downstream = Counter(cache, "b.txt")
    downstream.run("b", {}, upstream=["a"])

    assert downstream.computed == 0


def test_upstream_must_run_first(tmp_path):
    with pytest.raises(KeyError):
        Counter(StageCache(tmp_path), "b.txt").run("b", {}, upstream=["a"])


def test_invalidate_forgets_stage(tmp_path):
    cache = StageCache(tmp_path)
    Counter(cache, "a.txt").run("a", {"x": 1})
    cache.invalidate("a")

    stage = Counter(StageCache(tmp_path), "a.txt")
    stage.run("a", {"x": 1})
    assert stage.computed == 1


def test_manifest_records_key(tmp_path):
    cache = StageCache(tmp_path)
    Counter(cache, "a.txt").run("a", {"x": 1})

    manifest = json.loads((tmp_path / MANIFEST_NAME).read_text())
    assert manifest["a"]["output"] == cache.keys["a"]
    assert manifest["a"]["key"] == compute_cache_key({"x": 1})
    assert manifest["a"]["artifacts"] == ["a.txt"]


def test_corrupt_manifest_raises(tmp_path):
    (tmp_path / MANIFEST_NAME).write_text("{not json")
    with pytest.raises(ArtifactError):
        StageCache(tmp_path)


def test_recomputed_upstream_invalidates_downstream(tmp_path):
    cache = StageCache(tmp_path)
    Counter(cache, "a.txt").run("a", {"x": 1})
    Counter(cache, "b.txt").run("b", {}, upstream=["a"])
    (tmp_path / "a.txt").unlink()

    cache = StageCache(tmp_path)
    upstream = Counter(cache, "a.txt", value="fresh data")
    downstream = Counter(cache, "b.txt")
    upstream.run("a", {"x": 1})
    downstream.run("b", {}, upstream=["a"])

    assert upstream.computed == 1
    assert downstream.computed == 1


def test_identical_recomputed_upstream_keeps_downstream(tmp_path):
    cache = StageCache(tmp_path)
    Counter(cache, "a.txt").run("a", {"x": 1})
    Counter(cache, "b.txt").run("b", {}, upstream=["a"])
    (tmp_path / "a.txt").unlink()

    cache = StageCache(tmp_path)
    upstream = Counter(cache, "a.txt")
    downstream = Counter(cache, "b.txt")
    upstream.run("a", {"x": 1})
    downstream.run("b", {}, upstream=["a"])

    assert upstream.computed == 1
    assert downstream.computed == 0


def test_manifest_without_output_digest_recomputes(tmp_path):
    cache = StageCache(tmp_path)
    Counter(cache, "a.txt").run("a", {"x": 1})
    manifest = json.loads((tmp_path / MANIFEST_NAME).read_text())
    del manifest["a"]["output"]
    (tmp_path / MANIFEST_NAME).write_text(json.dumps(manifest))

    stage = Counter(StageCache(tmp_path), "a.txt")
    stage.run("a", {"x": 1})
    assert stage.computed == 1


def test_artifact_digest_tracks_contents(tmp_path):
    path = tmp_path / "a.txt"
    path.write_text("one")
    first = artifact_digest("key", [path])
    assert artifact_digest("key", [path]) == first
    assert artifact_digest("other", [path]) != first
    path.write_text("two")
    assert artifact_digest("key", [path]) != first
