"""Parameter-keyed caching of pipeline stage artifacts.

Each stage writes its artifacts under fixed file names in the data directory.
A manifest records, per stage, a key derived from the stage parameters and the
outputs of the stages it consumed. A stage is reused only when all its artifact
files exist and its recorded key matches the key computed for this run.

The output of a stage is a digest of its key and the bytes of the artifacts it
wrote. Downstream stages are keyed on that digest, so any recomputation that
changes what an upstream stage wrote invalidates everything after it.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar, Union

from habsdm.errors import ArtifactError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MANIFEST_NAME = ".habsdm_cache.json"


def compute_cache_key(params: Dict[str, Any], upstream: Sequence[str] = ()) -> str:
    """Hash stage parameters together with the keys of upstream stages."""
    payload = json.dumps(
        {"params": params, "upstream": list(upstream)},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def artifact_digest(key: str, paths: Sequence[Path]) -> str:
    """Hash a stage key together with the contents of the files the stage wrote."""
    digest = hashlib.sha256(key.encode("utf-8"))
    for path in paths:
        digest.update(path.name.encode("utf-8"))
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(1 << 20), b""):
                digest.update(chunk)
    return digest.hexdigest()


class StageCache:
    """Tracks which stage artifacts in ``data_dir`` are current."""

    def __init__(self, data_dir: Union[str, Path], force: bool = False):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.force = force
        self.manifest_path = self.data_dir / MANIFEST_NAME
        self._manifest = self._read_manifest()
        self.keys: Dict[str, str] = {}

    def _read_manifest(self) -> Dict[str, Dict[str, Any]]:
        if not self.manifest_path.exists():
            return {}
        try:
            with open(self.manifest_path, "r") as f:
                manifest = json.load(f)
        except json.JSONDecodeError as e:
            raise ArtifactError(f"Cache manifest {self.manifest_path} is not valid JSON: {e}") from e
        if not isinstance(manifest, dict):
            raise ArtifactError(f"Cache manifest {self.manifest_path} has an unexpected layout.")
        return manifest

    def _write_manifest(self) -> None:
        with open(self.manifest_path, "w") as f:
            json.dump(self._manifest, f, indent=2, sort_keys=True)

    def path(self, name: str) -> Path:
        return self.data_dir / name

    def is_current(self, stage: str, key: str, artifacts: Sequence[str]) -> bool:
        entry = self._manifest.get(stage)
        if entry is None or entry.get("key") != key or "output" not in entry:
            return False
        return all(self.path(name).exists() for name in artifacts)

    def run(
        self,
        stage: str,
        params: Dict[str, Any],
        artifacts: List[str],
        compute: Callable[[], T],
        save: Callable[[T], None],
        load: Callable[[], T],
        upstream: Sequence[str] = (),
    ) -> T:
        """Return the stage result, computing and saving it only when stale.

        Args:
            stage: Stage name, used as the manifest entry.
            params: JSON-serialisable parameters that determine the result.
            artifacts: File names (relative to ``data_dir``) the stage writes.
            compute: Produces the result from scratch.
            save: Persists a computed result to the artifact files.
            load: Reads the result back from the artifact files.
            upstream: Names of stages whose results this stage consumed.

        Returns:
            The stage result. ``self.keys[stage]`` is set to the stage output digest.
        """
        missing = [name for name in upstream if name not in self.keys]
        if missing:
            raise KeyError(f"Stage '{stage}' depends on stages that have not run: {missing}")
        key = compute_cache_key(params, [self.keys[name] for name in upstream])

        if not self.force and self.is_current(stage, key, artifacts):
            logger.info(f"[{stage}] reusing cached artifacts: {', '.join(artifacts)}")
            result = load()
            output = self._manifest[stage]["output"]
        else:
            logger.info(f"[{stage}] computing")
            result = compute()
            save(result)
            output = artifact_digest(key, [self.path(name) for name in artifacts])
            self._manifest[stage] = {"key": key, "output": output, "artifacts": list(artifacts)}
            self._write_manifest()
            logger.info(f"[{stage}] saved: {', '.join(artifacts)}")

        self.keys[stage] = output
        return result

    def invalidate(self, stage: Optional[str] = None) -> None:
        """Forget one stage (or every stage) so it is recomputed on the next run."""
        if stage is None:
            self._manifest = {}
        else:
            self._manifest.pop(stage, None)
        self._write_manifest()
