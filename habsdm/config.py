"""Pipeline configuration.

A single :class:`PipelineConfig` is loaded from YAML and passed explicitly to
every stage. Nothing in the package reads global state for the random seed or
the working directory.
"""

import logging
from enum import StrEnum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pyhere import here

logger = logging.getLogger(__name__)


def default_config_path() -> Path:
    return Path(here(".")) / "config" / "default.yaml"


class ModelKind(StrEnum):
    MAXENT = "maxent"
    LOGISTIC = "logistic"


class OccurrenceSettings(BaseModel):
    """Query options for the GBIF occurrence search."""
    model_config = ConfigDict(extra="forbid")

    limit: int = Field(2000, gt=0)
    page_size: int = Field(300, gt=0, le=300)
    country: Optional[str] = None
    year: Optional[str] = None
    basis_of_record: Optional[str] = None


class EnvironmentSettings(BaseModel):
    """Which WorldClim layers to fetch and where to cache them."""
    model_config = ConfigDict(extra="forbid")

    iso3: str = "GBR"
    resolution: str = "30s"
    layers: List[str] = Field(
        default_factory=lambda: ["bio_1", "bio_4", "bio_5", "bio_6", "bio_12", "bio_15"]
    )
    url_template: str = (
        "https://geodata.ucdavis.edu/climate/worldclim/2_1/tiles/iso/"
        "{iso3}_wc2.1_{resolution}_{variable}.tif"
    )
    cache_folder: Optional[Path] = None

    @field_validator("layers")
    @classmethod
    def _layers_unique(cls, layers: List[str]) -> List[str]:
        if not layers:
            raise ValueError("At least one environmental layer is required.")
        if len(set(layers)) != len(layers):
            raise ValueError(f"Duplicate environmental layers: {layers}")
        return layers


class MaxentSettings(BaseModel):
    """Parameters passed through to ``elapid.MaxentModel``."""
    model_config = ConfigDict(extra="forbid")

    feature_types: List[str] = Field(default_factory=lambda: ["linear", "hinge", "product"])
    beta_multiplier: float = 1.5
    beta_lqp: float = 1.0
    beta_hinge: float = 1.0
    beta_threshold: float = 1.0
    beta_categorical: float = 1.0
    n_hinge_features: int = 10
    n_threshold_features: int = 10
    clamp: bool = True
    convergence_tolerance: float = 1e-5
    class_weights: Union[str, float] = 100
    tau: float = 0.5
    transform: str = "cloglog"
    n_cpus: int = 1


class ModelSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: ModelKind = ModelKind.MAXENT
    maxent: MaxentSettings = Field(default_factory=MaxentSettings)
    logistic_c: float = Field(1.0, gt=0)


class PipelineConfig(BaseModel):
    """Everything a pipeline run depends on."""
    model_config = ConfigDict(extra="forbid")

    species: str
    data_dir: Path = Path("data")
    random_seed: int = 42
    force: bool = False
    occurrence: OccurrenceSettings = Field(default_factory=OccurrenceSettings)
    environment: EnvironmentSettings = Field(default_factory=EnvironmentSettings)
    hull_buffer: float = Field(0.0, ge=0)
    correlation_threshold: float = Field(0.7, gt=0, le=1)
    test_size: float = Field(0.2, gt=0, lt=1)
    model: ModelSettings = Field(default_factory=ModelSettings)

    @property
    def climate_cache_folder(self) -> Path:
        if self.environment.cache_folder is not None:
            return self.environment.cache_folder
        return self.data_dir / "climate_cache"

    def stage_params(self, *sections: str) -> Dict[str, Any]:
        """JSON-friendly view of the named config sections, used for cache keys."""
        dumped = self.model_dump(mode="json")
        return {section: dumped[section] for section in sections}


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> PipelineConfig:
    """Loads the YAML configuration file and applies keyword overrides."""
    config_path = Path(config_path) if config_path is not None else default_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with open(config_path, "r") as f:
        raw = yaml.safe_load(f) or {}
    raw.update({k: v for k, v in overrides.items() if v is not None})
    config = PipelineConfig.model_validate(raw)
    logger.info(f"Loaded config for '{config.species}' from {config_path}")
    return config
