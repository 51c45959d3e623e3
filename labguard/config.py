"""
Detection configuration.

Settings come from a YAML file (``labguard.yaml`` in the working directory
by default) validated through pydantic models, with a few environment
overrides (also read from ``.env``):

- LABGUARD_CACHE_ROOT: where parsed labs are stored
- LABGUARD_WORKERS: size of the comparison thread pools
- LABGUARD_THRESHOLD: similarity threshold for flagging
"""
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .costs import WeightedCostModel
from .detectors import DETECTOR_NAMES, Detector, build_detector
from .errors import ConfigError
from .linter import DEFAULT_LINTER_COMMAND, Linter

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "labguard.yaml"


class Granularity(str, Enum):
    """Which entities are compared."""
    CLASS = "class"    # Whole files
    METHOD = "method"  # Functions/methods, matched one-to-one per file pair


class ErrorPolicy(str, Enum):
    """What happens when comparing against one lab fails."""
    CONTINUE = "continue"    # Record the failure, keep the other labs
    FAIL_FAST = "fail_fast"  # Cancel remaining work and raise


# Length bucketing for candidate pruning
class GroupingConfig(BaseModel):
    min_length: int = 0                                  # Lower edge of bucket 0
    step: int = Field(500, gt=0)                         # Bucket width, normalized chars
    max_length_delta: int | None = Field(None, ge=0)     # Absolute cutoff, None = off


class LinterConfig(BaseModel):
    enabled: bool = True
    command: list[str] = Field(default_factory=lambda: list(DEFAULT_LINTER_COMMAND))
    timeout: float = Field(30.0, gt=0)


class DetectionConfig(BaseModel):
    # Detection tuning
    threshold: float = Field(0.7, ge=0.0, le=1.0)        # Similarity above which a pair is flagged
    granularity: Granularity = Granularity.CLASS
    detector: str = "tree"                               # tree | tokens | metrics | patterns | dataflow | ensemble
    label_costs: dict[str, float] = Field(default_factory=dict)  # Base cost overrides per AST label
    max_subproblems: int | None = Field(25_000_000, gt=0)        # Max node pairs (|A| * |B|) for one tree comparison

    # Pruning
    class_grouping: GroupingConfig = Field(default_factory=lambda: GroupingConfig(step=500))
    method_grouping: GroupingConfig = Field(default_factory=lambda: GroupingConfig(step=150))

    # Execution
    workers: int = Field(default_factory=lambda: os.cpu_count() or 4, ge=1)
    error_policy: ErrorPolicy = ErrorPolicy.CONTINUE

    # I/O
    cache_root: Path = Path("lab_cache")
    source_suffixes: list[str] = Field(default_factory=lambda: [".py"])
    linter: LinterConfig = Field(default_factory=LinterConfig)

    @field_validator("detector")
    @classmethod
    def _known_detector(cls, value: str) -> str:
        if value not in DETECTOR_NAMES:
            raise ValueError(f"unknown detector {value!r}, expected one of {', '.join(DETECTOR_NAMES)}")
        return value

    @field_validator("label_costs")
    @classmethod
    def _non_negative_costs(cls, value: dict[str, float]) -> dict[str, float]:
        negative = [label for label, cost in value.items() if cost < 0]
        if negative:
            raise ValueError(f"label costs must be non-negative: {', '.join(sorted(negative))}")
        return value

    def build_detector(self) -> Detector:
        return build_detector(
            self.detector,
            WeightedCostModel(label_costs=self.label_costs),
            self.max_subproblems,
        )

    def build_linter(self) -> Linter:
        return Linter(
            command=self.linter.command,
            timeout=self.linter.timeout,
            enabled=self.linter.enabled,
        )


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if os.getenv("LABGUARD_CACHE_ROOT"):
        overrides["cache_root"] = os.getenv("LABGUARD_CACHE_ROOT")
    if os.getenv("LABGUARD_WORKERS"):
        overrides["workers"] = os.getenv("LABGUARD_WORKERS")
    if os.getenv("LABGUARD_THRESHOLD"):
        overrides["threshold"] = os.getenv("LABGUARD_THRESHOLD")
    return overrides


def load_config(path: str | Path | None = None, **overrides: Any) -> DetectionConfig:
    """
    Load and validate configuration.

    Precedence, lowest first: defaults, YAML file, environment, ``overrides``.

    Args:
        path: YAML file; None looks for labguard.yaml in the working directory
        overrides: Explicit values (e.g. from command-line options); None values are ignored

    Returns:
        Validated DetectionConfig

    Raises:
        ConfigError: if the file is missing (explicit path), unreadable, or invalid
    """
    load_dotenv()

    if path is None:
        path = Path(DEFAULT_CONFIG_FILE)
        if not path.exists():
            path = None
    elif not Path(path).is_file():
        raise ConfigError(f"Config file not found: {path}")

    data: dict[str, Any] = {}
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Could not read config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config {path}: top level must be a mapping")
        logger.info(f"Loaded config from {path}")

    data.update(_env_overrides())
    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return DetectionConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
