"""Training configuration for forest regression.

The configuration is a frozen dataclass built either directly or from the
``fast_forest_regression`` section of a YAML file. Values are validated
eagerly; nothing is clamped into range.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from fastforest.errors import ConfigurationError

# Largest array length the original runtime allows; used as the exclusive
# upper bound for labels when shuffling.
ARRAY_MAX_SIZE = 0x7FFFFFC7

DEFAULT_SECTION = "fast_forest_regression"


def _as_int(mapping: Mapping[str, Any], key: str, default: Any) -> int:
    raw = mapping.get(key, default)
    if isinstance(raw, bool):
        raise ConfigurationError(key, raw, "Expected an integer, got a boolean")
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ConfigurationError(key, raw, "Expected an integer")
        return int(raw)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(key, raw, "Expected an integer") from exc


def _as_float(mapping: Mapping[str, Any], key: str, default: float) -> float:
    raw = mapping.get(key, default)
    if isinstance(raw, bool):
        raise ConfigurationError(key, raw, "Expected a number, got a boolean")
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(key, raw, "Expected a number") from exc


def _as_bool(mapping: Mapping[str, Any], key: str, default: bool) -> bool:
    raw = mapping.get(key, default)
    if not isinstance(raw, bool):
        raise ConfigurationError(key, raw, "Expected true or false")
    return raw


@dataclass(frozen=True)
class ForestRegressionConfig:
    """Hyperparameters for :class:`fastforest.trainer.FastForestRegression`.

    Parameters
    ----------
    num_trees : int
        Number of trees (engine iterations). Default 100.
    shuffle_labels : bool
        Shuffle the labels on every iteration. Useful mainly when the forest
        is used as a leaf featurizer for integer-coded targets.
    shuffle_seed : int
        Seed of the label permutation generator. Default 0.
    quantile_sample_count : int
        Number of labels kept per leaf and drawn per tree when estimating
        quantiles. Default 100.
    max_depth : int or None
        Maximum tree depth. None grows until ``min_samples_leaf`` stops it.
    min_samples_leaf : int
        Minimum number of examples per leaf. Default 10.
    feature_fraction : float
        Fraction of features considered at each split. Default 0.7.
    bagging_fraction : float
        Fraction of examples drawn (without replacement) per tree. Default 0.7.
    num_threads : int
        Worker threads used for the gradient fan-out. Default 1.
    random_state : int
        Seed for bagging, split feature sampling and leaf label sampling.
    label_upper_bound : int
        Exclusive upper bound for labels when ``shuffle_labels`` is set.
    """

    num_trees: int = 100
    shuffle_labels: bool = False
    shuffle_seed: int = 0
    quantile_sample_count: int = 100
    max_depth: int | None = None
    min_samples_leaf: int = 10
    feature_fraction: float = 0.7
    bagging_fraction: float = 0.7
    num_threads: int = 1
    random_state: int = 123
    label_upper_bound: int = ARRAY_MAX_SIZE

    def __post_init__(self) -> None:
        if self.num_trees <= 0:
            raise ConfigurationError("num_trees", self.num_trees, "Must be positive")
        if self.quantile_sample_count <= 0:
            raise ConfigurationError(
                "quantile_sample_count", self.quantile_sample_count, "Must be positive"
            )
        if self.max_depth is not None and self.max_depth <= 0:
            raise ConfigurationError("max_depth", self.max_depth, "Must be positive or None")
        if self.min_samples_leaf <= 0:
            raise ConfigurationError("min_samples_leaf", self.min_samples_leaf, "Must be positive")
        if not 0.0 < self.feature_fraction <= 1.0:
            raise ConfigurationError(
                "feature_fraction", self.feature_fraction, "Must be in (0, 1]"
            )
        if not 0.0 < self.bagging_fraction <= 1.0:
            raise ConfigurationError(
                "bagging_fraction", self.bagging_fraction, "Must be in (0, 1]"
            )
        if self.num_threads <= 0:
            raise ConfigurationError("num_threads", self.num_threads, "Must be positive")
        if not 0 < self.label_upper_bound <= ARRAY_MAX_SIZE:
            raise ConfigurationError(
                "label_upper_bound",
                self.label_upper_bound,
                f"Must be in (0, {ARRAY_MAX_SIZE}]",
            )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ForestRegressionConfig":
        unknown = sorted(set(mapping) - set(cls.__dataclass_fields__))
        if unknown:
            raise ConfigurationError(unknown[0], mapping[unknown[0]], "Unknown parameter")

        max_depth = mapping.get("max_depth")

        return cls(
            num_trees=_as_int(mapping, "num_trees", 100),
            shuffle_labels=_as_bool(mapping, "shuffle_labels", False),
            shuffle_seed=_as_int(mapping, "shuffle_seed", 0),
            quantile_sample_count=_as_int(mapping, "quantile_sample_count", 100),
            max_depth=None if max_depth is None else _as_int(mapping, "max_depth", None),
            min_samples_leaf=_as_int(mapping, "min_samples_leaf", 10),
            feature_fraction=_as_float(mapping, "feature_fraction", 0.7),
            bagging_fraction=_as_float(mapping, "bagging_fraction", 0.7),
            num_threads=_as_int(mapping, "num_threads", 1),
            random_state=_as_int(mapping, "random_state", 123),
            label_upper_bound=_as_int(mapping, "label_upper_bound", ARRAY_MAX_SIZE),
        )

    def to_mapping(self) -> Dict[str, Any]:
        return asdict(self)

    def inner_args(self) -> str:
        """Canonical configuration string stored alongside a trained model."""

        return json.dumps(self.to_mapping(), sort_keys=True, separators=(",", ":"))


def load_forest_config(
    config_path: str | Path, *, section: str = DEFAULT_SECTION
) -> ForestRegressionConfig:
    """Load the forest section of a YAML file as :class:`ForestRegressionConfig`."""

    path = Path(config_path).resolve()
    with path.open("r", encoding="utf-8") as fh:
        full_cfg: Mapping[str, Any] = yaml.safe_load(fh) or {}

    try:
        forest_section = full_cfg[section]
    except KeyError as exc:
        raise KeyError(f"'{section}' section is required in {path.name}") from exc

    return ForestRegressionConfig.from_mapping(forest_section or {})
