"""Pytest setup: put ``src`` on the import path and share fixtures.

Lets ``import fastforest`` work whether or not the package was installed.
"""

from __future__ import annotations

import os
import sys

import numpy as np
import pandas as pd
import pytest


def _add_src_to_path() -> None:
    root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    src = os.path.join(root, "src")
    if src not in sys.path:
        sys.path.insert(0, src)


_add_src_to_path()

from fastforest.config import ForestRegressionConfig  # noqa: E402
from fastforest.entrypoint import train_regression  # noqa: E402
from fastforest.predictor import ForestRegressionPredictor  # noqa: E402

FEATURES = ["x0", "x1", "x2"]


@pytest.fixture
def regression_frame() -> pd.DataFrame:
    """Noisy linear target over three features."""
    rng = np.random.default_rng(42)
    n_samples = 200

    x0 = rng.uniform(0.0, 10.0, n_samples)
    x1 = rng.normal(size=n_samples)
    x2 = rng.uniform(-1.0, 1.0, n_samples)
    label = 2.0 * x0 + x1 + rng.normal(scale=0.5, size=n_samples)

    return pd.DataFrame({"x0": x0, "x1": x1, "x2": x2, "Label": label})


@pytest.fixture
def small_config() -> ForestRegressionConfig:
    return ForestRegressionConfig(
        num_trees=8,
        min_samples_leaf=5,
        quantile_sample_count=20,
        random_state=7,
    )


@pytest.fixture
def trained_predictor(
    regression_frame: pd.DataFrame, small_config: ForestRegressionConfig
) -> ForestRegressionPredictor:
    output = train_regression(
        small_config, regression_frame, label_column="Label", feature_columns=FEATURES
    )
    return output.predictor

