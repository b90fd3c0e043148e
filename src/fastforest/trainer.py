"""Random-forest regression trainer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error

from fastforest.config import ForestRegressionConfig
from fastforest.dataset import (
    Dataset,
    RoleMappedData,
    check_feature_float_vector,
    check_opt_float_weight,
    check_regression_label,
    convert_data,
)
from fastforest.engine import RandomForestEngine
from fastforest.errors import IllegalStateError
from fastforest.objective import RegressionObjective
from fastforest.predictor import ForestRegressionPredictor
from fastforest.tree import TreeEnsemble

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegressionMetrics:
    """Fit of a trained forest on its own training data."""

    l1: float
    l2: float
    rmse: float
    num_examples: int

    def to_dict(self) -> Dict[str, float]:
        return {
            "l1": self.l1,
            "l2": self.l2,
            "rmse": self.rmse,
            "num_examples": self.num_examples,
        }


class RegressionTest:
    """Scores an ensemble against the (unshuffled) training labels."""

    def __init__(self, dataset: Dataset):
        self.dataset = dataset

    def evaluate(self, ensemble: TreeEnsemble) -> RegressionMetrics:
        features = self.dataset.features
        scores = np.zeros(self.dataset.num_docs, dtype=np.float64)
        for tree in ensemble.trees:
            scores += tree.estimator.predict(features)
        scores /= ensemble.num_trees

        labels = self.dataset.labels
        weights = self.dataset.weights
        l2 = float(mean_squared_error(labels, scores, sample_weight=weights))
        return RegressionMetrics(
            l1=float(mean_absolute_error(labels, scores, sample_weight=weights)),
            l2=l2,
            rmse=float(np.sqrt(l2)),
            num_examples=self.dataset.num_docs,
        )


class FastForestRegression:
    """Trains a random forest to fit target values using least-squares.

    Usage::

        trainer = FastForestRegression(ForestRegressionConfig(num_trees=50))
        trainer.train(RoleMappedData(frame, label="y", features=["x0", "x1"]))
        predictor = trainer.create_predictor()
    """

    LOAD_NAME = "FastForestRegression"
    USER_NAME = "Fast Forest Regression"
    SHORT_NAME = "ffr"

    need_calibration = False
    prediction_kind = "regression"

    def __init__(self, config: ForestRegressionConfig | None = None):
        self.config = config if config is not None else ForestRegressionConfig()
        self.feature_count = 0
        self.trained_ensemble: TreeEnsemble | None = None
        self.training_metrics: RegressionMetrics | None = None

    def _construct_objective(self, dataset: Dataset) -> RegressionObjective:
        return RegressionObjective.create(dataset, self.config)

    def train(self, data: RoleMappedData) -> "FastForestRegression":
        """Validate column roles, grow the forest and score the training fit.

        Raises
        ------
        SchemaMismatchError
            If the label, feature or weight role is missing or invalid.
        ConfigurationError
            If the labels are unusable for the selected objective variant.
        """
        # A failed run must not leave a previous model behind.
        self.trained_ensemble = None
        self.training_metrics = None
        self.feature_count = 0

        check_regression_label(data)
        check_feature_float_vector(data)
        check_opt_float_weight(data)

        dataset = convert_data(data)
        objective = self._construct_objective(dataset)
        engine = RandomForestEngine(self.config)
        ensemble = engine.fit(dataset, objective)

        self.training_metrics = RegressionTest(dataset).evaluate(ensemble)
        self.feature_count = data.feature_count
        self.trained_ensemble = ensemble
        logger.info(
            "Training fit: L1=%.6f L2=%.6f RMSE=%.6f",
            self.training_metrics.l1,
            self.training_metrics.l2,
            self.training_metrics.rmse,
        )
        return self

    def create_predictor(self) -> ForestRegressionPredictor:
        if self.trained_ensemble is None:
            raise IllegalStateError("The predictor cannot be created before training is complete")
        return ForestRegressionPredictor(
            self.trained_ensemble,
            self.feature_count,
            self.config.inner_args(),
            self.config.quantile_sample_count,
        )
