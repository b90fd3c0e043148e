"""Training entry point: DataFrame in, regression output out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence

import pandas as pd

from fastforest.config import ForestRegressionConfig
from fastforest.dataset import RoleMappedData
from fastforest.errors import SchemaMismatchError
from fastforest.predictor import ForestRegressionPredictor
from fastforest.trainer import FastForestRegression, RegressionMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegressionOutput:
    """Trained regression model plus its training diagnostics."""

    predictor: ForestRegressionPredictor
    training_metrics: RegressionMetrics
    feature_columns: tuple[str, ...]

    def diagnostics(self) -> Dict[str, Any]:
        return {
            "model": FastForestRegression.LOAD_NAME,
            "num_trees": self.predictor.ensemble.num_trees,
            "feature_count": self.predictor.feature_count,
            "quantile_sample_count": self.predictor.quantile_sample_count,
            "training_metrics": self.training_metrics.to_dict(),
        }


def _resolve_features(
    frame: pd.DataFrame,
    feature_columns: Sequence[str] | None,
    reserved: Sequence[str | None],
) -> tuple[str, ...]:
    if feature_columns is not None:
        return tuple(feature_columns)
    taken = {col for col in reserved if col is not None}
    return tuple(str(col) for col in frame.columns if col not in taken)


def train_regression(
    config: ForestRegressionConfig | Mapping[str, Any] | None,
    frame: pd.DataFrame,
    *,
    label_column: str = "Label",
    feature_columns: Sequence[str] | None = None,
    weight_column: str | None = None,
    group_id_column: str | None = None,
) -> RegressionOutput:
    """Train a forest regressor on ``frame``.

    Parameters
    ----------
    config : ForestRegressionConfig or mapping, optional
        Training configuration; a mapping is parsed with
        :meth:`ForestRegressionConfig.from_mapping`. None uses the defaults.
    frame : pd.DataFrame
        Training data.
    label_column : str
        Regression target. Default "Label".
    feature_columns : Sequence[str], optional
        Feature columns in order. Defaults to every column not assigned to
        another role.
    weight_column, group_id_column : str, optional
        Optional instance-weight and group-id columns.

    Returns
    -------
    RegressionOutput
        The trained predictor and its training-set metrics.
    """
    if frame is None:
        raise SchemaMismatchError("TrainingData", "no training data supplied")
    if config is None:
        config = ForestRegressionConfig()
    elif not isinstance(config, ForestRegressionConfig):
        config = ForestRegressionConfig.from_mapping(config)

    features = _resolve_features(
        frame, feature_columns, (label_column, weight_column, group_id_column)
    )
    data = RoleMappedData(
        frame=frame,
        label=label_column,
        features=features,
        weight=weight_column,
        group_id=group_id_column,
    )

    trainer = FastForestRegression(config).train(data)
    predictor = trainer.create_predictor()
    logger.info("Trained %s with %d features", FastForestRegression.USER_NAME, len(features))
    return RegressionOutput(
        predictor=predictor,
        training_metrics=trainer.training_metrics,
        feature_columns=features,
    )
