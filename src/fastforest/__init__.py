"""Random-forest regression with leaf-distribution quantile estimation."""

from fastforest.config import ForestRegressionConfig, load_forest_config
from fastforest.dataset import Dataset, RoleMappedData, convert_data
from fastforest.entrypoint import RegressionOutput, train_regression
from fastforest.errors import (
    ConfigurationError,
    ForestError,
    IllegalStateError,
    ModelFormatError,
    SchemaMismatchError,
    ShapeMismatchError,
    VersionMismatchError,
)
from fastforest.objective import LabelMode, RegressionObjective
from fastforest.predictor import ForestRegressionPredictor
from fastforest.quantile import QuantileStatistics
from fastforest.trainer import FastForestRegression, RegressionMetrics

__all__ = [
    # config
    "ForestRegressionConfig",
    "load_forest_config",
    # dataset
    "Dataset",
    "RoleMappedData",
    "convert_data",
    # training
    "FastForestRegression",
    "LabelMode",
    "RegressionObjective",
    "RegressionMetrics",
    "RegressionOutput",
    "train_regression",
    # prediction
    "ForestRegressionPredictor",
    "QuantileStatistics",
    # errors
    "ForestError",
    "ConfigurationError",
    "SchemaMismatchError",
    "ShapeMismatchError",
    "IllegalStateError",
    "VersionMismatchError",
    "ModelFormatError",
]
