"""Trained forest regression predictor.

The predictor averages the per-tree outputs for a scalar prediction and, for
quantile regression, pools the leaf label samples a query lands in across the
forest and reads quantiles off that weighted sample.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Callable, List, Sequence

import numpy as np
import pandas as pd

from fastforest.errors import (
    ConfigurationError,
    ModelFormatError,
    SchemaMismatchError,
    ShapeMismatchError,
)
from fastforest.model_io import ModelReader, ModelWriter, VersionInfo, check_at_model
from fastforest.quantile import QuantileStatistics
from fastforest.tree import TreeEnsemble

logger = logging.getLogger(__name__)

QuantileMapper = Callable[..., np.ndarray]

# Format history:
#   0x00010001  initial
#   0x00010002  instance weights stored with leaf label samples
#   0x00010003  feature count serialized
#   0x00010004  configuration string moved out of the ensemble
#   0x00010005  default value for missing features
#   0x00010006  categorical splits
VER_NUM_FEATURES_SERIALIZED = 0x00010003


def _check_quantiles(quantiles: Sequence[float]) -> List[float]:
    values = [float(q) for q in quantiles]
    for q in values:
        if not 0.0 <= q <= 1.0:
            raise ConfigurationError("quantiles", q, "Quantiles must be in [0, 1]")
    return values


class ForestRegressionPredictor:
    """Immutable forest regression model.

    Parameters
    ----------
    ensemble : TreeEnsemble
        The trained trees.
    feature_count : int
        Length of the feature vector the model was trained on. 0 means the
        length is unknown and inputs are only required to cover every feature
        referenced by a split.
    inner_args : str
        Canonical training configuration string.
    quantile_sample_count : int
        Number of leaf labels drawn per tree for quantile queries.
    """

    LOADER_SIGNATURE = "FastForestRegressionExec"
    REGISTRATION_NAME = "FastForestRegressionPredictor"
    prediction_kind = "regression"

    def __init__(
        self,
        ensemble: TreeEnsemble,
        feature_count: int,
        inner_args: str,
        quantile_sample_count: int,
    ):
        if ensemble.num_trees == 0:
            raise ConfigurationError("ensemble", ensemble.num_trees, "Ensemble must contain at least one tree")
        if feature_count < 0:
            raise ConfigurationError("feature_count", feature_count, "Must be non-negative")
        if quantile_sample_count <= 0:
            raise ConfigurationError("quantile_sample_count", quantile_sample_count, "Must be positive")
        self._ensemble = ensemble
        self._feature_count = int(feature_count)
        self._inner_args = inner_args
        self._quantile_sample_count = int(quantile_sample_count)
        self._max_split_feature_index = ensemble.max_split_feature_index

    @staticmethod
    def get_version_info() -> VersionInfo:
        return VersionInfo(
            model_signature="FFORE RE",
            ver_written=0x00010006,
            ver_readable=0x00010005,
            ver_we_can_read_back=0x00010001,
            loader_signature=ForestRegressionPredictor.LOADER_SIGNATURE,
        )

    @property
    def ensemble(self) -> TreeEnsemble:
        return self._ensemble

    @property
    def feature_count(self) -> int:
        return self._feature_count

    @property
    def input_vector_size(self) -> int:
        """Fixed input length, or 0 when inputs may have any sufficient length."""
        return self._feature_count

    @property
    def inner_args(self) -> str:
        return self._inner_args

    @property
    def quantile_sample_count(self) -> int:
        return self._quantile_sample_count

    @property
    def max_split_feature_index(self) -> int:
        return self._max_split_feature_index

    def _check_input(self, features) -> np.ndarray:
        src = np.asarray(features, dtype=np.float32).ravel()
        length = src.shape[0]
        if self.input_vector_size > 0:
            if length != self.input_vector_size:
                raise ShapeMismatchError(f"exactly {self.input_vector_size}", length)
        elif length <= self._max_split_feature_index:
            raise ShapeMismatchError(f"more than {self._max_split_feature_index}", length)
        return src

    # ------------------------------------------------------------------
    # Scalar regression
    # ------------------------------------------------------------------

    def map(self, features) -> float:
        """Mean of the tree outputs for one feature vector."""

        src = self._check_input(features)
        return self._ensemble.get_output(src) / self._ensemble.num_trees

    def predict(self, X) -> np.ndarray:
        """Row-wise :meth:`map` over a 2-D array or DataFrame."""

        rows = np.asarray(X, dtype=np.float32)
        if rows.ndim != 2:
            raise ShapeMismatchError("a 2-D matrix", rows.ndim)
        return np.array([self.map(row) for row in rows], dtype=np.float64)

    # ------------------------------------------------------------------
    # Quantile regression
    # ------------------------------------------------------------------

    def get_mapper(self, quantiles: Sequence[float]) -> QuantileMapper:
        """Build ``mapper(src, dst=None) -> values at quantiles``.

        The output has one entry per requested quantile, in the caller's
        order. When ``dst`` holds at least that many elements its storage is
        reused and a view of it is returned, provided it is float64 so the
        stored values match a fresh result. Otherwise a new array is
        allocated.
        """
        qs = _check_quantiles(quantiles)
        n = len(qs)
        ensemble = self._ensemble
        sample_count = self._quantile_sample_count

        def mapper(src, dst: np.ndarray | None = None) -> np.ndarray:
            features = self._check_input(src)
            values, weights = ensemble.get_distribution(features, sample_count)
            qdist = QuantileStatistics(values, weights)

            if (
                dst is not None
                and dst.ndim == 1
                and dst.shape[0] >= n
                and dst.dtype == np.float64
            ):
                out = dst[:n]
            else:
                out = np.empty(n, dtype=np.float64)
            for i, q in enumerate(qs):
                out[i] = qdist.get_quantile(q)
            return out

        return mapper

    def create_mapper(self, quantiles: Sequence[float]) -> "SchemaBindableQuantileMapper":
        """Quantile mapper that is bound to feature columns before use."""

        if quantiles is None or len(quantiles) == 0:
            raise ConfigurationError("quantiles", quantiles, "At least one quantile is required")
        return SchemaBindableQuantileMapper(self, _check_quantiles(quantiles))

    def predict_quantiles(self, X, quantiles: Sequence[float]) -> np.ndarray:
        """Quantile estimates for each row; shape ``(n_rows, len(quantiles))``."""

        rows = np.asarray(X, dtype=np.float32)
        if rows.ndim != 2:
            raise ShapeMismatchError("a 2-D matrix", rows.ndim)
        mapper = self.get_mapper(quantiles)
        out = np.empty((rows.shape[0], len(quantiles)), dtype=np.float64)
        for i, row in enumerate(rows):
            mapper(row, out[i])
        return out

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_to(self, writer: ModelWriter) -> None:
        writer.write_header(self.get_version_info())
        # Base ensemble payload.
        writer.write_int32(self._feature_count)
        writer.write_string(self._inner_args)
        writer.write_object(self._ensemble)
        # Formerly the quantile-enabled flag; always true for regression.
        writer.write_bool_byte(True)
        writer.write_int32(self._quantile_sample_count)

    @classmethod
    def read_from(cls, reader: ModelReader) -> "ForestRegressionPredictor":
        header = reader.read_header()
        check_at_model(header, cls.get_version_info())

        feature_count = 0
        if header.ver_written >= VER_NUM_FEATURES_SERIALIZED:
            feature_count = reader.read_int32()
        inner_args = reader.read_string()
        ensemble = reader.read_object()
        if not isinstance(ensemble, TreeEnsemble):
            raise ModelFormatError(f"Expected a TreeEnsemble payload, found {type(ensemble).__name__}")

        if not reader.read_bool_byte():
            raise ModelFormatError("Quantile flag must be true for forest regression models")
        quantile_sample_count = reader.read_int32()
        if quantile_sample_count <= 0:
            raise ModelFormatError(f"Quantile sample count must be positive, found {quantile_sample_count}")

        logger.debug(
            "Loaded forest model version 0x%08X: %d trees, %d features",
            header.ver_written,
            ensemble.num_trees,
            feature_count,
        )
        return cls(ensemble, feature_count, inner_args, quantile_sample_count)

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.save_to(ModelWriter(buffer))
        return buffer.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> "ForestRegressionPredictor":
        return cls.read_from(ModelReader(io.BytesIO(data)))

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as fh:
            self.save_to(ModelWriter(fh))
        logger.info("Saved forest model to %s", path)
        return path

    @classmethod
    def load(cls, path: str | Path) -> "ForestRegressionPredictor":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Model file not found: {path}")
        with path.open("rb") as fh:
            return cls.read_from(ModelReader(fh))


class SchemaBindableQuantileMapper:
    """Quantile mapper waiting to be bound to a set of feature columns."""

    def __init__(self, predictor: ForestRegressionPredictor, quantiles: Sequence[float]):
        self.predictor = predictor
        self.quantiles = tuple(quantiles)

    def bind(self, feature_columns: Sequence[str]) -> "BoundQuantileMapper":
        columns = list(feature_columns)
        if not columns:
            raise SchemaMismatchError("Feature", "no columns assigned to this role")
        size = self.predictor.input_vector_size
        if size > 0 and len(columns) != size:
            raise ShapeMismatchError(f"exactly {size}", len(columns))
        return BoundQuantileMapper(self.predictor, self.quantiles, columns)


class BoundQuantileMapper:
    """Applies quantile regression to the feature columns of a DataFrame."""

    def __init__(
        self,
        predictor: ForestRegressionPredictor,
        quantiles: Sequence[float],
        feature_columns: Sequence[str],
    ):
        self.quantiles = tuple(quantiles)
        self.feature_columns = list(feature_columns)
        self._mapper = predictor.get_mapper(self.quantiles)

    @property
    def output_columns(self) -> List[str]:
        return [f"Quantile_{q:g}" for q in self.quantiles]

    def map_row(self, features, dst: np.ndarray | None = None) -> np.ndarray:
        return self._mapper(features, dst)

    def transform(self, frame: pd.DataFrame) -> pd.DataFrame:
        missing = [col for col in self.feature_columns if col not in frame.columns]
        if missing:
            preview = ", ".join(str(col) for col in missing[:5])
            raise SchemaMismatchError("Feature", f"{len(missing)} columns not found (preview: {preview})")

        rows = frame.loc[:, self.feature_columns].to_numpy(dtype=np.float32)
        out = np.empty((rows.shape[0], len(self.quantiles)), dtype=np.float64)
        for i, row in enumerate(rows):
            self._mapper(row, out[i])
        return pd.DataFrame(out, index=frame.index, columns=self.output_columns)
