"""Role-mapped input data and the internal training representation.

A :class:`RoleMappedData` pairs a DataFrame with the columns playing the
label, feature, weight and group-id roles. :func:`convert_data` validates the
roles and flattens the frame into a :class:`Dataset` of numpy arrays that the
objective function and the tree-growing engine work on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np
import pandas as pd

from fastforest.errors import SchemaMismatchError


@dataclass(frozen=True)
class RoleMappedData:
    """A DataFrame together with its column roles.

    Parameters
    ----------
    frame : pd.DataFrame
        The training table.
    label : str
        Name of the regression target column.
    features : Sequence[str]
        Columns that together form the float feature vector, in order.
    weight : str, optional
        Name of the per-example weight column.
    group_id : str, optional
        Name of the group-id column. Consecutive rows sharing a group id form
        one query range.
    """

    frame: pd.DataFrame
    label: str
    features: Sequence[str] = field(default_factory=tuple)
    weight: str | None = None
    group_id: str | None = None

    @property
    def feature_count(self) -> int:
        return len(self.features)


@dataclass
class Dataset:
    """Training set flattened to numpy arrays.

    Query ``q`` covers the half-open example range
    ``[boundaries[q], boundaries[q + 1])``; ranges partition the examples.
    """

    features: np.ndarray
    labels: np.ndarray
    boundaries: np.ndarray
    weights: np.ndarray | None = None
    feature_names: List[str] = field(default_factory=list)

    @property
    def num_docs(self) -> int:
        return int(self.features.shape[0])

    @property
    def num_features(self) -> int:
        return int(self.features.shape[1])

    @property
    def num_queries(self) -> int:
        return int(len(self.boundaries) - 1)


def _require_column(frame: pd.DataFrame, role: str, column: str | None) -> pd.Series:
    if column is None:
        raise SchemaMismatchError(role, "no column assigned to this role")
    if column not in frame.columns:
        raise SchemaMismatchError(role, f"column '{column}' not found in data")
    return frame[column]


def check_regression_label(data: RoleMappedData) -> None:
    """Label must exist and be numeric (bool is accepted)."""

    series = _require_column(data.frame, "Label", data.label)
    if not pd.api.types.is_numeric_dtype(series):
        raise SchemaMismatchError(
            "Label", f"column '{data.label}' has type {series.dtype}, expected a numeric type"
        )


def check_feature_float_vector(data: RoleMappedData) -> None:
    """Features must be a non-empty list of numeric columns."""

    if not data.features:
        raise SchemaMismatchError("Feature", "no columns assigned to this role")
    missing = [col for col in data.features if col not in data.frame.columns]
    if missing:
        preview = ", ".join(str(col) for col in missing[:5])
        raise SchemaMismatchError("Feature", f"{len(missing)} columns not found (preview: {preview})")
    bad = [
        col for col in data.features
        if not pd.api.types.is_numeric_dtype(data.frame[col])
    ]
    if bad:
        preview = ", ".join(f"{col}:{data.frame[col].dtype}" for col in bad[:5])
        raise SchemaMismatchError("Feature", f"non-numeric columns (preview: {preview})")


def check_opt_float_weight(data: RoleMappedData) -> None:
    """Weight is optional; when present it must be numeric, finite and >= 0."""

    if data.weight is None:
        return
    series = _require_column(data.frame, "Weight", data.weight)
    if not pd.api.types.is_numeric_dtype(series):
        raise SchemaMismatchError(
            "Weight", f"column '{data.weight}' has type {series.dtype}, expected a numeric type"
        )
    values = series.to_numpy(dtype=np.float64)
    if not np.isfinite(values).all() or (values < 0).any():
        raise SchemaMismatchError("Weight", "weights must be finite and non-negative")


def _query_boundaries(frame: pd.DataFrame, group_id: str | None) -> np.ndarray:
    n = len(frame)
    if group_id is None:
        return np.arange(n + 1, dtype=np.int64)

    groups = _require_column(frame, "GroupId", group_id).to_numpy()
    if n == 0:
        return np.zeros(1, dtype=np.int64)
    starts = np.flatnonzero(groups[1:] != groups[:-1]) + 1
    return np.concatenate(([0], starts, [n])).astype(np.int64)


def convert_data(data: RoleMappedData) -> Dataset:
    """Convert role-mapped data to the internal :class:`Dataset`.

    Raises
    ------
    SchemaMismatchError
        If the frame is empty or contains NaN labels.
    """
    frame = data.frame
    if len(frame) == 0:
        raise SchemaMismatchError("Label", "training data has no rows")

    features = frame.loc[:, list(data.features)].to_numpy(dtype=np.float32)
    labels = frame[data.label].to_numpy(dtype=np.float64)
    if np.isnan(labels).any():
        raise SchemaMismatchError("Label", f"column '{data.label}' contains NaN values")

    weights = None
    if data.weight is not None:
        weights = frame[data.weight].to_numpy(dtype=np.float64)

    return Dataset(
        features=features,
        labels=labels,
        boundaries=_query_boundaries(frame, data.group_id),
        weights=weights,
        feature_names=[str(col) for col in data.features],
    )


def get_regression_labels(dataset: Dataset) -> np.ndarray:
    """Return a private float copy of the dataset labels."""

    return np.array(dataset.labels, dtype=np.float64, copy=True)
