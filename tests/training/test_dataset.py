"""Tests for role-mapped data conversion."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from fastforest.dataset import RoleMappedData, convert_data, get_regression_labels
from fastforest.errors import SchemaMismatchError


@pytest.fixture
def frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "a": [1.0, 2.0, 3.0, 4.0, 5.0, 6.0],
            "b": [0, 1, 0, 1, 0, 1],
            "y": [0.5, 1.5, 2.5, 3.5, 4.5, 5.5],
            "q": ["g1", "g1", "g2", "g2", "g2", "g1"],
        }
    )


class TestConvertData:
    def test_each_example_is_a_query_without_group(self, frame):
        dataset = convert_data(RoleMappedData(frame, label="y", features=["a", "b"]))

        assert dataset.num_docs == 6
        assert dataset.num_features == 2
        assert dataset.num_queries == 6
        np.testing.assert_array_equal(dataset.boundaries, np.arange(7))
        assert dataset.features.dtype == np.float32
        assert dataset.weights is None
        assert dataset.feature_names == ["a", "b"]

    def test_group_runs_become_queries(self, frame):
        dataset = convert_data(RoleMappedData(frame, label="y", features=["a"], group_id="q"))

        np.testing.assert_array_equal(dataset.boundaries, [0, 2, 5, 6])
        assert dataset.num_queries == 3

    def test_nan_label_rejected(self, frame):
        frame.loc[2, "y"] = np.nan

        with pytest.raises(SchemaMismatchError, match="NaN"):
            convert_data(RoleMappedData(frame, label="y", features=["a"]))

    def test_empty_frame_rejected(self, frame):
        with pytest.raises(SchemaMismatchError, match="no rows"):
            convert_data(RoleMappedData(frame.iloc[0:0], label="y", features=["a"]))

    def test_missing_group_column(self, frame):
        with pytest.raises(SchemaMismatchError) as excinfo:
            convert_data(RoleMappedData(frame, label="y", features=["a"], group_id="missing"))
        assert excinfo.value.role == "GroupId"

    def test_regression_labels_are_copied(self, frame):
        dataset = convert_data(RoleMappedData(frame, label="y", features=["a"]))

        labels = get_regression_labels(dataset)
        labels[:] = 0.0

        np.testing.assert_array_equal(dataset.labels, frame["y"].to_numpy())
