"""Shared fixtures for the training-side tests."""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np
import pytest

from fastforest.dataset import Dataset


@pytest.fixture
def make_dataset() -> Callable[..., Dataset]:
    """Factory for small hand-built datasets."""

    def _make(
        labels: Sequence[float],
        *,
        num_features: int = 2,
        boundaries: Sequence[int] | None = None,
        weights: Sequence[float] | None = None,
    ) -> Dataset:
        labels_arr = np.asarray(labels, dtype=np.float64)
        n = labels_arr.shape[0]
        features = np.arange(n * num_features, dtype=np.float32).reshape(n, num_features)
        if boundaries is None:
            boundaries = np.arange(n + 1)
        return Dataset(
            features=features,
            labels=labels_arr,
            boundaries=np.asarray(boundaries, dtype=np.int64),
            weights=None if weights is None else np.asarray(weights, dtype=np.float64),
        )

    return _make
