"""Weighted sample quantiles."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from fastforest.errors import ConfigurationError


class QuantileStatistics:
    """Answers "value at quantile q" for a weighted sample of scalars.

    The sample is sorted once at construction. A quantile is read off the
    weighted empirical CDF: the smallest value whose normalized cumulative
    weight reaches ``q``.

    Parameters
    ----------
    values : array-like
        Sample values.
    weights : array-like, optional
        Non-negative weight per value. Uniform when omitted.
    """

    def __init__(self, values: Sequence[float] | np.ndarray, weights: Sequence[float] | np.ndarray | None = None):
        data = np.asarray(values, dtype=np.float64).ravel()
        if weights is None:
            w = np.ones_like(data)
        else:
            w = np.asarray(weights, dtype=np.float64).ravel()
            if w.shape != data.shape:
                raise ValueError(
                    f"weights length {w.shape[0]} does not match values length {data.shape[0]}"
                )

        order = np.argsort(data, kind="stable")
        self._data = data[order]
        self._weights = w[order]
        total = float(self._weights.sum())
        self._cdf = np.cumsum(self._weights) / total if total > 0 else None

    def __len__(self) -> int:
        return int(self._data.shape[0])

    def get_quantile(self, q: float) -> float:
        """Return the value at quantile ``q``.

        Returns NaN for an empty sample (or one whose weights are all zero).
        """
        q = float(q)
        if not 0.0 <= q <= 1.0:
            raise ConfigurationError("quantile", q, "Must be in [0, 1]")
        if self._data.shape[0] == 0 or self._cdf is None:
            return float("nan")
        if q == 0.0:
            return float(self._data[0])
        if q == 1.0:
            return float(self._data[-1])

        idx = int(np.searchsorted(self._cdf, q, side="left"))
        idx = min(idx, self._data.shape[0] - 1)
        return float(self._data[idx])
