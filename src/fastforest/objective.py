"""Regression objective for random-forest training.

For a forest the per-example training signal is the label itself: every
iteration the engine asks for a gradient and each tree is fit to it. Two
variants exist and are selected once from the configuration:

- ``LabelMode.DIRECT``: the gradient is the training target, unchanged for the
  whole run.
- ``LabelMode.SHUFFLED``: before each iteration the integer-coded labels are
  remapped in place through a fresh random permutation of
  ``[0, label_limit)``, which de-correlates successive trees.

Concurrency contract
--------------------
``get_gradient`` is the only entry point the engine calls per iteration. It
first remaps the label buffer (shuffled variant, single writer), and only then
fans ``get_gradient_in_one_query`` out over worker threads. Query ranges are
disjoint, so workers read the label buffer and write non-overlapping slices of
the gradient. The remap never overlaps with the fan-out.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import List

import numpy as np

from fastforest.config import ARRAY_MAX_SIZE, ForestRegressionConfig
from fastforest.dataset import Dataset, get_regression_labels
from fastforest.errors import ConfigurationError

logger = logging.getLogger(__name__)


class LabelMode(Enum):
    DIRECT = "direct"
    SHUFFLED = "shuffled"


def get_random_permutation(rng: np.random.Generator, size: int) -> np.ndarray:
    """Uniformly random permutation of ``[0, size)`` as an int64 array."""

    return rng.permutation(int(size)).astype(np.int64)


class RegressionObjective:
    """Supplies the gradient for each forest-growing iteration.

    Parameters
    ----------
    dataset : Dataset
        Training set; its labels are copied into a buffer owned by this object.
    mode : LabelMode
        Which variant to run.
    seed : int
        Seed of the permutation generator (shuffled variant only).
    num_threads : int
        Number of worker threads for the gradient fan-out.
    label_upper_bound : int
        Exclusive upper bound for labels in the shuffled variant.

    Raises
    ------
    ConfigurationError
        If the label buffer length differs from the example count, or a label
        lies outside ``[0, label_upper_bound)`` in the shuffled variant.
    """

    def __init__(
        self,
        dataset: Dataset,
        mode: LabelMode = LabelMode.DIRECT,
        *,
        seed: int = 0,
        num_threads: int = 1,
        label_upper_bound: int = ARRAY_MAX_SIZE,
    ):
        self._dataset = dataset
        self._mode = LabelMode(mode)
        self._num_threads = max(1, int(num_threads))
        self._labels = get_regression_labels(dataset)
        if self._labels.shape[0] != dataset.num_docs:
            raise ConfigurationError(
                "labels",
                self._labels.shape[0],
                f"Label count must equal the number of examples ({dataset.num_docs})",
            )
        self._gradient = np.zeros(dataset.num_docs, dtype=np.float64)
        self._label_limit = 0
        self._rng: np.random.Generator | None = None

        if self._mode is LabelMode.SHUFFLED:
            self._label_limit = self._validate_shuffle_labels(self._labels, label_upper_bound)
            self._rng = np.random.default_rng(seed)
            logger.debug("Shuffled labels enabled: label_limit=%d seed=%d", self._label_limit, seed)

    @classmethod
    def create(cls, dataset: Dataset, config: ForestRegressionConfig) -> "RegressionObjective":
        """Build the variant selected by ``config.shuffle_labels``."""

        mode = LabelMode.SHUFFLED if config.shuffle_labels else LabelMode.DIRECT
        return cls(
            dataset,
            mode,
            seed=config.shuffle_seed,
            num_threads=config.num_threads,
            label_upper_bound=config.label_upper_bound,
        )

    @staticmethod
    def _validate_shuffle_labels(labels: np.ndarray, upper_bound: int) -> int:
        # NaN fails both comparisons, so it is rejected too.
        in_range = (labels >= 0) & (labels < upper_bound)
        if not in_range.all():
            idx = int(np.flatnonzero(~in_range)[0])
            raise ConfigurationError(
                "shuffle_labels",
                True,
                f"Label {labels[idx]} for example {idx} outside of allowed range "
                f"[0,{upper_bound}) when doing shuffled labels",
            )
        if labels.shape[0] == 0:
            return 1
        return int(labels.max()) + 1

    @property
    def mode(self) -> LabelMode:
        return self._mode

    @property
    def labels(self) -> np.ndarray:
        """The live label buffer (mutated in place by the shuffled variant)."""
        return self._labels

    @property
    def gradient(self) -> np.ndarray:
        return self._gradient

    @property
    def label_limit(self) -> int:
        """``max(label) + 1`` for the shuffled variant, 0 otherwise."""
        return self._label_limit

    def refresh_labels(self) -> None:
        """Remap every label through a fresh random permutation.

        Must not run while any ``get_gradient_in_one_query`` call is active.
        """
        if self._mode is not LabelMode.SHUFFLED:
            return
        perm = get_random_permutation(self._rng, self._label_limit)
        self._labels[:] = perm[self._labels.astype(np.int64)]

    def get_gradient(self, scores: np.ndarray | None = None) -> np.ndarray:
        """Compute the gradient for one iteration.

        ``scores`` (the current ensemble outputs) is accepted for the engine's
        calling convention; a forest fits every tree to the labels alone.
        """
        # Single writer: finish the remap before any reader starts.
        self.refresh_labels()

        chunks = self._query_chunks()
        if len(chunks) == 1:
            self._run_chunk(chunks[0], 0)
        else:
            with ThreadPoolExecutor(max_workers=len(chunks)) as executor:
                futures = [
                    executor.submit(self._run_chunk, chunk, thread_index)
                    for thread_index, chunk in enumerate(chunks)
                ]
                for future in futures:
                    future.result()
        return self._gradient

    def get_gradient_in_one_query(self, query: int, thread_index: int) -> None:
        """Copy the labels of query ``query`` into its gradient slots."""

        begin = int(self._dataset.boundaries[query])
        end = int(self._dataset.boundaries[query + 1])
        self._gradient[begin:end] = self._labels[begin:end]

    def _run_chunk(self, queries: range, thread_index: int) -> None:
        for query in queries:
            self.get_gradient_in_one_query(query, thread_index)

    def _query_chunks(self) -> List[range]:
        num_queries = self._dataset.num_queries
        n_chunks = max(1, min(self._num_threads, num_queries))
        edges = np.linspace(0, num_queries, n_chunks + 1).astype(int)
        return [range(int(edges[i]), int(edges[i + 1])) for i in range(n_chunks)]
