"""Forest-growing engine.

Grows one bagged regression tree per iteration on the gradient supplied by a
:class:`~fastforest.objective.RegressionObjective` and records, for every
leaf, a fixed sample of the original training labels that landed there.
"""

from __future__ import annotations

import logging
from typing import Dict, List

import numpy as np
from sklearn.tree import DecisionTreeRegressor

from fastforest.config import ForestRegressionConfig
from fastforest.dataset import Dataset
from fastforest.objective import RegressionObjective
from fastforest.tree import LeafSample, RegressionTree, TreeEnsemble

logger = logging.getLogger(__name__)


class RandomForestEngine:
    """Bagging engine driving a regression objective.

    Parameters
    ----------
    config : ForestRegressionConfig
        Tree and bagging hyperparameters.
    """

    def __init__(self, config: ForestRegressionConfig):
        self.config = config
        self._rng = np.random.default_rng(config.random_state)

    def _draw_bag(self, num_docs: int) -> np.ndarray:
        bag_size = max(1, int(round(self.config.bagging_fraction * num_docs)))
        if bag_size >= num_docs:
            return np.arange(num_docs)
        return np.sort(self._rng.choice(num_docs, size=bag_size, replace=False))

    def _sample_leaves(
        self, dataset: Dataset, bag: np.ndarray, leaf_ids: np.ndarray
    ) -> Dict[int, LeafSample]:
        count = self.config.quantile_sample_count
        samples: Dict[int, LeafSample] = {}
        for leaf in np.unique(leaf_ids):
            members = bag[leaf_ids == leaf]
            if members.shape[0] > count:
                members = np.sort(self._rng.choice(members, size=count, replace=False))
            values = dataset.labels[members].copy()
            weights = None if dataset.weights is None else dataset.weights[members].copy()
            samples[int(leaf)] = (values, weights)
        return samples

    def grow_tree(self, dataset: Dataset, gradient: np.ndarray) -> RegressionTree:
        """Fit one tree to ``gradient`` on a fresh bagging subset."""

        bag = self._draw_bag(dataset.num_docs)
        X_bag = dataset.features[bag]
        sample_weight = None if dataset.weights is None else dataset.weights[bag]

        estimator = DecisionTreeRegressor(
            max_depth=self.config.max_depth,
            min_samples_leaf=self.config.min_samples_leaf,
            max_features=self.config.feature_fraction,
            random_state=int(self._rng.integers(0, 2**31 - 1)),
        )
        estimator.fit(X_bag, gradient[bag], sample_weight=sample_weight)

        leaf_ids = estimator.apply(X_bag)
        return RegressionTree(
            estimator=estimator,
            leaf_samples=self._sample_leaves(dataset, bag, leaf_ids),
        )

    def fit(self, dataset: Dataset, objective: RegressionObjective) -> TreeEnsemble:
        """Run ``config.num_trees`` iterations and return the finished ensemble."""

        num_trees = self.config.num_trees
        logger.info(
            "Growing %d trees on %d examples x %d features (%s labels)",
            num_trees,
            dataset.num_docs,
            dataset.num_features,
            objective.mode.value,
        )

        trees: List[RegressionTree] = []
        for iteration in range(num_trees):
            gradient = objective.get_gradient()
            tree = self.grow_tree(dataset, gradient)
            trees.append(tree)
            logger.debug("Iteration %d: tree with %d leaves", iteration, tree.num_leaves)

        logger.info("Finished growing %d trees", len(trees))
        return TreeEnsemble(trees)
