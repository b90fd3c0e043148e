"""Trained trees and the forest ensemble.

Each :class:`RegressionTree` wraps a fitted scikit-learn
``DecisionTreeRegressor`` and keeps, per leaf, a fixed sample of the training
labels that fell into that leaf. The sample is drawn once at training time, so
leaf distributions (and the quantiles derived from them) are stable across
queries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from sklearn.tree import DecisionTreeRegressor

TREE_LEAF = -1

LeafSample = Tuple[np.ndarray, Optional[np.ndarray]]


@dataclass(frozen=True)
class RegressionTree:
    """One fitted tree plus its per-leaf label samples.

    Parameters
    ----------
    estimator : DecisionTreeRegressor
        The fitted tree.
    leaf_samples : Dict[int, LeafSample]
        ``leaf node id -> (label values, instance weights or None)``.
    """

    estimator: DecisionTreeRegressor
    leaf_samples: Dict[int, LeafSample] = field(default_factory=dict)

    @property
    def num_leaves(self) -> int:
        return int(self.estimator.tree_.n_leaves)

    @property
    def max_split_feature_index(self) -> int:
        """Highest feature index used by any split, -1 for a single-leaf tree."""
        feature = self.estimator.tree_.feature
        used = feature[feature >= 0]
        return int(used.max()) if used.size else -1

    def get_leaf(self, features: np.ndarray) -> int:
        """Route one feature vector to its leaf node id.

        Only the features referenced by splits are read, so any vector longer
        than :attr:`max_split_feature_index` is accepted.
        """
        tree = self.estimator.tree_
        left = tree.children_left
        right = tree.children_right
        split_feature = tree.feature
        threshold = tree.threshold
        missing_left = getattr(tree, "missing_go_to_left", None)

        node = 0
        while left[node] != TREE_LEAF:
            value = features[split_feature[node]]
            if np.isnan(value):
                go_left = bool(missing_left[node]) if missing_left is not None else True
            else:
                go_left = value <= threshold[node]
            node = left[node] if go_left else right[node]
        return int(node)

    def get_output(self, features: np.ndarray) -> float:
        """Value stored in the leaf that ``features`` lands in."""
        leaf = self.get_leaf(features)
        return float(self.estimator.tree_.value[leaf].ravel()[0])

    def load_sampled_labels(self, features: np.ndarray, sample_count: int) -> LeafSample:
        """Up to ``sample_count`` stored labels of the leaf ``features`` lands in."""
        leaf = self.get_leaf(features)
        values, weights = self.leaf_samples.get(leaf, (np.empty(0), None))
        values = values[:sample_count]
        if weights is not None:
            weights = weights[:sample_count]
        return values, weights


@dataclass(frozen=True)
class TreeEnsemble:
    """Ordered, immutable collection of trained trees."""

    trees: Tuple[RegressionTree, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "trees", tuple(self.trees))

    @property
    def num_trees(self) -> int:
        return len(self.trees)

    @property
    def max_split_feature_index(self) -> int:
        if not self.trees:
            return -1
        return max(tree.max_split_feature_index for tree in self.trees)

    def get_output(self, features: np.ndarray) -> float:
        """Sum of the outputs of every tree."""
        return float(sum(tree.get_output(features) for tree in self.trees))

    def get_tree_outputs(self, features: np.ndarray) -> np.ndarray:
        return np.array([tree.get_output(features) for tree in self.trees], dtype=np.float64)

    def get_distribution(
        self, features: np.ndarray, sample_count: int
    ) -> Tuple[np.ndarray, np.ndarray | None]:
        """Leaf label distribution of ``features`` across the forest.

        Returns
        -------
        Tuple[np.ndarray, np.ndarray | None]
            Concatenated label values and their weights. Weights are None when
            the trees were trained without instance weights.
        """
        values: List[np.ndarray] = []
        weights: List[np.ndarray] = []
        weighted = False
        for tree in self.trees:
            vals, wts = tree.load_sampled_labels(features, sample_count)
            values.append(vals)
            if wts is not None:
                weighted = True
                weights.append(wts)
            else:
                weights.append(np.ones_like(vals))

        if not values:
            return np.empty(0), None
        distribution = np.concatenate(values)
        if not weighted:
            return distribution, None
        return distribution, np.concatenate(weights)
