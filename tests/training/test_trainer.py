"""Tests for the trainer and the training entry point."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from fastforest.config import ForestRegressionConfig
from fastforest.dataset import RoleMappedData
from fastforest.engine import RandomForestEngine
from fastforest.entrypoint import RegressionOutput, train_regression
from fastforest.errors import ConfigurationError, IllegalStateError, SchemaMismatchError
from fastforest.predictor import ForestRegressionPredictor
from fastforest.trainer import FastForestRegression

FEATURES = ["x0", "x1", "x2"]


class TestEndToEnd:
    """Four examples, two features, one tree, direct labels."""

    @pytest.fixture
    def tiny_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "f0": [0.0, 1.0, 0.0, 1.0],
                "f1": [0.0, 0.0, 1.0, 1.0],
                "Label": [1.0, 2.0, 1.0, 3.0],
            }
        )

    @pytest.fixture
    def tiny_config(self) -> ForestRegressionConfig:
        return ForestRegressionConfig(
            num_trees=1,
            min_samples_leaf=1,
            feature_fraction=1.0,
            bagging_fraction=1.0,
            quantile_sample_count=10,
        )

    def test_single_tree_predicts_leaf_value(self, tiny_frame, tiny_config):
        trainer = FastForestRegression(tiny_config)
        trainer.train(RoleMappedData(tiny_frame, label="Label", features=["f0", "f1"]))
        predictor = trainer.create_predictor()
        tree = predictor.ensemble.trees[0]

        assert predictor.ensemble.num_trees == 1
        for row, label in zip(tiny_frame[["f0", "f1"]].to_numpy(), tiny_frame["Label"]):
            leaf = tree.get_leaf(np.asarray(row, dtype=np.float32))
            leaf_value = float(tree.estimator.tree_.value[leaf].ravel()[0])
            assert predictor.map(row) == leaf_value / 1
            assert predictor.map(row) == label

    def test_single_tree_quantiles_collapse_to_label(self, tiny_frame, tiny_config):
        output = train_regression(tiny_config, tiny_frame, feature_columns=["f0", "f1"])
        mapper = output.predictor.get_mapper([0.1, 0.5, 0.9])

        np.testing.assert_array_equal(mapper([1.0, 1.0]), [3.0, 3.0, 3.0])


class TestTrainer:
    def test_create_predictor_before_training(self):
        trainer = FastForestRegression(ForestRegressionConfig(num_trees=2))

        with pytest.raises(IllegalStateError, match="before training is complete"):
            trainer.create_predictor()

    def test_failed_retrain_discards_previous_model(self, regression_frame):
        config = ForestRegressionConfig(num_trees=2, shuffle_labels=True, min_samples_leaf=5)
        trainer = FastForestRegression(config)
        good = regression_frame.assign(Label=(regression_frame["x0"] // 2).astype(int))
        trainer.train(RoleMappedData(good, label="Label", features=FEATURES))
        assert trainer.create_predictor().feature_count == 3

        bad = good.assign(Label=-1.0)
        with pytest.raises(ConfigurationError, match="outside of allowed range"):
            trainer.train(RoleMappedData(bad, label="Label", features=["x0", "x1"]))

        assert trainer.trained_ensemble is None
        assert trainer.training_metrics is None
        with pytest.raises(IllegalStateError):
            trainer.create_predictor()

    def test_illegal_state_is_runtime_error(self):
        with pytest.raises(RuntimeError):
            FastForestRegression().create_predictor()

    def test_train_records_feature_count_and_metrics(self, regression_frame, small_config):
        trainer = FastForestRegression(small_config)
        result = trainer.train(RoleMappedData(regression_frame, label="Label", features=FEATURES))

        assert result is trainer
        assert trainer.feature_count == 3
        metrics = trainer.training_metrics
        assert metrics.num_examples == len(regression_frame)
        assert 0.0 <= metrics.l1
        assert metrics.rmse == pytest.approx(np.sqrt(metrics.l2))
        assert metrics.rmse < regression_frame["Label"].std()

    def test_predictor_is_packaged_from_training(self, regression_frame, small_config):
        trainer = FastForestRegression(small_config)
        trainer.train(RoleMappedData(regression_frame, label="Label", features=FEATURES))

        predictor = trainer.create_predictor()

        assert isinstance(predictor, ForestRegressionPredictor)
        assert predictor.ensemble is trainer.trained_ensemble
        assert predictor.inner_args == small_config.inner_args()
        assert predictor.quantile_sample_count == small_config.quantile_sample_count

    def test_trainer_flags(self):
        assert FastForestRegression.need_calibration is False
        assert FastForestRegression.prediction_kind == "regression"

    def test_training_is_deterministic(self, regression_frame, small_config):
        rows = regression_frame.loc[:, FEATURES].to_numpy()[:10]
        first = train_regression(small_config, regression_frame, feature_columns=FEATURES).predictor
        second = train_regression(small_config, regression_frame, feature_columns=FEATURES).predictor

        np.testing.assert_array_equal(first.predict(rows), second.predict(rows))

    def test_thread_count_does_not_change_model(self, regression_frame, small_config):
        rows = regression_frame.loc[:, FEATURES].to_numpy()[:10]
        threaded = ForestRegressionConfig(**{**small_config.to_mapping(), "num_threads": 4})

        single = train_regression(small_config, regression_frame, feature_columns=FEATURES).predictor
        multi = train_regression(threaded, regression_frame, feature_columns=FEATURES).predictor

        np.testing.assert_array_equal(single.predict(rows), multi.predict(rows))


class TestSchemaChecks:
    def test_missing_label(self, regression_frame, small_config):
        data = RoleMappedData(regression_frame, label="Target", features=FEATURES)

        with pytest.raises(SchemaMismatchError) as excinfo:
            FastForestRegression(small_config).train(data)
        assert excinfo.value.role == "Label"

    def test_non_numeric_label(self, regression_frame, small_config):
        frame = regression_frame.assign(Label=["a"] * len(regression_frame))

        with pytest.raises(SchemaMismatchError, match="Label"):
            FastForestRegression(small_config).train(RoleMappedData(frame, label="Label", features=FEATURES))

    def test_non_numeric_feature(self, regression_frame, small_config):
        frame = regression_frame.assign(x1="text")

        with pytest.raises(SchemaMismatchError) as excinfo:
            FastForestRegression(small_config).train(RoleMappedData(frame, label="Label", features=FEATURES))
        assert excinfo.value.role == "Feature"

    def test_no_features(self, regression_frame, small_config):
        with pytest.raises(SchemaMismatchError) as excinfo:
            FastForestRegression(small_config).train(RoleMappedData(regression_frame, label="Label"))
        assert excinfo.value.role == "Feature"

    def test_negative_weight(self, regression_frame, small_config):
        frame = regression_frame.assign(w=-1.0)

        with pytest.raises(SchemaMismatchError) as excinfo:
            FastForestRegression(small_config).train(
                RoleMappedData(frame, label="Label", features=FEATURES, weight="w")
            )
        assert excinfo.value.role == "Weight"


class TestShuffledTraining:
    def test_out_of_range_labels_fail_before_growing(self, regression_frame, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("engine must not run")

        monkeypatch.setattr(RandomForestEngine, "fit", fail)
        frame = regression_frame.assign(Label=regression_frame["Label"] - 100.0)
        config = ForestRegressionConfig(num_trees=2, shuffle_labels=True)

        with pytest.raises(ConfigurationError, match="outside of allowed range"):
            train_regression(config, frame, feature_columns=FEATURES)

    def test_integer_labels_train(self, regression_frame):
        frame = regression_frame.assign(Label=(regression_frame["x0"] // 2).astype(int))
        config = ForestRegressionConfig(num_trees=4, shuffle_labels=True, min_samples_leaf=5)

        output = train_regression(config, frame, feature_columns=FEATURES)

        assert output.predictor.ensemble.num_trees == 4
        quantiles = output.predictor.get_mapper([0.0, 1.0])(frame.loc[0, FEATURES].to_numpy())
        assert set(quantiles.tolist()) <= set(frame["Label"].astype(float).tolist())


class TestEntryPoint:
    def test_returns_regression_output(self, regression_frame, small_config):
        output = train_regression(small_config, regression_frame)

        assert isinstance(output, RegressionOutput)
        assert output.feature_columns == ("x0", "x1", "x2")
        diagnostics = output.diagnostics()
        assert diagnostics["model"] == "FastForestRegression"
        assert diagnostics["num_trees"] == small_config.num_trees
        assert diagnostics["feature_count"] == 3

    def test_mapping_config(self, regression_frame):
        output = train_regression(
            {"num_trees": 3, "quantile_sample_count": 7}, regression_frame, feature_columns=FEATURES
        )
        assert output.predictor.ensemble.num_trees == 3
        assert output.predictor.quantile_sample_count == 7

    def test_default_features_exclude_role_columns(self, regression_frame, small_config):
        frame = regression_frame.assign(w=1.0, group=np.repeat(np.arange(20), 10))

        output = train_regression(
            small_config, frame, weight_column="w", group_id_column="group"
        )

        assert output.feature_columns == ("x0", "x1", "x2")

    def test_weighted_quantiles(self, regression_frame, small_config):
        frame = regression_frame.assign(w=np.linspace(1.0, 3.0, len(regression_frame)))
        output = train_regression(small_config, frame, feature_columns=FEATURES, weight_column="w")

        values, weights = output.predictor.ensemble.get_distribution(
            frame.loc[0, FEATURES].to_numpy(dtype=np.float32), small_config.quantile_sample_count
        )
        assert weights is not None
        assert weights.shape == values.shape

    def test_no_frame(self, small_config):
        with pytest.raises(SchemaMismatchError):
            train_regression(small_config, None)
