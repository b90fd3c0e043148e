"""Shared fixtures for the trained-model tests."""

import numpy as np
import pandas as pd
import pytest

FEATURES = ["x0", "x1", "x2"]


@pytest.fixture
def rows(regression_frame: pd.DataFrame) -> np.ndarray:
    """First 20 feature rows of the shared regression frame."""
    return regression_frame.loc[:, FEATURES].to_numpy(dtype=np.float32)[:20]
