from __future__ import annotations

import numpy as np
import pytest

from utils import Dataset


def make_dataset(features, labels) -> Dataset:
    features = np.asarray(features, dtype=float)
    if features.ndim == 1:
        features = features.reshape(-1, 1)
    return Dataset(
        features=features,
        labels=np.asarray(labels, dtype=int),
        feature_names=[f"f{i}" for i in range(features.shape[1])],
        reduced=features[:, :2],
    )


@pytest.fixture
def ranked_dataset() -> Dataset:
    """100 samples whose only feature is their index; the 30 highest are positive."""
    scores = np.arange(100, dtype=float)
    labels = (scores >= 70).astype(int)
    return make_dataset(scores, labels)
