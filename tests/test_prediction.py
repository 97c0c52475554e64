from __future__ import annotations

import numpy as np
import pytest

from errors import InvalidArgument
from prediction import (
    Clustering,
    ExplicitLabel,
    ScoreThreshold,
    cluster_positive_set,
    cluster_predictions,
    cluster_summary,
    explicit_label_predictions,
    threshold_predictions,
    to_predictions,
)


def _groups(spec):
    """Build (assignment, labels) from {group_id: (size, positives)}."""
    assignment, labels = [], []
    for gid, (size, positives) in spec.items():
        assignment += [gid] * size
        labels += [1] * positives + [0] * (size - positives)
    return np.array(assignment), np.array(labels)


def test_top_groups_and_proportion_threshold_are_united():
    # A = 0 (10 samples, 3 positive), B = 1 (5, 4), C = 2 (20, 1)
    assignment, labels = _groups({0: (10, 3), 1: (5, 4), 2: (20, 1)})

    summary = cluster_summary(assignment, labels)
    assert summary["proportion"].tolist() == pytest.approx([0.3, 0.8, 0.05])

    assert cluster_positive_set(assignment, labels) == frozenset({0, 1})

    predictions = cluster_predictions(assignment, labels)
    assert predictions.tolist() == [1] * 15 + [0] * 20


def test_low_proportions_keep_exactly_the_top_two():
    assignment, labels = _groups({0: (10, 1), 1: (10, 2), 2: (10, 2), 3: (10, 0)})
    assert cluster_positive_set(assignment, labels) == frozenset({1, 2})


def test_equal_positive_counts_prefer_lower_group_id():
    assignment, labels = _groups({3: (10, 2), 0: (10, 2), 1: (10, 1), 2: (10, 2)})

    positive_set = cluster_positive_set(assignment, labels)

    assert positive_set == frozenset({0, 2})
    assert cluster_positive_set(assignment, labels) == positive_set


def test_threshold_groups_extend_beyond_top_two():
    assignment, labels = _groups({0: (4, 1), 1: (4, 2), 2: (4, 3), 3: (40, 5)})
    # top two by count: 3 (5) and 2 (3); 0, 1 and 2 reach a 0.25 proportion
    assert cluster_positive_set(assignment, labels) == frozenset({0, 1, 2, 3})


def test_single_group_does_not_fail():
    assignment = np.zeros(6, dtype=int)
    labels = np.array([0, 0, 0, 0, 0, 1])

    assert cluster_positive_set(assignment, labels) == frozenset({0})
    assert cluster_predictions(assignment, labels).tolist() == [1] * 6


def test_policy_parameters_are_honored():
    assignment, labels = _groups({0: (10, 3), 1: (5, 4), 2: (20, 1)})
    assert cluster_positive_set(assignment, labels, top_n=1, proportion_threshold=0.9) == frozenset({1})


def test_noise_group_is_an_ordinary_group_for_cluster_policy():
    assignment, labels = _groups({-1: (5, 5), 0: (20, 0), 1: (20, 1)})
    assert cluster_positive_set(assignment, labels) == frozenset({-1, 1})


def test_mismatched_lengths_are_rejected():
    with pytest.raises(InvalidArgument):
        cluster_predictions([0, 1, 1], [1, 0])
    with pytest.raises(InvalidArgument):
        to_predictions(ExplicitLabel(positive_ids=frozenset({1})), [0, 1, 1], [1, 0])
    with pytest.raises(InvalidArgument):
        to_predictions(Clustering(), [], [])


def test_cluster_summary_rejects_non_binary_labels():
    with pytest.raises(InvalidArgument):
        cluster_summary([0, 1], [0, 2])


def test_explicit_positive_ids():
    predictions = explicit_label_predictions([-1, 0, 1, -1, 2], positive_ids={-1})
    assert predictions.tolist() == [1, 0, 0, 1, 0]


def test_explicit_inlier_ids_flag_everything_else():
    predictions = explicit_label_predictions([0, 0, 1, -1, 2], inlier_ids={0})
    assert predictions.tolist() == [0, 0, 1, 1, 1]


@pytest.mark.parametrize(
    "positive_ids, inlier_ids",
    [
        (None, None),
        (set(), None),
        (None, frozenset()),
        ({1}, {0}),
    ],
)
def test_explicit_policy_needs_one_non_empty_set(positive_ids, inlier_ids):
    with pytest.raises(InvalidArgument):
        explicit_label_predictions([0, 1, 1], positive_ids=positive_ids, inlier_ids=inlier_ids)


def test_threshold_is_strict():
    predictions = threshold_predictions([0.1, 0.5, 0.9], 0.5)
    assert predictions.tolist() == [0, 0, 1]


def test_dispatch_by_kind():
    assignment, labels = _groups({0: (10, 3), 1: (5, 4), 2: (20, 1)})

    assert to_predictions(Clustering(), assignment, labels).sum() == 15
    assert to_predictions(ExplicitLabel(positive_ids=frozenset({2})), assignment, labels).sum() == 20

    scores = np.linspace(0.0, 1.0, len(labels))
    assert to_predictions(ScoreThreshold(), scores, labels, {"threshold": 0.5}).tolist() == (scores > 0.5).astype(int).tolist()


def test_score_threshold_needs_threshold_param():
    with pytest.raises(InvalidArgument):
        to_predictions(ScoreThreshold(), [0.1, 0.2], [0, 1], {"n_neighbors": 5})


def test_unknown_kind_is_rejected():
    with pytest.raises(InvalidArgument):
        to_predictions("clustering", [0, 1], [0, 1])


@pytest.mark.parametrize("top_n", [0, -1])
def test_top_n_must_be_positive(top_n):
    assignment, labels = _groups({0: (10, 3), 1: (5, 4), 2: (20, 1)})
    with pytest.raises(InvalidArgument):
        cluster_positive_set(assignment, labels, top_n=top_n)
    with pytest.raises(InvalidArgument):
        to_predictions(Clustering(top_n=top_n), assignment, labels)


@pytest.mark.parametrize(
    "kind, params",
    [
        (Clustering(), None),
        (ExplicitLabel(positive_ids=frozenset({1})), None),
        (ScoreThreshold(), {"threshold": 0.5}),
    ],
)
def test_scalar_output_is_rejected_by_every_kind(kind, params):
    with pytest.raises(InvalidArgument):
        to_predictions(kind, np.array(1), [0, 1, 1], params)
