from __future__ import annotations

import logging
import weakref

import numpy as np
import pytest

from conftest import make_dataset
from errors import InvalidArgument, NoValidConfiguration
from parameter_search import ParameterGrid, run_parameter_search
from prediction import Clustering, ExplicitLabel, ScoreThreshold


def first_feature(features, params):
    return features[:, 0]


# ----------------------------- grid ---------------------------------


def test_linspace_grid_includes_both_ends():
    grid = ParameterGrid.linspace("threshold", 0.0, 1.0, 5)
    assert [p["threshold"] for p in grid] == pytest.approx([0.0, 0.25, 0.5, 0.75, 1.0])
    assert len(grid) == 5
    assert grid.ndim == 1


def test_cartesian_grid_enumerates_first_axis_outermost():
    grid = ParameterGrid.cartesian(eps=[0.1, 0.2], min_samples=[3, 4, 5])

    assert len(grid) == 6
    assert list(grid) == [
        {"eps": 0.1, "min_samples": 3},
        {"eps": 0.1, "min_samples": 4},
        {"eps": 0.1, "min_samples": 5},
        {"eps": 0.2, "min_samples": 3},
        {"eps": 0.2, "min_samples": 4},
        {"eps": 0.2, "min_samples": 5},
    ]


def test_grid_from_scores_spans_observed_range():
    grid = ParameterGrid.from_scores([3.0, -1.0, np.nan, 7.0], steps=3)
    assert [p["threshold"] for p in grid] == pytest.approx([-1.0, 3.0, 7.0])


def test_product_appends_inner_axes():
    grid = ParameterGrid.cartesian(n_neighbors=[5]).product(ParameterGrid.linspace("threshold", 0, 1, 2))
    assert grid.names == ["n_neighbors", "threshold"]
    assert list(grid) == [{"n_neighbors": 5, "threshold": 0.0}, {"n_neighbors": 5, "threshold": 1.0}]


@pytest.mark.parametrize(
    "build",
    [
        lambda: ParameterGrid({}),
        lambda: ParameterGrid.cartesian(k=[]),
        lambda: ParameterGrid.linspace("t", 0.0, 1.0, 0),
        lambda: ParameterGrid.from_scores([np.nan], 10),
        lambda: ParameterGrid.cartesian(k=[1]).product(ParameterGrid.cartesian(k=[2])),
    ],
)
def test_malformed_grids_are_rejected(build):
    with pytest.raises(InvalidArgument):
        build()


# ----------------------------- 1-D sweep ----------------------------


def test_threshold_sweep_finds_the_peak(ranked_dataset):
    grid = ParameterGrid.linspace("threshold", 0.0, 99.0, 100)

    result = run_parameter_search(first_feature, grid, ScoreThreshold(), ranked_dataset)

    # scores above 69 are exactly the positives
    assert result.best_params["threshold"] == pytest.approx(69.0)
    assert result.best_metrics.combined_score == pytest.approx(3.0)
    assert result.best_predictions.tolist() == ranked_dataset.labels.tolist()
    assert result.n_attempted == 100


def test_coarse_threshold_sweep_lands_within_one_step(ranked_dataset):
    grid = ParameterGrid.linspace("threshold", 0.0, 99.0, 12)
    step = 99.0 / 11

    result = run_parameter_search(first_feature, grid, ScoreThreshold(), ranked_dataset)

    assert abs(result.best_params["threshold"] - 69.5) <= step


def test_scores_are_computed_once_per_detector_setting(ranked_dataset):
    calls = []

    def counting_detector(features, params):
        calls.append(dict(params))
        return features[:, 0] * params["scale"]

    grid = ParameterGrid.cartesian(scale=[1.0, 2.0]).product(ParameterGrid.linspace("threshold", 0.0, 200.0, 21))
    run_parameter_search(counting_detector, grid, ScoreThreshold(), ranked_dataset)

    assert calls == [{"scale": 1.0}, {"scale": 2.0}]


def test_score_search_needs_threshold_axis(ranked_dataset):
    with pytest.raises(InvalidArgument):
        run_parameter_search(first_feature, ParameterGrid.cartesian(n_neighbors=[5]), ScoreThreshold(), ranked_dataset)


def test_no_positive_predictions_anywhere_is_no_valid_configuration():
    dataset = make_dataset(np.zeros(10), [1, 0] * 5)
    grid = ParameterGrid.linspace("threshold", 0.5, 1.0, 6)

    with pytest.raises(NoValidConfiguration) as excinfo:
        run_parameter_search(first_feature, grid, ScoreThreshold(), dataset, label="flat")

    assert excinfo.value.n_attempted == 6
    assert excinfo.value.n_nan == 6
    assert excinfo.value.failures == []
    assert "6 tuples attempted" in str(excinfo.value)


# ----------------------------- 2-D sweep ----------------------------


def banded_detector(features, params):
    """Group ids: samples at or above params['cut'] form group 1, the rest group 0, shifted by params['offset']."""
    return (features[:, 0] >= params["cut"]).astype(int) + params["offset"]


def test_two_dimensional_sweep_is_deterministic_across_workers(ranked_dataset):
    grid = ParameterGrid.cartesian(cut=np.linspace(40, 90, 11).tolist(), offset=[0, 10, 20])
    kind = ExplicitLabel(inlier_ids=frozenset({0, 10, 20}))

    sequential = run_parameter_search(banded_detector, grid, kind, ranked_dataset)
    repeated = run_parameter_search(banded_detector, grid, kind, ranked_dataset)
    parallel = run_parameter_search(banded_detector, grid, kind, ranked_dataset, n_jobs=4)

    for other in (repeated, parallel):
        assert other.best_params == sequential.best_params
        assert other.best_metrics == sequential.best_metrics

    # offsets do not change predictions, so the first offset of the best cut wins
    assert sequential.best_params == {"cut": 70.0, "offset": 0}
    assert sequential.best_metrics.combined_score == pytest.approx(3.0)


def test_equal_scores_keep_the_first_tuple(ranked_dataset):
    grid = ParameterGrid.cartesian(a=[3, 1, 2], b=["x", "y"])

    result = run_parameter_search(lambda f, p: (f[:, 0] >= 70).astype(int), grid, Clustering(), ranked_dataset, n_jobs=3)

    assert result.best_params == {"a": 3, "b": "x"}


def test_failing_tuples_are_skipped(ranked_dataset, caplog):
    def fragile_detector(features, params):
        if params["cut"] == 69.0:
            raise ValueError("unsupported cut")
        return (features[:, 0] > params["cut"]).astype(int)

    grid = ParameterGrid.cartesian(cut=[60.0, 69.0, 75.0])
    with caplog.at_level(logging.WARNING, logger="SEARCH"):
        result = run_parameter_search(fragile_detector, grid, ExplicitLabel(positive_ids=frozenset({1})), ranked_dataset)

    assert result.n_failed == 1
    assert result.best_params in ({"cut": 60.0}, {"cut": 75.0})
    assert "unsupported cut" in caplog.text

    history = result.history_frame()
    assert history["status"].tolist() == ["ok", "failed", "ok"]
    assert history.loc[1, "error"] == "unsupported cut"


def test_every_tuple_failing_is_no_valid_configuration(ranked_dataset):
    def broken_detector(features, params):
        raise RuntimeError("no convergence")

    grid = ParameterGrid.cartesian(k=[2, 3], linkage=["ward", "single"])

    with pytest.raises(NoValidConfiguration) as excinfo:
        run_parameter_search(broken_detector, grid, Clustering(), ranked_dataset, label="broken")

    assert len(excinfo.value.failures) == 4
    assert excinfo.value.n_nan == 0
    assert "RuntimeError" in str(excinfo.value)


def test_contract_violations_are_not_swallowed(ranked_dataset):
    grid = ParameterGrid.cartesian(k=[2, 3])

    with pytest.raises(InvalidArgument):
        run_parameter_search(lambda f, p: np.zeros(5, dtype=int), grid, Clustering(), ranked_dataset)


def test_only_the_winner_keeps_its_output(ranked_dataset):
    grid = ParameterGrid.linspace("threshold", 0.0, 99.0, 10)

    result = run_parameter_search(first_feature, grid, ScoreThreshold(), ranked_dataset)

    kept = [e for e in result.evaluations if e.assignment is not None]
    assert len(kept) == 1
    assert kept[0].params == result.best_params
    assert result.best_assignment.shape == (100,)


def test_history_frame_has_one_row_per_tuple(ranked_dataset):
    grid = ParameterGrid.linspace("threshold", 0.0, 99.0, 10)

    result = run_parameter_search(first_feature, grid, ScoreThreshold(), ranked_dataset, label="ranked")
    history = result.history_frame()

    assert len(history) == 10
    assert {"threshold", "sensitivity", "specificity", "precision", "combined_score", "status"} <= set(history.columns)
    # the last threshold flags nothing
    assert history["status"].iloc[-1] == "nan"
    assert result.summary_row()["detector"] == "ranked"


@pytest.mark.parametrize("n_jobs", [1, 3])
def test_losing_outputs_are_released_during_the_sweep(ranked_dataset, n_jobs):
    returned = []
    alive_at_call = []

    def tracked_detector(features, params):
        alive_at_call.append(sum(ref() is not None for ref in returned))
        assignment = (features[:, 0] >= params["cut"]).astype(int)
        returned.append(weakref.ref(assignment))
        return assignment

    grid = ParameterGrid.linspace("cut", 50.0, 88.0, 20)
    result = run_parameter_search(tracked_detector, grid, ExplicitLabel(positive_ids=frozenset({1})), ranked_dataset,
                                  n_jobs=n_jobs)

    assert len(alive_at_call) == 20
    # the running best plus at most the unfolded outputs of the current worker window
    assert max(alive_at_call) <= n_jobs
    assert sum(ref() is not None for ref in returned) == 1
    assert result.best_params == {"cut": 70.0}


def test_failing_score_detector_runs_once_and_warns_once(ranked_dataset, caplog):
    calls = []

    def unstable_scores(features, params):
        calls.append(dict(params))
        raise FloatingPointError("scores diverged")

    grid = ParameterGrid.linspace("threshold", 0.0, 99.0, 12)
    with caplog.at_level(logging.DEBUG, logger="SEARCH"):
        with pytest.raises(NoValidConfiguration) as excinfo:
            run_parameter_search(unstable_scores, grid, ScoreThreshold(), ranked_dataset, label="unstable")

    assert calls == [{}]
    assert len(excinfo.value.failures) == 12
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING and "scores diverged" in r.getMessage()]
    assert len(warnings) == 1


def test_score_failures_are_cached_per_detector_setting(ranked_dataset):
    calls = []

    def picky_scores(features, params):
        calls.append(params["scale"])
        if params["scale"] < 0:
            raise ValueError("negative scale")
        return features[:, 0] * params["scale"]

    grid = ParameterGrid.cartesian(scale=[-1.0, 1.0]).product(ParameterGrid.linspace("threshold", 0.0, 99.0, 12))
    result = run_parameter_search(picky_scores, grid, ScoreThreshold(), ranked_dataset, n_jobs=4)

    assert sorted(calls) == [-1.0, 1.0]
    assert result.n_failed == 12
    assert result.best_params["scale"] == 1.0


def test_scalar_detector_output_is_a_contract_violation(ranked_dataset):
    grid = ParameterGrid.cartesian(cut=[1, 2])

    with pytest.raises(InvalidArgument):
        run_parameter_search(lambda f, p: np.int64(1), grid, ExplicitLabel(positive_ids=frozenset({1})), ranked_dataset)
