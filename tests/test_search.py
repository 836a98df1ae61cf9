"""
tests/test_search.py: hyperparameter search controller.

Validates:
  - k-fold partitions (disjoint, each row held out once, sizes within 1)
  - Elo grid search scores every grid point and ranks best first
  - Regressor search is reproducible for a fixed seed
  - Ties keep enumeration order
  - Trial bound / stop callback are honoured between trials
  - SearchExhaustionError warning when nothing beats the baseline
"""
import warnings

import numpy as np
import pandas as pd
import pytest
from sklearn.dummy import DummyRegressor
from sklearn.linear_model import Ridge

from margin_predictor.errors import ConfigurationError, SearchExhaustionError
from margin_predictor.evaluate import rating_accuracy
from margin_predictor.elo import RatingParameters, replay
from margin_predictor.ledger import home_win, prepare_ledger
from margin_predictor.regressor import SklearnRegressor
from margin_predictor.search import (
    SearchTrial,
    _rank,
    kfold_splits,
    rating_candidates,
    regressor_candidates,
    search_rating_params,
    search_regressor_params,
)

GRID = {"k": [10, 30], "home_adv": [0, 80], "season_regression": [0.0, 0.5]}


@pytest.fixture
def linear_data():
    rng = np.random.default_rng(7)
    X = rng.normal(size=(120, 3))
    y = 4.0 * X[:, 0] - 2.0 * X[:, 1] + rng.normal(scale=0.5, size=120)
    return X, y


# ── Folds ────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("n_rows", [5, 23, 100, 101])
@pytest.mark.parametrize("shuffle", [True, False])
def test_kfold_partition(n_rows, shuffle):
    folds = kfold_splits(n_rows, k=5, shuffle=shuffle, seed=1)
    assert len(folds) == 5
    held = np.concatenate([test for _, test in folds])
    assert sorted(held.tolist()) == list(range(n_rows))
    sizes = [len(test) for _, test in folds]
    assert max(sizes) - min(sizes) <= 1
    for train, test in folds:
        assert not set(train) & set(test)
        assert len(train) + len(test) == n_rows


def test_kfold_without_shuffle_is_contiguous():
    folds = kfold_splits(10, k=5, shuffle=False)
    assert [test.tolist() for _, test in folds] == [[0, 1], [2, 3], [4, 5], [6, 7], [8, 9]]


def test_kfold_rejects_bad_sizes():
    with pytest.raises(ConfigurationError):
        kfold_splits(3, k=5)
    with pytest.raises(ConfigurationError):
        kfold_splits(10, k=1)


# ── Elo grid ─────────────────────────────────────────────────────────────────

def test_rating_search_scores_every_grid_point(ledger):
    df = prepare_ledger(ledger)
    result = search_rating_params(df, grid=GRID)

    assert len(result.trials) == 8 == result.n_candidates
    scores = [t.score for t in result.trials]
    assert scores == sorted(scores, reverse=True)

    best = result.best
    expected = rating_accuracy(
        replay(df, RatingParameters.from_dict(best.params)).probabilities, home_win(df)
    )
    assert best.score == pytest.approx(expected)
    assert set(result.to_frame().columns) >= {"k", "home_adv", "season_regression", "score"}


def test_rating_search_same_result_in_worker_pool(ledger):
    df = prepare_ledger(ledger)
    serial = search_rating_params(df, grid=GRID, n_jobs=1)
    pooled = search_rating_params(df, grid=GRID, n_jobs=2)
    assert [t.params for t in serial.trials] == [t.params for t in pooled.trials]
    assert [t.score for t in serial.trials] == [t.score for t in pooled.trials]


def test_rating_candidates_validated_up_front():
    with pytest.raises(ConfigurationError):
        rating_candidates({"k": [10, -1], "home_adv": [0], "season_regression": [0.0]})
    with pytest.raises(ConfigurationError):
        rating_candidates({"k": [], "home_adv": [0], "season_regression": [0.0]})


def test_rating_search_warns_when_home_always_wins(ledger):
    df = ledger.copy()
    df["home_score"] = df["away_score"] + 5
    with pytest.warns(SearchExhaustionError):
        result = search_rating_params(df, grid={"k": [20], "home_adv": [0], "season_regression": [0.0]})
    assert result.baseline == 1.0
    assert not result.beats_baseline
    assert result.best.params == {"home_adv": 0, "k": 20, "season_regression": 0.0}


def test_max_trials_and_stop_callback(ledger):
    df = prepare_ledger(ledger)
    bounded = search_rating_params(df, grid=GRID, max_trials=3)
    assert len(bounded.trials) == 3
    assert sorted(t.order for t in bounded.trials) == [0, 1, 2]

    calls = {"n": 0}

    def stop_after_two():
        calls["n"] += 1
        return calls["n"] > 2

    stopped = search_rating_params(df, grid=GRID, should_stop=stop_after_two)
    assert len(stopped.trials) == 2
    assert stopped.interrupted


# ── Ranking ──────────────────────────────────────────────────────────────────

def test_ties_keep_first_encountered():
    trials = [
        SearchTrial(order=0, params={"a": 0}, score=2.0),
        SearchTrial(order=1, params={"a": 1}, score=1.0),
        SearchTrial(order=2, params={"a": 2}, score=1.0),
        SearchTrial(order=3, params={"a": 3}, score=float("nan")),
    ]
    low = _rank(list(reversed(trials)), higher_is_better=False)
    assert [t.order for t in low] == [1, 2, 0, 3]
    high = _rank(trials, higher_is_better=True)
    assert [t.order for t in high] == [0, 1, 2, 3]


# ── Regressor search ─────────────────────────────────────────────────────────

def test_regressor_candidates_respect_ranges():
    space = {"n_estimators": (50, 60), "learning_rate": (0.01, 0.1), "max_depth": (3, 3)}
    cands = regressor_candidates(space, n_candidates=25, seed=3)
    assert len(cands) == 25
    for c in cands:
        assert 50 <= c["n_estimators"] <= 60 and float(c["n_estimators"]).is_integer()
        assert 0.01 <= c["learning_rate"] <= 0.1
        assert c["max_depth"] == 3
    assert cands == regressor_candidates(space, n_candidates=25, seed=3)


def test_regressor_candidates_reject_inverted_range():
    with pytest.raises(ConfigurationError):
        regressor_candidates({"alpha": (1.0, 0.1)}, n_candidates=3)


def test_regressor_search_picks_lowest_cv_rmse(linear_data):
    X, y = linear_data
    reg = SklearnRegressor(Ridge)
    with warnings.catch_warnings():
        warnings.simplefilter("error", SearchExhaustionError)
        result = search_regressor_params(X, y, reg, space={"alpha": (0.01, 50.0)},
                                         n_candidates=6, k=5, seed=11)
    assert result.beats_baseline
    assert result.best.score == min(t.score for t in result.trials)
    assert len(result.best.fold_scores) == 5
    assert result.best.score == pytest.approx(np.mean(result.best.fold_scores))

    again = search_regressor_params(X, y, reg, space={"alpha": (0.01, 50.0)},
                                    n_candidates=6, k=5, seed=11, n_jobs=2)
    assert again.best.params == result.best.params
    assert again.best.score == pytest.approx(result.best.score)


def test_regressor_search_warns_when_no_candidate_beats_mean(linear_data):
    X, y = linear_data
    reg = SklearnRegressor(DummyRegressor, base_params={"strategy": "constant"})
    with pytest.warns(SearchExhaustionError):
        result = search_regressor_params(X, y, reg, space={"constant": (1000.0, 1000.0)},
                                         n_candidates=2, k=3, seed=0)
    assert result.best.params == {"constant": 1000.0}
    assert not result.beats_baseline
