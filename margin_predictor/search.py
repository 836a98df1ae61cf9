"""
Hyperparameter search.

Two separate searches:
  - Elo constants over a Cartesian grid, scored by win-prediction accuracy
    of a full ledger replay (higher is better).
  - Regressor hyperparameters over a fixed-size random sample of declared
    ranges, scored by k-fold cross-validated RMSE (lower is better).

Every candidate is an independent unit of work handed to a joblib worker
pool; the results are collected and ranked. Equal scores keep enumeration
order, so a fixed grid and seed always pick the same winner.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.stats import randint, uniform
from sklearn.model_selection import KFold, ParameterGrid, ParameterSampler

from .config import CONFIG
from .elo import RatingParameters, replay
from .errors import ConfigurationError, MarginPredictorError, SearchExhaustionError
from .evaluate import majority_accuracy, rating_accuracy, rmse
from .ledger import home_win, prepare_ledger

log = logging.getLogger(__name__)

Split = Tuple[np.ndarray, np.ndarray]


@dataclass(frozen=True)
class SearchTrial:
    order: int
    params: Dict[str, Any]
    score: float
    fold_scores: Tuple[float, ...] = ()


@dataclass
class SearchResult:
    trials: List[SearchTrial]           # best first
    baseline: float
    higher_is_better: bool
    n_candidates: int
    interrupted: bool = False
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def best(self) -> SearchTrial:
        return self.trials[0]

    @property
    def beats_baseline(self) -> bool:
        if self.higher_is_better:
            return self.best.score > self.baseline
        return self.best.score < self.baseline

    def to_frame(self) -> pd.DataFrame:
        rows = [{"order": t.order, **t.params, "score": t.score} for t in self.trials]
        return pd.DataFrame(rows)


# ------------------------------ TRIAL LOOP ------------------------------ #

def _rank(trials: List[SearchTrial], higher_is_better: bool) -> List[SearchTrial]:
    def key(t: SearchTrial):
        bad = t.score is None or np.isnan(t.score)
        return (bad, 0.0 if bad else (-t.score if higher_is_better else t.score), t.order)
    return sorted(trials, key=key)


def _run_trials(task: Callable[..., SearchTrial],
                candidates: Sequence[Dict[str, Any]],
                args: tuple,
                n_jobs: int = 1,
                max_trials: Optional[int] = None,
                should_stop: Optional[Callable[[], bool]] = None) -> Tuple[List[SearchTrial], bool]:
    """
    Evaluate candidates in batches of `n_jobs`. The stop callback, the trial
    bound and Ctrl-C are only honoured between batches; a trial that started
    always finishes or is discarded whole.
    """
    todo = list(enumerate(candidates))
    if max_trials is not None:
        todo = todo[:int(max_trials)]

    batch = max(1, int(n_jobs))
    trials: List[SearchTrial] = []
    interrupted = False
    with Parallel(n_jobs=n_jobs) as parallel:
        for start in range(0, len(todo), batch):
            if should_stop is not None and should_stop():
                log.info("Search stopped by caller after %d trials", len(trials))
                interrupted = True
                break
            chunk = todo[start:start + batch]
            try:
                done = parallel(delayed(task)(order, params, *args) for order, params in chunk)
            except KeyboardInterrupt:
                log.warning("Search interrupted after %d trials; keeping finished trials", len(trials))
                interrupted = True
                break
            for t in done:
                log.debug("trial %d %s -> %.5f", t.order, t.params, t.score)
            trials.extend(done)
    return trials, interrupted


def _finish(trials: List[SearchTrial], baseline: float, higher_is_better: bool,
            n_candidates: int, interrupted: bool, label: str) -> SearchResult:
    if not trials:
        raise MarginPredictorError(f"{label} search finished no trials")
    result = SearchResult(
        trials=_rank(trials, higher_is_better),
        baseline=baseline,
        higher_is_better=higher_is_better,
        n_candidates=n_candidates,
        interrupted=interrupted,
    )
    log.info("%s search: best %s score=%.5f (baseline %.5f, %d/%d trials)",
             label, result.best.params, result.best.score, baseline, len(trials), n_candidates)
    if not result.beats_baseline:
        msg = (f"{label} search: no candidate beat the baseline "
               f"(best {result.best.score:.5f} vs {baseline:.5f}); keeping best found")
        log.warning(msg)
        warnings.warn(msg, SearchExhaustionError, stacklevel=3)
    return result


# ----------------------------- ELO SEARCH ------------------------------- #

def rating_candidates(grid: Optional[Dict[str, Sequence[float]]] = None) -> List[Dict[str, float]]:
    grid = grid if grid is not None else CONFIG["elo_grid"]
    if not grid or any(len(v) == 0 for v in grid.values()):
        raise ConfigurationError("Elo grid must list at least one value per parameter")
    candidates = list(ParameterGrid(grid))
    # validate every candidate before any replay runs
    for c in candidates:
        RatingParameters.from_dict(c)
    return candidates


def _score_rating(order: int, params: Dict[str, float], matches: pd.DataFrame, base: float) -> SearchTrial:
    result = replay(matches, RatingParameters.from_dict({**params, "base": base}))
    acc = rating_accuracy(result.probabilities, home_win(matches))
    return SearchTrial(order=order, params=dict(params), score=acc)


def search_rating_params(matches: pd.DataFrame,
                         grid: Optional[Dict[str, Sequence[float]]] = None,
                         base: float = 1500.0,
                         n_jobs: int = 1,
                         max_trials: Optional[int] = None,
                         should_stop: Optional[Callable[[], bool]] = None) -> SearchResult:
    """
    Replay the whole ledger once per grid point; keep the most accurate.
    """
    matches = prepare_ledger(matches)
    candidates = rating_candidates(grid)
    trials, interrupted = _run_trials(
        _score_rating, candidates, (matches, base),
        n_jobs=n_jobs, max_trials=max_trials, should_stop=should_stop,
    )
    baseline = majority_accuracy(home_win(matches))
    return _finish(trials, baseline, True, len(candidates), interrupted, "Elo")


# -------------------------- REGRESSOR SEARCH ---------------------------- #

def kfold_splits(n_rows: int, k: int = 5, shuffle: bool = True, seed: Optional[int] = 42) -> List[Split]:
    """
    k disjoint folds over range(n_rows); every row is held out exactly once and
    fold sizes differ by at most one. Without shuffle the folds are contiguous.
    """
    if k < 2:
        raise ConfigurationError(f"Need at least 2 folds, got {k}")
    if n_rows < k:
        raise ConfigurationError(f"Cannot split {n_rows} rows into {k} folds")
    kf = KFold(n_splits=k, shuffle=shuffle, random_state=seed if shuffle else None)
    return list(kf.split(np.arange(n_rows)))


def cross_validate_rmse(X: np.ndarray, y: np.ndarray, regressor, params: Dict[str, Any],
                        folds: Sequence[Split]) -> Tuple[float, Tuple[float, ...]]:
    scores = []
    for train_idx, test_idx in folds:
        model = regressor.fit(X[train_idx], y[train_idx], params)
        scores.append(rmse(y[test_idx], regressor.predict(model, X[test_idx])))
    return float(np.mean(scores)), tuple(scores)


def baseline_rmse(y: np.ndarray, folds: Sequence[Split]) -> float:
    """
    CV error of always predicting the training-fold mean margin.
    """
    return float(np.mean([rmse(y[te], np.full(len(te), y[tr].mean())) for tr, te in folds]))


def regressor_candidates(space: Optional[Dict[str, Tuple[float, float]]] = None,
                         n_candidates: int = 20,
                         seed: Optional[int] = 42) -> List[Dict[str, Any]]:
    """
    Fixed-size random draw from (low, high) ranges. Integer bounds are drawn
    as integers, float bounds uniformly; a range with low == high is fixed.
    """
    space = space if space is not None else CONFIG["regressor_space"]
    if n_candidates < 1:
        raise ConfigurationError(f"n_candidates must be >= 1, got {n_candidates}")
    dists: Dict[str, Any] = {}
    for name, (low, high) in space.items():
        if low > high:
            raise ConfigurationError(f"Range for {name} has low > high ({low} > {high})")
        if low == high:
            dists[name] = [low]
        elif isinstance(low, (int, np.integer)) and isinstance(high, (int, np.integer)):
            dists[name] = randint(low, high + 1)
        else:
            dists[name] = uniform(low, high - low)

    if all(isinstance(d, list) for d in dists.values()):
        return [{k: v[0] for k, v in dists.items()}]
    sampler = ParameterSampler(dists, n_iter=n_candidates, random_state=seed)
    return [dict(sorted(c.items())) for c in sampler]


def _score_regressor(order: int, params: Dict[str, Any], X: np.ndarray, y: np.ndarray,
                     regressor, folds: Sequence[Split]) -> SearchTrial:
    score, fold_scores = cross_validate_rmse(X, y, regressor, params, folds)
    return SearchTrial(order=order, params=dict(params), score=score, fold_scores=fold_scores)


def search_regressor_params(X, y, regressor,
                            space: Optional[Dict[str, Tuple[float, float]]] = None,
                            n_candidates: int = 20,
                            k: int = 5,
                            shuffle: bool = True,
                            seed: Optional[int] = 42,
                            n_jobs: int = 1,
                            max_trials: Optional[int] = None,
                            should_stop: Optional[Callable[[], bool]] = None) -> SearchResult:
    """
    Score each sampled candidate by mean k-fold RMSE; keep the lowest.
    All candidates see the same folds.
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    candidates = regressor_candidates(space, n_candidates, seed)
    folds = kfold_splits(len(y), k=k, shuffle=shuffle, seed=seed)

    trials, interrupted = _run_trials(
        _score_regressor, candidates, (X, y, regressor, folds),
        n_jobs=n_jobs, max_trials=max_trials, should_stop=should_stop,
    )
    result = _finish(trials, baseline_rmse(y, folds), False, len(candidates), interrupted, "Regressor")
    result.meta["k"] = k
    return result
