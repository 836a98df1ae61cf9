from __future__ import annotations

from typing import Any, Dict

from .errors import ConfigurationError

CONFIG = {
    "model_path": "models/model.joblib",

    # Elo settings; search picks k / home_adv / season_regression from the grid
    "elo": {
        "base": 1500,
        "k": 20,
        "home_adv": 100,
        "season_regression": 0.25,
    },
    "elo_grid": {
        "k": [10, 15, 20, 25, 30],
        "home_adv": [0, 50, 75, 100, 125],
        "season_regression": [0.0, 0.25, 0.5, 0.75],
    },

    # Rolling window for "recent form"
    "form_window": 5,
    # None -> points plus every box-score stat found in the ledger
    "form_stats": None,

    # Regressor search: (low, high) ranges, ints sampled as integers
    "regressor_space": {
        "n_estimators": (100, 1000),
        "max_depth": (2, 8),
        "learning_rate": (0.005, 0.3),
        "min_child_weight": (1, 20),
        "subsample": (0.5, 1.0),
        "colsample_bytree": (0.5, 1.0),
    },
    "n_candidates": 20,
    "cv_folds": 5,
    "cv_shuffle": True,
    "seed": 42,
    "n_jobs": 1,
    "max_trials": None,  # None -> evaluate every candidate
}


def _check(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigurationError(msg)


def validate_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reject invalid settings before any replay starts. Returns cfg unchanged.
    """
    elo = cfg.get("elo", {})
    _check(float(elo.get("k", 1)) > 0, f"elo.k must be > 0, got {elo.get('k')}")
    _check(float(elo.get("home_adv", 0)) >= 0, f"elo.home_adv must be >= 0, got {elo.get('home_adv')}")
    sr = float(elo.get("season_regression", 0))
    _check(0.0 <= sr <= 1.0, f"elo.season_regression must be in [0, 1], got {sr}")

    grid = cfg.get("elo_grid", {})
    for name in ("k", "home_adv", "season_regression"):
        values = grid.get(name)
        _check(bool(values), f"elo_grid.{name} must be a non-empty list")
    _check(all(float(v) > 0 for v in grid["k"]), "elo_grid.k values must be > 0")
    _check(all(float(v) >= 0 for v in grid["home_adv"]), "elo_grid.home_adv values must be >= 0")
    _check(all(0.0 <= float(v) <= 1.0 for v in grid["season_regression"]),
           "elo_grid.season_regression values must be in [0, 1]")

    window = cfg.get("form_window")
    _check(isinstance(window, int) and window >= 1, f"form_window must be a positive int, got {window!r}")

    space = cfg.get("regressor_space", {})
    _check(bool(space), "regressor_space must declare at least one hyperparameter")
    for name, bounds in space.items():
        _check(len(bounds) == 2, f"regressor_space.{name} must be a (low, high) pair")
        low, high = bounds
        _check(low <= high, f"regressor_space.{name} has low > high ({low} > {high})")

    _check(int(cfg.get("n_candidates", 0)) >= 1, "n_candidates must be >= 1")
    _check(int(cfg.get("cv_folds", 0)) >= 2, "cv_folds must be >= 2")
    max_trials = cfg.get("max_trials")
    _check(max_trials is None or int(max_trials) >= 1, "max_trials must be None or >= 1")
    return cfg
