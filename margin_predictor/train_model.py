# margin_predictor/train_model.py: Elo search, feature build, regressor search, final refit

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import joblib
import pandas as pd

from .config import CONFIG, validate_config
from .elo import RatingParameters
from .features import build_features, feature_columns
from .form import tracked_stats
from .ledger import prepare_ledger, season_starts, team_long
from .regressor import XGBoostRegressor
from .search import SearchResult, search_rating_params, search_regressor_params

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FittedModel:
    rating_params: RatingParameters
    regressor_params: Dict[str, Any]
    regressor: Any
    model: Any
    feature_order: List[str]
    form_window: int
    form_stats: List[str]
    team_state: pd.DataFrame
    meta: Dict[str, Any] = field(default_factory=dict)

    def predict(self, X: pd.DataFrame):
        return self.regressor.predict(self.model, X[self.feature_order].to_numpy())


def train(matches: pd.DataFrame,
          schedule: Optional[pd.DataFrame] = None,
          config: Optional[Dict[str, Any]] = None,
          regressor=None,
          should_stop: Optional[Callable[[], bool]] = None) -> FittedModel:
    """
    Full training pass on an in-memory ledger.

    1) pick Elo constants by replay accuracy over the grid
    2) build leakage-free features with the winning constants
    3) pick regressor hyperparameters by k-fold CV RMSE
    4) refit the winner on every feature row
    """
    cfg = validate_config(config if config is not None else CONFIG)
    matches = prepare_ledger(matches)
    if regressor is None:
        regressor = XGBoostRegressor(seed=cfg["seed"])

    base = float(cfg["elo"]["base"])
    elo_search = search_rating_params(
        matches, grid=cfg["elo_grid"], base=base, n_jobs=cfg["n_jobs"],
        max_trials=cfg.get("max_trials"), should_stop=should_stop,
    )
    rating_params = RatingParameters.from_dict({**elo_search.best.params, "base": base})

    stats = tracked_stats(team_long(matches), cfg.get("form_stats"))
    feats, state = build_features(matches, rating_params, window=cfg["form_window"],
                                  schedule=schedule, stats=stats)
    order = feature_columns(stats)
    X = feats[order].to_numpy()
    y = feats["margin"].to_numpy()

    reg_search = search_regressor_params(
        X, y, regressor,
        space=cfg["regressor_space"],
        n_candidates=cfg["n_candidates"],
        k=cfg["cv_folds"],
        shuffle=cfg.get("cv_shuffle", True),
        seed=cfg["seed"],
        n_jobs=cfg["n_jobs"],
        max_trials=cfg.get("max_trials"),
        should_stop=should_stop,
    )
    best = dict(reg_search.best.params)
    model = regressor.fit(X, y, best)

    fitted = FittedModel(
        rating_params=rating_params,
        regressor_params=best,
        regressor=regressor,
        model=model,
        feature_order=order,
        form_window=cfg["form_window"],
        form_stats=stats,
        team_state=state,
        meta={
            "n_matches": int(len(matches)),
            "n_samples": int(len(feats)),
            "season_starts": season_starts(matches),
            "elo_accuracy": float(elo_search.best.score),
            "cv_rmse": float(reg_search.best.score),
            "elo_search": _summary(elo_search),
            "regressor_search": _summary(reg_search),
        },
    )
    log.info("Final model: %s, regressor=%s, cv_rmse=%.3f on %d rows",
             rating_params, best, reg_search.best.score, len(feats))
    return fitted


def _summary(result: SearchResult) -> Dict[str, Any]:
    return {
        "trials": result.to_frame(),
        "baseline": float(result.baseline),
        "beats_baseline": bool(result.beats_baseline),
        "interrupted": bool(result.interrupted),
    }


def save_bundle(fitted: FittedModel, path: Optional[str] = None) -> Path:
    model_path = Path(path or CONFIG["model_path"])
    model_path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(fitted, model_path)
    return model_path


def load_bundle(path: Optional[str] = None) -> FittedModel:
    model_path = Path(path or CONFIG["model_path"])
    if not model_path.exists():
        raise FileNotFoundError(f"Model not found at {model_path}. Train it with train_model.py")
    return joblib.load(model_path)


def main(argv: Optional[List[str]] = None):
    """
    CLI entry:
      python -m margin_predictor.train_model games.csv [--schedule schedule.csv] [--out models/model.joblib]
    """
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    parser = argparse.ArgumentParser()
    parser.add_argument("ledger", type=str, help="CSV with one row per completed match")
    parser.add_argument("--schedule", type=str, default=None)
    parser.add_argument("--out", type=str, default=CONFIG["model_path"])
    parser.add_argument("--n-jobs", type=int, default=CONFIG["n_jobs"])
    args = parser.parse_args(argv)

    cfg = {**CONFIG, "n_jobs": args.n_jobs}
    matches = pd.read_csv(args.ledger)
    schedule = pd.read_csv(args.schedule) if args.schedule else None
    fitted = train(matches, schedule=schedule, config=cfg)
    out = save_bundle(fitted, args.out)
    log.info("Wrote %s (elo acc=%.3f, cv rmse=%.3f)", out, fitted.meta["elo_accuracy"], fitted.meta["cv_rmse"])


if __name__ == "__main__":
    main()
