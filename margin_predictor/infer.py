"""
Predict the home margin for unplayed fixtures from a fitted model bundle.

Each side's rating and form come from the team-state snapshot taken after
its most recent played match, the same "as of the prior match" rule used in
training. Rest / next-game days come from the played schedule plus the
fixtures themselves.

Usage:
  python -m margin_predictor.infer --home "Boston" --away "Miami" --date 2025-01-10
  python -m margin_predictor.infer --fixtures upcoming.csv --model models/model.joblib
"""
from __future__ import annotations

import argparse
import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .errors import DataIntegrityError, MissingPriorDataError
from .features import add_diff_features
from .schedule import SCHEDULE_COLUMNS, SENTINEL, assign_seasons, rest_features, schedule_long

log = logging.getLogger(__name__)


def _form_cols(team_state: pd.DataFrame) -> List[str]:
    return [c for c in team_state.columns if c.startswith("form_")]


def side_state(fitted, team: str, fixture: dict) -> Dict[str, float]:
    """
    Rating and form for `team` going into `fixture`. Raises
    MissingPriorDataError when the team never played or its last season
    did not fill a form window.
    """
    ts = fitted.team_state
    if team not in ts.index:
        raise MissingPriorDataError(team, fixture, "no prior match")
    row = ts.loc[team]
    fcols = _form_cols(ts)
    if row[fcols].isna().any():
        raise MissingPriorDataError(team, fixture, f"fewer than {fitted.form_window} prior matches")

    elo = float(row["elo"])
    season = fixture.get("season")
    if season is not None and season != row["season"]:
        p = fitted.rating_params
        elo = elo + p.season_regression * (p.base - elo)
    return {"elo": elo, **{c: float(row[c]) for c in fcols}}


def _rest_table(fitted, fixtures: pd.DataFrame, played_schedule: Optional[pd.DataFrame]) -> pd.DataFrame:
    ts = fitted.team_state
    if played_schedule is not None:
        # season-less played games are labelled from the training seasons
        # plus the fixtures' own seasons
        starts = dict(fitted.meta.get("season_starts", {}))
        for season, first in fixtures.groupby("season")["date"].min().items():
            starts[season] = min(starts.get(season, first), first)
        played = schedule_long(assign_seasons(played_schedule, starts))
    else:
        played = ts.reset_index()[["season", "team", "last_date"]].rename(columns={"last_date": "date"})

    future = pd.concat([
        fixtures[["season", "date", "home"]].rename(columns={"home": "team"}),
        fixtures[["season", "date", "away"]].rename(columns={"away": "team"}),
    ], ignore_index=True)
    combined = pd.concat([played, future], ignore_index=True).drop_duplicates(["season", "team", "date"])
    return rest_features(combined)[["team", "date", "rest_days", "next_game_days"]]


def _fixture_seasons(fitted, fixtures: pd.DataFrame) -> pd.DataFrame:
    """
    Fixtures without a season continue each side's last played season.
    """
    df = fixtures.copy()
    if "season" not in df.columns:
        ts = fitted.team_state
        df["season"] = df["home"].map(ts["season"]).fillna(df["away"].map(ts["season"]))
    return df


def vector_for_match(fitted, fixture: dict, rest: Optional[Dict[str, int]] = None) -> pd.DataFrame:
    """
    One-row feature frame for a single fixture, columns in fitted.feature_order.
    """
    home = side_state(fitted, fixture["home"], fixture)
    away = side_state(fitted, fixture["away"], fixture)
    rest = rest or {}

    row = {"elo_home": home["elo"], "elo_away": away["elo"]}
    for c in _form_cols(fitted.team_state):
        row[f"home_{c}"] = home[c]
        row[f"away_{c}"] = away[c]
    for col in ("rest_days", "next_game_days"):
        for side in ("home", "away"):
            row[f"{col}_{side}"] = int(rest.get(f"{col}_{side}", SENTINEL))

    df = add_diff_features(pd.DataFrame([row]), _form_cols(fitted.team_state))
    return df[fitted.feature_order]


def fixture_features(fitted, fixtures: pd.DataFrame,
                     played_schedule: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """
    Feature rows (fitted.feature_order) for every fixture, in fixture order.
    The first fixture involving a team without usable history raises
    MissingPriorDataError; nothing is filled in for it.
    """
    missing = [c for c in SCHEDULE_COLUMNS if c not in fixtures.columns]
    if missing:
        raise DataIntegrityError(f"Fixtures are missing columns {missing}")

    df = _fixture_seasons(fitted, fixtures)
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    if df["date"].isna().any():
        raise DataIntegrityError("Fixtures have unparseable dates")

    # surface missing history before doing any work
    records = df.to_dict("records")
    for fx in records:
        side_state(fitted, fx["home"], fx)
        side_state(fitted, fx["away"], fx)

    rest = _rest_table(fitted, df, played_schedule).set_index(["team", "date"]).sort_index()
    rows = []
    for fx in records:
        r = {}
        for side in ("home", "away"):
            key = (fx[side], fx["date"])
            if key in rest.index:
                r[f"rest_days_{side}"] = int(rest.loc[key, "rest_days"])
                r[f"next_game_days_{side}"] = int(rest.loc[key, "next_game_days"])
        rows.append(vector_for_match(fitted, fx, r))
    return pd.concat(rows, ignore_index=True)


def predict_margins(fitted, fixtures: pd.DataFrame,
                    played_schedule: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """
    Predicted home-minus-away margin for every fixture, keyed by the fixture's
    own identity columns.
    """
    X = fixture_features(fitted, fixtures, played_schedule)
    keys = [c for c in ["season"] + SCHEDULE_COLUMNS if c in fixtures.columns]
    out = fixtures[keys].reset_index(drop=True).copy()
    out["predicted_margin"] = np.asarray(fitted.predict(X), dtype=float)
    log.info("Predicted %d fixtures", len(out))
    return out


def main(argv: Optional[List[str]] = None):
    from .train_model import load_bundle

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    parser = argparse.ArgumentParser()
    parser.add_argument("--home", type=str, default=None)
    parser.add_argument("--away", type=str, default=None)
    parser.add_argument("--date", type=str, default=None)
    parser.add_argument("--fixtures", type=str, default=None, help="CSV with date, home, away")
    parser.add_argument("--model", type=str, default=None)
    args = parser.parse_args(argv)

    if args.fixtures:
        fixtures = pd.read_csv(args.fixtures)
    elif args.home and args.away and args.date:
        fixtures = pd.DataFrame([{"date": args.date, "home": args.home, "away": args.away}])
    else:
        parser.error("give --fixtures or all of --home/--away/--date")

    fitted = load_bundle(args.model)
    preds = predict_margins(fitted, fixtures)
    for rec in preds.to_dict("records"):
        print({k: (round(v, 2) if isinstance(v, float) else v) for k, v in rec.items()})


if __name__ == "__main__":
    main()
