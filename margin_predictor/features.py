# margin_predictor/features.py
# Match-level feature builder
# - Elo history, rolling form and schedule features joined per match
# - each side's state is taken as it stood after that side's previous match
#   in the same season; nothing computed at or after the match leaks in
# - per-team state snapshot for inference

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .elo import RatingParameters, replay
from .form import compute_form, form_columns, tracked_stats
from .ledger import margin, prepare_ledger, season_starts, team_long
from .schedule import SENTINEL, assign_seasons, schedule_features

log = logging.getLogger(__name__)

ID_COLUMNS = ["season", "match_id", "date", "seq", "home", "away"]


def feature_columns(stats: Iterable[str]) -> List[str]:
    """
    Canonical model input order for a given set of tracked stats.
    """
    fcols = form_columns(stats)
    cols = ["elo_home", "elo_away", "elo_diff"]
    for c in fcols:
        cols += [f"home_{c}", f"away_{c}", f"{c}_diff"]
    cols += [
        "rest_days_home", "rest_days_away", "rest_days_diff",
        "next_game_days_home", "next_game_days_away", "next_game_days_diff",
    ]
    return cols


def _team_states(history: pd.DataFrame, form: pd.DataFrame) -> pd.DataFrame:
    """
    One row per (season, team, match): rating after the match, form snapshot
    at the match, and the team's previous match in the same season.
    """
    states = history[["season", "match_id", "seq", "date", "team", "elo_post"]].merge(
        form.drop(columns=["match_id"]), on=["season", "seq", "team"], how="left", validate="one_to_one"
    )
    states = states.sort_values(["season", "team", "seq"], kind="mergesort")
    prev = states.groupby(["season", "team"], sort=False)
    states["prior_seq"] = prev["seq"].shift(1)
    states["prior_match_id"] = prev["match_id"].shift(1)
    return states.reset_index(drop=True)


def _side_lookup(states: pd.DataFrame, fcols: List[str]) -> pd.DataFrame:
    """
    For every (team, seq) attach the state produced by the team's prior match.
    """
    current = states[["season", "seq", "team", "prior_seq", "prior_match_id"]]
    current = current[current["prior_seq"].notna()].copy()
    current["prior_seq"] = current["prior_seq"].astype(int)

    source = states[["season", "seq", "team", "elo_post"] + fcols].rename(
        columns={"seq": "prior_seq", "season": "source_season"}
    )
    out = current.merge(source, on=["team", "prior_seq"], how="left", validate="one_to_one")
    return out.rename(columns={"prior_seq": "source_seq", "prior_match_id": "source_match_id",
                               "elo_post": "elo"})


def _attach_side(df: pd.DataFrame, lookup: pd.DataFrame, side: str, fcols: List[str]) -> pd.DataFrame:
    cols = ["seq", "team", "elo", "source_seq", "source_match_id", "source_season"] + fcols
    renamed = lookup[cols].rename(columns={
        "team": side,
        "elo": f"elo_{side}",
        "source_seq": f"{side}_source_seq",
        "source_match_id": f"{side}_source_match_id",
        "source_season": f"{side}_source_season",
        **{c: f"{side}_{c}" for c in fcols},
    })
    return df.merge(renamed, on=["seq", side], how="left", validate="one_to_one")


def _attach_schedule(df: pd.DataFrame, sched: pd.DataFrame) -> pd.DataFrame:
    table = sched[["season", "team", "date", "rest_days", "next_game_days"]]
    for side in ("home", "away"):
        df = df.merge(
            table.rename(columns={"team": side, "rest_days": f"rest_days_{side}",
                                  "next_game_days": f"next_game_days_{side}"}),
            on=["season", side, "date"], how="left", validate="many_to_one",
        )
        for c in (f"rest_days_{side}", f"next_game_days_{side}"):
            df[c] = df[c].fillna(SENTINEL).astype(int)
    return df


def add_diff_features(df: pd.DataFrame, fcols: List[str]) -> pd.DataFrame:
    """
    Home-minus-away columns. Call only once both sides are filled in.
    """
    df["elo_diff"] = df["elo_home"] - df["elo_away"]
    for c in fcols:
        df[f"{c}_diff"] = df[f"home_{c}"] - df[f"away_{c}"]
    df["rest_days_diff"] = df["rest_days_home"] - df["rest_days_away"]
    df["next_game_days_diff"] = df["next_game_days_home"] - df["next_game_days_away"]
    return df


def assemble_match_features(matches: pd.DataFrame,
                            history: pd.DataFrame,
                            form: pd.DataFrame,
                            sched: pd.DataFrame) -> pd.DataFrame:
    """
    Build one feature row per match from an ordered ledger.

    Output columns include:
      - elo_home, elo_away, elo_diff (ratings after each side's prior match)
      - home_form_* / away_form_* (+ diffs), as of the prior match
      - rest_days_* / next_game_days_* (+ diffs), -1 at schedule boundaries
      - {home,away}_source_seq / _source_match_id: the match the state came from
      - margin (target)
    Matches where either side has no prior match this season, or no full form
    window at that prior match, are dropped.
    """
    fcols = [c for c in form.columns if c.startswith("form_")]
    states = _team_states(history, form)
    lookup = _side_lookup(states, fcols)

    df = matches[ID_COLUMNS].copy()
    df["margin"] = margin(matches).to_numpy()
    df = _attach_side(df, lookup, "home", fcols)
    df = _attach_side(df, lookup, "away", fcols)

    needed = ["elo_home", "elo_away"] + [f"{side}_{c}" for side in ("home", "away") for c in fcols]
    complete = df[needed].notna().all(axis=1)
    if (~complete).any():
        log.info("Dropped %d of %d matches without a prior match and full form window on both sides",
                 int((~complete).sum()), len(df))
    df = df[complete].copy()

    df = _attach_schedule(df, sched)
    df = add_diff_features(df, fcols)

    for side in ("home", "away"):
        df[f"{side}_source_seq"] = df[f"{side}_source_seq"].astype(int)
    return df.sort_values("seq").reset_index(drop=True)


def team_state(history: pd.DataFrame, form: pd.DataFrame) -> pd.DataFrame:
    """
    Latest state per team: rating after its last match, form snapshot at that
    match (NaN if the window was not full), and the match it came from.
    """
    states = _team_states(history, form)
    fcols = [c for c in form.columns if c.startswith("form_")]
    snap = (
        states.sort_values("seq")
              .drop_duplicates("team", keep="last")
              .loc[:, ["team", "season", "match_id", "seq", "date", "elo_post"] + fcols]
              .rename(columns={"elo_post": "elo", "match_id": "last_match_id",
                               "seq": "last_seq", "date": "last_date"})
    )
    return snap.sort_values("team").set_index("team")


# ------------------------------ ENTRY POINT ----------------------------- #

def build_features(matches: pd.DataFrame,
                   params: Optional[RatingParameters] = None,
                   window: int = 5,
                   schedule: Optional[pd.DataFrame] = None,
                   stats: Optional[Iterable[str]] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Run the full chain for one Elo configuration.
    If no schedule is given, the ledger's own dates are the schedule; a
    schedule without a season column is labelled from the ledger's season
    start dates.
    Returns (features_df, team_state_df).
    """
    matches = prepare_ledger(matches)
    long_df = team_long(matches)
    stats = tracked_stats(long_df, stats)

    result = replay(matches, params or RatingParameters())
    form = compute_form(long_df, window=window, stats=stats)
    if schedule is None:
        schedule = matches[["season", "date", "home", "away"]]
    else:
        schedule = assign_seasons(schedule, season_starts(matches))
    sched = schedule_features(schedule)

    feats = assemble_match_features(matches, result.history, form, sched)
    state = team_state(result.history, form)
    log.info("Built %d feature rows x %d features", len(feats), len(feature_columns(stats)))
    return feats, state
