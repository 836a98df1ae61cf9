from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .errors import DataIntegrityError

log = logging.getLogger(__name__)

SENTINEL = -1
SCHEDULE_COLUMNS = ["date", "home", "away"]


def schedule_long(schedule: pd.DataFrame) -> pd.DataFrame:
    missing = [c for c in SCHEDULE_COLUMNS if c not in schedule.columns]
    if missing:
        raise DataIntegrityError(f"Schedule is missing columns {missing}")

    df = schedule.copy()
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    if df[SCHEDULE_COLUMNS].isna().to_numpy().any():
        raise DataIntegrityError("Schedule has rows with a null/unparseable date or team")
    if (df["home"] == df["away"]).any():
        raise DataIntegrityError("Schedule has a row with the same team on both sides")
    if "season" not in df.columns:
        df["season"] = 0

    long = pd.concat([
        df[["season", "date", "home"]].rename(columns={"home": "team"}),
        df[["season", "date", "away"]].rename(columns={"away": "team"}),
    ], ignore_index=True)

    dup = long.duplicated(["season", "team", "date"], keep=False)
    if dup.any():
        first = long.loc[dup].iloc[0].to_dict()
        raise DataIntegrityError(f"Team scheduled twice on the same date: {first}")
    return long


def assign_seasons(schedule: pd.DataFrame, starts: dict) -> pd.DataFrame:
    """
    Label a season-less schedule using known season start dates: each row gets
    the latest season starting on or before its date (rows before the first
    start fall into the first season). Schedules that already carry a season,
    or calls without any start dates, are returned unchanged.
    """
    if "season" in schedule.columns or not starts:
        return schedule
    bounds = pd.Series(starts).map(pd.Timestamp).sort_values()
    df = schedule.copy()
    dates = pd.to_datetime(df["date"], errors="coerce")
    pos = np.searchsorted(bounds.to_numpy(dtype="datetime64[ns]"), dates.to_numpy(dtype="datetime64[ns]"),
                          side="right") - 1
    df["season"] = bounds.index.to_numpy()[np.clip(pos, 0, None)]
    return df


def rest_features(long: pd.DataFrame) -> pd.DataFrame:
    """
    Rest days / next-game days on a long (season, team, date) table.
    A team's first / last game of a season gets -1 instead of a value.
    """
    long = long.sort_values(["season", "team", "date"], kind="mergesort").copy()
    by_team = long.groupby(["season", "team"], sort=False)["date"]

    rest = by_team.diff().dt.days
    nxt = (-by_team.diff(-1)).dt.days

    long["rest_days"] = rest.fillna(SENTINEL).astype(int)
    long["next_game_days"] = nxt.fillna(SENTINEL).astype(int)
    log.debug("Schedule features for %d team-dates (%d sentinels)",
              len(long), int(np.sum(long[["rest_days", "next_game_days"]].to_numpy() == SENTINEL)))
    return long.reset_index(drop=True)


def schedule_features(schedule: pd.DataFrame) -> pd.DataFrame:
    """
    Rest days and days until next game for every team on every scheduled date.

    Input rows are {date, home, away} with an optional season column; played
    and unplayed games are treated the same. Without a season column the whole
    schedule counts as one season (see assign_seasons). Output columns:
    season, team, date, rest_days, next_game_days.
    """
    return rest_features(schedule_long(schedule))
