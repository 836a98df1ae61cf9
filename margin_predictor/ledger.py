# margin_predictor/ledger.py
# Canonical match ledger
# - validation (raises DataIntegrityError, never repairs rows)
# - deterministic chronological order with a `seq` column
# - two-rows-per-match -> one-row-per-match pivot
# - per-team long table used by form and feature assembly

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from .errors import DataIntegrityError

log = logging.getLogger(__name__)

MATCH_KEYS = ["season", "match_id"]
REQUIRED_COLUMNS = ["season", "match_id", "date", "home", "away", "home_score", "away_score"]
ORDER_COLUMNS = ["season", "date", "match_id"]


def box_score_stats(matches: pd.DataFrame) -> List[str]:
    """
    Names of the box-score statistics carried as home_<stat>/away_<stat> pairs.
    """
    stats = []
    for col in matches.columns:
        if col.startswith("home_") and col != "home_score":
            stat = col[len("home_"):]
            if f"away_{stat}" in matches.columns:
                stats.append(stat)
    return stats


def validate_ledger(matches: pd.DataFrame) -> pd.DataFrame:
    """
    Check the ledger and return it with parsed dates and numeric scores.
    Any malformed or duplicate row raises DataIntegrityError.
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in matches.columns]
    if missing:
        raise DataIntegrityError(f"Ledger is missing columns {missing}; got {list(matches.columns)}")

    df = matches.copy()
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    for col in ("home_score", "away_score"):
        df[col] = pd.to_numeric(df[col], errors="coerce")

    bad = df[REQUIRED_COLUMNS].isna().any(axis=1)
    if bad.any():
        first = df.loc[bad, MATCH_KEYS].iloc[0].to_dict()
        raise DataIntegrityError(f"{int(bad.sum())} ledger rows have null/unparseable essentials, e.g. {first}")

    same = df["home"] == df["away"]
    if same.any():
        first = df.loc[same, MATCH_KEYS].iloc[0].to_dict()
        raise DataIntegrityError(f"Match {first} has the same participant on both sides")

    dup = df.duplicated(MATCH_KEYS, keep=False)
    if dup.any():
        ids = df.loc[dup, MATCH_KEYS].drop_duplicates().head(5).to_dict("records")
        raise DataIntegrityError(f"Duplicate match_id within season: {ids}")

    return df


def order_ledger(matches: pd.DataFrame) -> pd.DataFrame:
    """
    Sort by (season, date, match_id) and number rows with `seq`.

    Same-day matches are ordered by match_id; input row order never matters.
    """
    df = matches.sort_values(ORDER_COLUMNS, kind="mergesort").reset_index(drop=True)
    df["seq"] = np.arange(len(df), dtype=int)
    return df


def prepare_ledger(matches: pd.DataFrame) -> pd.DataFrame:
    """
    Validate and order. Any `seq` column already on the input is replaced.
    """
    df = order_ledger(validate_ledger(matches))
    log.info("Ledger: %d matches, %d seasons, %d teams",
             len(df), df["season"].nunique(), pd.concat([df["home"], df["away"]]).nunique())
    return df


def check_order(matches: pd.DataFrame) -> pd.DataFrame:
    """
    Raise DataIntegrityError unless rows are already in (season, date, match_id)
    order with a strictly increasing `seq`.
    """
    seq = matches["seq"].to_numpy()
    if len(seq) > 1 and not (np.diff(seq) > 0).all():
        raise DataIntegrityError("Ledger `seq` is not strictly increasing in row order")
    keys = matches[ORDER_COLUMNS].assign(date=pd.to_datetime(matches["date"], errors="coerce"))
    ordered = keys.sort_values(ORDER_COLUMNS, kind="mergesort").index
    if not ordered.equals(keys.index):
        raise DataIntegrityError("Ledger rows are not in (season, date, match_id) order")
    return matches


def season_starts(matches: pd.DataFrame) -> dict:
    """First match date of every season."""
    dates = pd.to_datetime(matches["date"], errors="coerce")
    return dates.groupby(matches["season"]).min().to_dict()


def home_win(matches: pd.DataFrame) -> pd.Series:
    return (matches["home_score"] > matches["away_score"]).astype(int)


def margin(matches: pd.DataFrame) -> pd.Series:
    return (matches["home_score"] - matches["away_score"]).astype(float)


# --------------------------- TWO ROWS -> ONE ROW ------------------------- #

def matches_from_team_rows(rows: pd.DataFrame,
                           stats: Optional[Iterable[str]] = None,
                           location_col: str = "location") -> pd.DataFrame:
    """
    Pivot a per-team game log (two rows per match) into canonical match rows.

    Input columns: season, match_id, date, team, points, <location_col>
    ("home"/"away") and any stats. Every (season, match_id) must have exactly
    one home row and one away row.
    """
    needed = ["season", "match_id", "date", "team", "points", location_col]
    missing = [c for c in needed if c not in rows.columns]
    if missing:
        raise DataIntegrityError(f"Team rows are missing columns {missing}")

    if stats is None:
        stats = [c for c in rows.columns if c not in needed and pd.api.types.is_numeric_dtype(rows[c])]
    stats = list(stats)

    loc = rows[location_col].astype(str).str.lower().str.strip()
    if not loc.isin(["home", "away"]).all():
        raise DataIntegrityError(f"{location_col} must be 'home' or 'away'")

    counts = (
        rows.assign(_home=(loc == "home").astype(int), _away=(loc == "away").astype(int))
            .groupby(MATCH_KEYS)[["_home", "_away"]]
            .sum()
    )
    broken = counts[(counts["_home"] != 1) | (counts["_away"] != 1)]
    if not broken.empty:
        raise DataIntegrityError(
            f"{len(broken)} matches do not have exactly one home and one away row, "
            f"e.g. {broken.index[0]}"
        )

    keep = ["season", "match_id", "date", "team", "points"] + stats
    home = rows.loc[loc == "home", keep].rename(
        columns={"team": "home", "points": "home_score", **{s: f"home_{s}" for s in stats}}
    )
    away = rows.loc[loc == "away", keep].rename(
        columns={"team": "away", "points": "away_score", "date": "away_date",
                 **{s: f"away_{s}" for s in stats}}
    )
    out = home.merge(away, on=MATCH_KEYS, how="inner", validate="one_to_one")
    if (pd.to_datetime(out["date"]) != pd.to_datetime(out["away_date"])).any():
        raise DataIntegrityError("Home and away rows of a match disagree on the date")
    out = out.drop(columns=["away_date"])

    cols = REQUIRED_COLUMNS + [f"{side}_{s}" for s in stats for side in ("home", "away")]
    return out[cols].reset_index(drop=True)


# ------------------------------ LONG TABLE ------------------------------- #

def team_long(matches: pd.DataFrame, stats: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """
    Per-team view of an ordered ledger: one row per (match, participant) with
    points_for / points_against and the participant's own box-score stats.
    """
    if stats is None:
        stats = box_score_stats(matches)
    stats = list(stats)
    base = ["season", "match_id", "date", "seq"]

    home_long = pd.DataFrame({
        **{c: matches[c] for c in base},
        "team": matches["home"],
        "opponent": matches["away"],
        "is_home": True,
        "points_for": matches["home_score"],
        "points_against": matches["away_score"],
        **{s: matches[f"home_{s}"] for s in stats},
    })
    away_long = pd.DataFrame({
        **{c: matches[c] for c in base},
        "team": matches["away"],
        "opponent": matches["home"],
        "is_home": False,
        "points_for": matches["away_score"],
        "points_against": matches["home_score"],
        **{s: matches[f"away_{s}"] for s in stats},
    })

    long = pd.concat([home_long, away_long], ignore_index=True)
    return long.sort_values(["seq", "is_home"], ascending=[True, False], kind="mergesort").reset_index(drop=True)
