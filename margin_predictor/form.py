"""
Rolling "recent form" per team.

For every (team, match) the snapshot is the mean of each stat over the
`window` games ending at and including that match. It describes the team
going into its *next* game; features.py does the shift. Until a team has
played `window` games in a season there is no snapshot (NaN), never a
partial-window mean.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

import pandas as pd

from .errors import ConfigurationError

BASE_STATS = ["points_for", "points_against"]


def form_columns(stats: Iterable[str]) -> List[str]:
    return [f"form_{s}" for s in stats] + ["form_point_diff"]


def tracked_stats(long_df: pd.DataFrame, stats: Optional[Iterable[str]] = None) -> List[str]:
    """
    Points for/against plus any numeric per-team stat in the long table.
    """
    if stats is not None:
        stats = list(stats)
        missing = [s for s in stats if s not in long_df.columns]
        if missing:
            raise ConfigurationError(f"Form stats {missing} are not in the ledger")
        return [s for s in BASE_STATS if s not in stats] + stats
    skip = {"season", "match_id", "date", "seq", "team", "opponent", "is_home"}
    extra = [
        c for c in long_df.columns
        if c not in skip and c not in BASE_STATS and pd.api.types.is_numeric_dtype(long_df[c])
    ]
    return BASE_STATS + extra


def compute_form(long_df: pd.DataFrame, window: int = 5,
                 stats: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """
    Returns one row per (season, team, match): season, match_id, seq, team and
    form_<stat> columns plus form_point_diff.
    """
    if not isinstance(window, int) or window < 1:
        raise ConfigurationError(f"Form window must be a positive int, got {window!r}")

    stats = tracked_stats(long_df, stats)
    long_df = long_df.sort_values(["team", "seq"], kind="mergesort")
    grouped = long_df.groupby(["season", "team"], sort=False)

    out = long_df[["season", "match_id", "seq", "team"]].copy()
    for col in stats:
        out[f"form_{col}"] = (
            grouped[col]
            .rolling(window, min_periods=window)
            .mean()
            .reset_index(level=[0, 1], drop=True)
        )
    out["form_point_diff"] = out["form_points_for"] - out["form_points_against"]
    return out.sort_values(["seq", "team"], kind="mergesort").reset_index(drop=True)
