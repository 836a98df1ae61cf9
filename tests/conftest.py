"""
Shared fixtures: synthetic ledgers with known structure.
"""
import numpy as np
import pandas as pd
import pytest


def make_ledger(n_teams: int = 6, n_seasons: int = 2, rounds: int = 12, seed: int = 0,
                stats=("rebounds", "assists")) -> pd.DataFrame:
    """
    Round-based schedule: every round each team plays exactly once, rounds
    are on distinct, increasing dates, several matches share a date.
    """
    rng = np.random.default_rng(seed)
    teams = [f"T{i}" for i in range(n_teams)]
    strength = rng.normal(0, 6, n_teams)
    rows = []
    for s in range(n_seasons):
        season = 2020 + s
        start = pd.Timestamp(f"{season}-10-01")
        match_id = 0
        for r in range(rounds):
            order = rng.permutation(n_teams)
            date = start + pd.Timedelta(days=int(2 * r + rng.integers(0, 2)))
            for i in range(0, n_teams, 2):
                h, a = order[i], order[i + 1]
                hs = int(round(100 + strength[h] + 3 + rng.normal(0, 8)))
                as_ = int(round(100 + strength[a] + rng.normal(0, 8)))
                if hs == as_:
                    hs += 1
                match_id += 1
                row = {
                    "season": season,
                    "match_id": match_id,
                    "date": date,
                    "home": teams[h],
                    "away": teams[a],
                    "home_score": hs,
                    "away_score": as_,
                }
                for st in stats:
                    row[f"home_{st}"] = float(rng.integers(30, 60))
                    row[f"away_{st}"] = float(rng.integers(30, 60))
                rows.append(row)
    return pd.DataFrame(rows)


@pytest.fixture
def ledger():
    return make_ledger()


@pytest.fixture
def toy_ledger():
    """Two teams, four matches, one season."""
    return pd.DataFrame([
        {"season": 2021, "match_id": 1, "date": "2021-01-01", "home": "A", "away": "B",
         "home_score": 100, "away_score": 90},
        {"season": 2021, "match_id": 2, "date": "2021-01-03", "home": "B", "away": "A",
         "home_score": 95, "away_score": 90},
        {"season": 2021, "match_id": 3, "date": "2021-01-05", "home": "A", "away": "B",
         "home_score": 88, "away_score": 99},
        {"season": 2021, "match_id": 4, "date": "2021-01-08", "home": "B", "away": "A",
         "home_score": 101, "away_score": 104},
    ])
