from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from joblib import Parallel, delayed

from .errors import ConfigurationError
from .ledger import check_order, order_ledger

log = logging.getLogger(__name__)

BASE_RATING = 1500.0


@dataclass(frozen=True)
class RatingParameters:
    k: float = 20.0
    home_adv: float = 0.0
    season_regression: float = 0.0
    base: float = BASE_RATING

    def __post_init__(self):
        if not self.k > 0:
            raise ConfigurationError(f"k must be > 0, got {self.k}")
        if not self.home_adv >= 0:
            raise ConfigurationError(f"home_adv must be >= 0, got {self.home_adv}")
        if not 0.0 <= self.season_regression <= 1.0:
            raise ConfigurationError(f"season_regression must be in [0, 1], got {self.season_regression}")

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RatingParameters":
        keys = ("k", "home_adv", "season_regression", "base")
        return cls(**{k: float(d[k]) for k in keys if k in d})

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class RatingState:
    """
    Ratings owned by a single replay. Nothing outside Elo.replay writes to it.
    """
    base: float = BASE_RATING
    ratings: Dict[str, float] = field(default_factory=dict)
    seasons: Dict[str, Any] = field(default_factory=dict)
    last_match_id: Optional[Any] = None

    def get(self, team: str) -> float:
        return self.ratings.get(team, self.base)


@dataclass
class ReplayResult:
    probabilities: pd.Series     # home-win probability per match, ledger index
    history: pd.DataFrame        # one row per (match, team): elo_pre / elo_post
    state: RatingState


class Elo:
    def __init__(self, params: Optional[RatingParameters] = None):
        self.params = params or RatingParameters()

    def expected_home(self, home_rating: float, away_rating: float) -> float:
        rh = home_rating + self.params.home_adv
        return 1.0 / (1.0 + 10.0 ** ((away_rating - rh) / 400.0))

    def rating_for_season(self, state: RatingState, team: str, season: Any) -> float:
        """
        Rating to use for `team` in `season`. A team entering a new season is
        pulled toward the baseline; a first appearance starts at the baseline.
        """
        rating = state.get(team)
        last = state.seasons.get(team)
        if last is not None and last != season:
            rating = rating + self.params.season_regression * (state.base - rating)
        return rating

    def update(self, state: RatingState, season: Any, match_id: Any, home: str, away: str,
               home_won: bool) -> Tuple[float, float, float, float, float]:
        """
        Apply one match to `state`.
        Returns (p_home, home_pre, away_pre, home_post, away_post).
        """
        rh = self.rating_for_season(state, home, season)
        ra = self.rating_for_season(state, away, season)
        p = self.expected_home(rh, ra)
        delta = self.params.k * ((1.0 if home_won else 0.0) - p)
        rh_new = rh + delta
        ra_new = ra - delta

        state.ratings[home] = rh_new
        state.ratings[away] = ra_new
        state.seasons[home] = season
        state.seasons[away] = season
        state.last_match_id = match_id
        return p, rh, ra, rh_new, ra_new

    def replay(self, matches: pd.DataFrame, state: Optional[RatingState] = None) -> ReplayResult:
        """
        Run the ledger through the engine in chronological order.

        Each match's probability is computed from ratings before the match;
        history rows carry both the pre-match and post-match rating.
        """
        matches = order_ledger(matches) if "seq" not in matches.columns else check_order(matches)
        if state is None:
            state = RatingState(base=self.params.base)

        probs: List[float] = []
        rows: List[dict] = []
        cols = ["season", "match_id", "date", "seq", "home", "away", "home_score", "away_score"]
        for season, match_id, date, seq, home, away, hs, as_ in matches[cols].itertuples(index=False):
            p, rh, ra, rh_new, ra_new = self.update(state, season, match_id, home, away, hs > as_)
            probs.append(p)
            rows.append({"season": season, "match_id": match_id, "date": date, "seq": seq,
                         "team": home, "elo_pre": rh, "elo_post": rh_new})
            rows.append({"season": season, "match_id": match_id, "date": date, "seq": seq,
                         "team": away, "elo_pre": ra, "elo_post": ra_new})

        history = pd.DataFrame(rows, columns=["season", "match_id", "date", "seq", "team", "elo_pre", "elo_post"])
        prob_series = pd.Series(probs, index=matches.index, name="elo_prob_home", dtype=float)
        return ReplayResult(probabilities=prob_series, history=history, state=state)


def replay(matches: pd.DataFrame, params: RatingParameters) -> ReplayResult:
    return Elo(params).replay(matches)


def _replay_season(season_df: pd.DataFrame, params: RatingParameters) -> ReplayResult:
    return Elo(params).replay(season_df)


def replay_by_season(matches: pd.DataFrame, params: RatingParameters, n_jobs: int = 1) -> ReplayResult:
    """
    Independent replays per season, every season starting from the baseline.
    Seasons run in a worker pool; results are stitched back in ledger order.
    """
    matches = order_ledger(matches) if "seq" not in matches.columns else check_order(matches)
    seasons = list(dict.fromkeys(matches["season"]))
    parts = Parallel(n_jobs=min(n_jobs, max(1, len(seasons))))(
        delayed(_replay_season)(matches[matches["season"] == s], params) for s in seasons
    )
    probs = pd.concat([p.probabilities for p in parts]).reindex(matches.index)
    history = pd.concat([p.history for p in parts], ignore_index=True)

    state = RatingState(base=params.base)
    for part in parts:
        state.ratings.update(part.state.ratings)
        state.seasons.update(part.state.seasons)
        state.last_match_id = part.state.last_match_id
    log.debug("Replayed %d seasons independently", len(seasons))
    return ReplayResult(probabilities=probs, history=history, state=state)
