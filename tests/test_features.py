"""
tests/test_features.py: temporal feature assembly.

Validates:
  - No row uses rating/form state from the same or a later match (checked over
    several shuffled input orders)
  - A match's own result never changes its own features or earlier rows
  - Ratings/form come from each side's previous match in the same season
  - Rows without history on both sides are dropped, sentinels are kept
  - Difference features and the margin target
  - Season-less schedules still reset rest / next-game days each season
  - A caller-supplied seq column never bypasses validation or ordering
"""
import numpy as np
import pandas as pd
import pytest

from margin_predictor.diag_leakage import assert_no_leakage, single_feature_report
from margin_predictor.elo import RatingParameters, replay
from margin_predictor.errors import DataIntegrityError
from margin_predictor.features import build_features, feature_columns
from margin_predictor.form import compute_form
from margin_predictor.ledger import prepare_ledger, team_long
from margin_predictor.schedule import SENTINEL

from conftest import make_ledger

PARAMS = RatingParameters(k=20, home_adv=50, season_regression=0.3)


@pytest.fixture
def built(ledger):
    df = prepare_ledger(ledger)
    feats, state = build_features(df, PARAMS, window=3)
    return df, feats, state


# ── Leakage ──────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("seed", range(5))
def test_no_state_from_current_or_future_matches(seed):
    raw = make_ledger(n_teams=8, n_seasons=2, rounds=10, seed=seed)
    shuffled = raw.sample(frac=1.0, random_state=seed).reset_index(drop=True)
    feats, _ = build_features(shuffled, PARAMS, window=2)

    assert len(feats) > 0
    assert (feats["home_source_seq"] < feats["seq"]).all()
    assert (feats["away_source_seq"] < feats["seq"]).all()
    assert_no_leakage(feats)

    ordered, _ = build_features(raw, PARAMS, window=2)
    pd.testing.assert_frame_equal(feats, ordered)


def test_changing_a_result_only_affects_later_matches(ledger):
    df = prepare_ledger(ledger)
    before, _ = build_features(df, PARAMS, window=3)

    target = df.iloc[len(df) // 2]
    flipped = df.copy()
    flipped.loc[target.name, ["home_score", "away_score"]] = [target["away_score"], target["home_score"]]
    after, _ = build_features(flipped, PARAMS, window=3)

    cols = feature_columns(["points_for", "points_against", "rebounds", "assists"])

    def upto(f):
        return f[f["seq"] <= target["seq"]].set_index("seq")[cols]

    pd.testing.assert_frame_equal(upto(before), upto(after))
    assert not before.set_index("seq")[cols].equals(after.set_index("seq")[cols])


def test_assert_no_leakage_flags_bad_rows(built):
    _, feats, _ = built
    bad = feats.copy()
    bad.loc[bad.index[3], "home_source_seq"] = bad.loc[bad.index[3], "seq"]
    with pytest.raises(DataIntegrityError, match="same or a later match"):
        assert_no_leakage(bad)

    other = feats.copy()
    other.loc[other.index[0], "away_source_season"] = -1
    with pytest.raises(DataIntegrityError, match="another season"):
        assert_no_leakage(other)


# ── Join correctness ─────────────────────────────────────────────────────────

def test_ratings_come_from_prior_match_of_each_side(built):
    df, feats, _ = built
    hist = replay(df, PARAMS).history.set_index(["seq", "team"])

    for row in feats.sample(20, random_state=1).itertuples():
        assert row.elo_home == pytest.approx(hist.loc[(row.home_source_seq, row.home), "elo_post"])
        assert row.elo_away == pytest.approx(hist.loc[(row.away_source_seq, row.away), "elo_post"])
        prior_home = hist.xs(row.home, level="team")
        earlier = prior_home[(prior_home.index < row.seq) & (prior_home["season"] == row.season)]
        assert earlier.index.max() == row.home_source_seq


def test_form_comes_from_prior_match(built):
    df, feats, _ = built
    long = team_long(df)
    form = compute_form(long, window=3).set_index(["seq", "team"])
    for row in feats.sample(15, random_state=2).itertuples():
        src = form.loc[(row.away_source_seq, row.away)]
        assert row.away_form_points_for == pytest.approx(src["form_points_for"])
        assert row.away_form_rebounds == pytest.approx(src["form_rebounds"])


def test_form_for_window_plus_one_match(ledger):
    df = prepare_ledger(ledger)
    window = 4
    feats, _ = build_features(df, PARAMS, window=window)
    long = team_long(df)

    team = "T1"
    games = long[(long["team"] == team) & (long["season"] == 2020)].sort_values("seq")
    nth = games.iloc[window]  # the (W+1)-th match
    row = feats[feats["seq"] == nth["seq"]].iloc[0]
    side = "home" if row["home"] == team else "away"
    assert row[f"{side}_form_points_for"] == pytest.approx(games["points_for"].iloc[:window].mean())

    # nothing before the (W+1)-th match for this team
    early = feats[(feats["seq"] < nth["seq"]) & ((feats["home"] == team) | (feats["away"] == team))
                  & (feats["season"] == 2020)]
    assert early.empty


def test_rows_without_history_dropped(built):
    df, feats, _ = built
    # window 3: every team needs 3 games this season before it can appear
    firsts = df[df["season"] == 2021].head(3)
    assert not feats["seq"].isin(firsts["seq"]).any()
    assert len(feats) < len(df)


def test_diffs_and_target(built):
    df, feats, _ = built
    assert np.allclose(feats["elo_diff"], feats["elo_home"] - feats["elo_away"])
    assert np.allclose(feats["form_point_diff_diff"],
                       feats["home_form_point_diff"] - feats["away_form_point_diff"])
    assert np.allclose(feats["rest_days_diff"], feats["rest_days_home"] - feats["rest_days_away"])
    src = df.set_index("seq").loc[feats["seq"]]
    assert np.allclose(feats["margin"], src["home_score"].to_numpy() - src["away_score"].to_numpy())


def test_schedule_sentinels_present(built):
    _, feats, _ = built
    assert (feats["next_game_days_home"] == SENTINEL).any() or (feats["next_game_days_away"] == SENTINEL).any()
    assert (feats[["rest_days_home", "rest_days_away"]] >= SENTINEL).all().all()
    assert feats[feature_columns(["points_for", "points_against", "rebounds", "assists"])].notna().all().all()


def test_team_state_snapshot(built):
    df, _, state = built
    hist = replay(df, PARAMS).history
    last = hist.sort_values("seq").drop_duplicates("team", keep="last").set_index("team")
    assert set(state.index) == set(last.index)
    for team in state.index:
        assert state.loc[team, "elo"] == pytest.approx(last.loc[team, "elo_post"])
        assert state.loc[team, "last_seq"] == last.loc[team, "seq"]


def test_single_feature_report_ranks_features(built):
    _, feats, _ = built
    report = single_feature_report(feats, top=None)
    assert list(report.columns) == ["feature", "abs_corr", "rmse"]
    assert "margin" not in set(report["feature"])
    assert report["abs_corr"].is_monotonic_decreasing


# ── Explicit schedules / pre-numbered ledgers ────────────────────────────────

def test_seasonless_schedule_keeps_sentinels_at_season_close(ledger):
    df = prepare_ledger(ledger)
    from_ledger, _ = build_features(df, PARAMS, window=3)
    from_schedule, _ = build_features(df, PARAMS, window=3, schedule=df[["date", "home", "away"]])
    pd.testing.assert_frame_equal(from_schedule, from_ledger)

    close = df.loc[df["season"] == 2020, "date"].max()
    closing = from_schedule[(from_schedule["season"] == 2020) & (from_schedule["date"] == close)]
    assert len(closing) > 0
    assert (closing[["next_game_days_home", "next_game_days_away"]] == SENTINEL).all().all()

    opening = from_schedule[from_schedule["season"] == 2021]
    assert (opening["rest_days_home"] < 30).all()


def test_caller_seq_column_does_not_skip_validation(ledger):
    dup = pd.concat([ledger, ledger.iloc[[0]].assign(date=pd.Timestamp("2020-12-25"))], ignore_index=True)
    with pytest.raises(DataIntegrityError, match="Duplicate"):
        build_features(dup, PARAMS, window=3)

    dup["seq"] = range(len(dup))
    with pytest.raises(DataIntegrityError, match="Duplicate"):
        build_features(dup, PARAMS, window=3)


def test_caller_seq_column_is_renumbered(ledger):
    shuffled = ledger.sample(frac=1.0, random_state=4).reset_index(drop=True)
    shuffled["seq"] = range(len(shuffled))
    feats, _ = build_features(shuffled, PARAMS, window=3)
    expected, _ = build_features(ledger, PARAMS, window=3)
    pd.testing.assert_frame_equal(feats, expected)
