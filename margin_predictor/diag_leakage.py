"""
Leakage diagnostics for a built feature table.

assert_no_leakage checks the join provenance: every side's state must come
from an earlier match of the same season. single_feature_report ranks the
numeric features by how well each one alone tracks the margin on a
chronological test split. If any single feature is absurdly predictive, you
likely have leakage.
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import pandas as pd

from .errors import DataIntegrityError
from .evaluate import time_split

log = logging.getLogger(__name__)

FORBID = {"margin", "seq", "match_id", "season",
          "home_source_seq", "away_source_seq", "home_source_match_id", "away_source_match_id",
          "home_source_season", "away_source_season"}


def assert_no_leakage(features: pd.DataFrame) -> None:
    for side in ("home", "away"):
        src = features[f"{side}_source_seq"]
        late = src >= features["seq"]
        if late.any():
            bad = features.loc[late, ["season", "match_id", f"{side}_source_seq"]].iloc[0].to_dict()
            raise DataIntegrityError(f"{int(late.sum())} rows use {side} state from the same or a later match, e.g. {bad}")
        other = features[f"{side}_source_season"] != features["season"]
        if other.any():
            bad = features.loc[other, ["season", "match_id"]].iloc[0].to_dict()
            raise DataIntegrityError(f"{int(other.sum())} rows use {side} state from another season, e.g. {bad}")


def single_feature_report(features: pd.DataFrame, test_frac: float = 0.2,
                          top: Optional[int] = 10) -> pd.DataFrame:
    """
    Absolute correlation and 1-feature linear-fit RMSE on the test split,
    fitted on the train split.
    """
    train_df, test_df = time_split(features, test_frac)
    cols = [c for c in features.select_dtypes(include="number").columns if c not in FORBID]

    results = []
    y_tr = train_df["margin"].to_numpy(dtype=float)
    y_te = test_df["margin"].to_numpy(dtype=float)
    for c in cols:
        x_tr = train_df[c].to_numpy(dtype=float)
        x_te = test_df[c].to_numpy(dtype=float)
        if np.std(x_tr) == 0 or np.std(x_te) == 0:
            continue
        slope, intercept = np.polyfit(x_tr, y_tr, 1)
        pred = slope * x_te + intercept
        results.append({
            "feature": c,
            "abs_corr": float(abs(np.corrcoef(x_te, y_te)[0, 1])),
            "rmse": float(np.sqrt(np.mean((y_te - pred) ** 2))),
        })

    report = pd.DataFrame(results, columns=["feature", "abs_corr", "rmse"])
    report = report.sort_values("abs_corr", ascending=False).reset_index(drop=True)
    return report.head(top) if top else report


def main(argv=None):
    import argparse

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    from .features import build_features

    parser = argparse.ArgumentParser()
    parser.add_argument("ledger", type=str)
    args = parser.parse_args(argv)

    feats, _ = build_features(pd.read_csv(args.ledger))
    assert_no_leakage(feats)
    print("Top features by standalone test correlation with margin:")
    for rec in single_feature_report(feats).to_dict("records"):
        print(f"{rec['feature']:30s}  |r|={rec['abs_corr']:.3f}  rmse={rec['rmse']:.2f}")


if __name__ == "__main__":
    main()
