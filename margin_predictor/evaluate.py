"""
Metrics and a time-based holdout check for a fitted model.
"""
from __future__ import annotations

from typing import Dict

import numpy as np
import pandas as pd


def rmse(y_true, y_pred) -> float:
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    return float(np.sqrt(np.mean((y_true - y_pred) ** 2)))


def rating_accuracy(probabilities, home_won) -> float:
    """
    Share of matches where the rating favourite won. Home is the pick only
    when p > 0.5; an even match counts as an away pick.
    """
    p = np.asarray(probabilities, dtype=float)
    actual = np.asarray(home_won, dtype=int)
    if len(p) == 0:
        return float("nan")
    return float(np.mean((p > 0.5).astype(int) == actual))


def majority_accuracy(home_won) -> float:
    actual = np.asarray(home_won, dtype=int)
    if len(actual) == 0:
        return float("nan")
    share = float(actual.mean())
    return max(share, 1.0 - share)


def time_split(df: pd.DataFrame, test_frac: float = 0.2):
    df = df.sort_values("seq").reset_index(drop=True)
    cut = int(len(df) * (1 - test_frac))
    return df.iloc[:cut].copy(), df.iloc[cut:].copy()


def holdout_report(fitted, features: pd.DataFrame, test_frac: float = 0.2) -> Dict[str, float]:
    """
    Refit the chosen regressor configuration on the early part of the data and
    score it on the chronologically last `test_frac` of matches.
    """
    train_df, test_df = time_split(features, test_frac)
    cols = fitted.feature_order
    model = fitted.regressor.fit(train_df[cols].to_numpy(), train_df["margin"].to_numpy(),
                                 fitted.regressor_params)
    preds = fitted.regressor.predict(model, test_df[cols].to_numpy())
    y = test_df["margin"].to_numpy()
    return {
        "n_train": int(len(train_df)),
        "n_test": int(len(test_df)),
        "rmse": rmse(y, preds),
        "mae": float(np.mean(np.abs(y - preds))),
        "winner_acc": float(np.mean(np.sign(preds) == np.sign(y))),
    }
