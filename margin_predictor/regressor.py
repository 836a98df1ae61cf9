"""
Pluggable regressors.

The search and prediction code only ever calls

    model = regressor.fit(X, y, hyperparameters)
    y_hat = regressor.predict(model, X)

so anything with those two methods can be dropped in.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import numpy as np
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from xgboost import XGBRegressor

INT_PARAMS = {"n_estimators", "max_depth", "min_child_weight", "max_leaves", "max_bin"}


class XGBoostRegressor:
    """
    Gradient-boosted trees on squared error. `base_params` are merged under the
    searched hyperparameters.
    """

    def __init__(self, seed: int = 42, n_jobs: int = 1, base_params: Optional[Dict[str, Any]] = None):
        self.seed = seed
        self.n_jobs = n_jobs
        self.base_params = dict(base_params or {})

    def _params(self, hyperparameters: Dict[str, Any]) -> Dict[str, Any]:
        params = {
            "objective": "reg:squarederror",
            "random_state": self.seed,
            "n_jobs": self.n_jobs,
            **self.base_params,
        }
        for name, value in hyperparameters.items():
            params[name] = int(round(value)) if name in INT_PARAMS else value
        return params

    def fit(self, X, y, hyperparameters: Dict[str, Any]):
        model = XGBRegressor(**self._params(hyperparameters))
        model.fit(np.asarray(X, dtype=float), np.asarray(y, dtype=float))
        return model

    def predict(self, model, X) -> np.ndarray:
        return np.asarray(model.predict(np.asarray(X, dtype=float)), dtype=float)


class SklearnRegressor:
    """
    Any scikit-learn estimator class behind a StandardScaler.
    """

    def __init__(self, estimator: Callable[..., Any], base_params: Optional[Dict[str, Any]] = None):
        self.estimator = estimator
        self.base_params = dict(base_params or {})

    def fit(self, X, y, hyperparameters: Dict[str, Any]):
        pipe = Pipeline([
            ("scaler", StandardScaler()),
            ("model", self.estimator(**{**self.base_params, **hyperparameters})),
        ])
        pipe.fit(np.asarray(X, dtype=float), np.asarray(y, dtype=float))
        return pipe

    def predict(self, model, X) -> np.ndarray:
        return np.asarray(model.predict(np.asarray(X, dtype=float)), dtype=float)
