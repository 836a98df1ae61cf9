__version__ = "0.1.0"

from .elo import Elo, RatingParameters, RatingState
from .errors import (
    ConfigurationError,
    DataIntegrityError,
    InsufficientHistoryError,
    MissingPriorDataError,
    SearchExhaustionError,
)
from .features import build_features
from .infer import predict_margins
from .train_model import FittedModel, train

__all__ = [
    "Elo",
    "RatingParameters",
    "RatingState",
    "ConfigurationError",
    "DataIntegrityError",
    "InsufficientHistoryError",
    "MissingPriorDataError",
    "SearchExhaustionError",
    "build_features",
    "predict_margins",
    "FittedModel",
    "train",
]
