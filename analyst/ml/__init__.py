"""Deterministic match prediction."""

from analyst.ml.prediction import Prediction, PredictionEngine, PredictionInputs, inputs_from_bundle

__all__ = [
    "Prediction", "PredictionEngine", "PredictionInputs",
    "inputs_from_bundle",
]
