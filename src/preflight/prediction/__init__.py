"""Probability-scored prediction of build and runtime errors."""

from preflight.prediction.classifier import predict, severity_for, to_analysis_results
from preflight.prediction.patterns import DEFAULT_PATTERNS, PredictionPattern, Signal

__all__ = [
    "DEFAULT_PATTERNS",
    "PredictionPattern",
    "Signal",
    "predict",
    "severity_for",
    "to_analysis_results",
]
