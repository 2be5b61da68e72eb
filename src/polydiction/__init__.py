"""Polydiction - anomaly scoring for prediction-market trades."""

__version__ = "0.1.0"
