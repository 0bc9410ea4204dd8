"""Preflight - static analysis and error prediction for JS/TS projects."""

__version__ = "0.4.0"
