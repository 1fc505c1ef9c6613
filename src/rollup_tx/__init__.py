"""Authorize and submit rollup state-transition transactions."""

__version__ = "0.1.0"
