"""Contributor Connect recommendation fusion pipeline."""

__version__ = "1.0.0"
