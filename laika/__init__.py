"""LAIKA — monthly site metric fetcher."""

__version__ = "2.0.0"
