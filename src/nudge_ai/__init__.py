"""Resilient message generation with caching and local persistence."""

__version__ = "0.1.0"

__all__ = ["__version__"]
