"""Transcript-driven highlight cutting: score, select and apply."""

__all__ = ["__version__"]
__version__ = "0.1.0"
