"""Vibe Station: tag-driven station generation for a music catalog."""

__version__ = "0.1.0"
