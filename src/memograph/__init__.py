"""Semantic memory and relationship engine for coding agents."""

__version__ = "0.1.0"
