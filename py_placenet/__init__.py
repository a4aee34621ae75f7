"""Procedural road networks between real places."""

__version__ = "0.1.0"
