"""Covenant library catalogue: libraries, collections, books and their contents."""

__version__ = "0.1.0"
