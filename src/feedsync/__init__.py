"""Synchronization and data-access core of a feed-reading client."""

__version__ = "0.1.0"
