"""Friendle: daily guessing games built from opted-in community chat activity."""

__version__ = "1.0.0"
