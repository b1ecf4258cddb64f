"""Singing Coach - grade sung performances against a reference melody."""

__version__ = "0.1.0"
