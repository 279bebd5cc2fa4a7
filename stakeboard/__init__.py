"""Stakeboard - settlement engine for a social fantasy-trading game."""

__version__ = "0.1.0"
