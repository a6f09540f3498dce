"""Crew assignment and dispatch planning service."""

__version__ = "0.1.0"
