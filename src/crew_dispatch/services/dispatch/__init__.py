"""Dispatch orchestration."""

from .dispatcher import ApplyResult, Dispatcher

__all__ = ["ApplyResult", "Dispatcher"]
