"""Structured warning classes for the :mod:`simrestart` package."""
from __future__ import annotations


class RestartWarning(UserWarning):
    """Base warning class for simrestart."""


class MultiSimWarning(RestartWarning):
    """Simulations of a multi-simulation disagree on shared bookkeeping."""


class LockingWarning(RestartWarning):
    """Log-file locking could not be applied where it was optional."""


__all__ = [
    "RestartWarning",
    "MultiSimWarning",
    "LockingWarning",
]
