"""Restart coordination for multi-process simulation runs."""
from .coordinator import RestartOutcome, decide_and_prepare_restart
from .errors import RestartError
from .model import AppendingBehavior, StartingBehavior

__all__ = [
    "RestartOutcome",
    "decide_and_prepare_restart",
    "RestartError",
    "AppendingBehavior",
    "StartingBehavior",
]
