"""Orchestrator - configuration, sessions and the command-line front-end."""

from .config import Settings
from .state_machine import Session, SessionState, SessionStateMachine

__all__ = [
    "Session",
    "SessionState",
    "SessionStateMachine",
    "Settings",
]
