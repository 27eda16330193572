"""Session management for games in progress."""

from .cache import SessionCache
from .manager import GameSession, ReplayMode, SessionManager, SessionState

__all__ = [
    "SessionCache",
    "GameSession",
    "ReplayMode",
    "SessionManager",
    "SessionState",
]
