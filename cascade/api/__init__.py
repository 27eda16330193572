"""
API Module - HTTP interface for rendering clients.

Exposes sessions over REST. A client:
1. Creates a session (preset or custom layout)
2. Sends presses or raw commands
3. Receives reaction trees to animate
4. Acknowledges each tree when replaying client-side

All state is session-scoped and in memory.
"""

from .schemas import (
    # Requests
    CreateSessionRequest,
    PressRequest,
    CommandRequest,
    # Responses
    SessionResponse,
    CommandResponse,
    ReplayCompleteResponse,
    ErrorResponse,
    # Shared
    OrbInfo,
    ReactionNode,
    ErrorCode,
)
from .service import APIService
from .app import create_app

__all__ = [
    # Requests
    "CreateSessionRequest",
    "PressRequest",
    "CommandRequest",
    # Responses
    "SessionResponse",
    "CommandResponse",
    "ReplayCompleteResponse",
    "ErrorResponse",
    # Shared
    "OrbInfo",
    "ReactionNode",
    "ErrorCode",
    # Service
    "APIService",
    "create_app",
]
