"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the contract between a rendering client and the
engine. Reaction trees are sent as nested ReactionNode objects; the
client replays them and acknowledges the root when done (client replay
mode only).

Error Codes:
- SESSION_NOT_FOUND: Session does not exist or has been ended
- INVALID_LAYOUT: Initial layout is malformed or out of bounds
- INVALID_COMMAND: Command is malformed
- CELL_OCCUPIED: Create command on an occupied cell
- ORB_NOT_FOUND: Increment command with a stale orb id
- INVARIANT_VIOLATION: Engine bug; the session is failed
- REPLAY_INTEGRITY: Replay acknowledgement did not match the pending tree
"""

from __future__ import annotations
from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class SessionStatus(str, Enum):
    """Session status values."""
    CREATED = "created"
    READY = "ready"
    REPLAYING = "replaying"
    FINISHED = "finished"
    FAILED = "failed"
    ENDED = "ended"


class ReplayModeName(str, Enum):
    """Who completes replays for a session."""
    IMMEDIATE = "immediate"
    CLIENT = "client"


class CommandKind(str, Enum):
    CREATE = "create"
    INCREMENT = "increment"


class ErrorCode(str, Enum):
    """Structured error codes."""
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    INVALID_LAYOUT = "INVALID_LAYOUT"
    INVALID_COMMAND = "INVALID_COMMAND"
    CELL_OCCUPIED = "CELL_OCCUPIED"
    ORB_NOT_FOUND = "ORB_NOT_FOUND"
    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"
    REPLAY_INTEGRITY = "REPLAY_INTEGRITY"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Shared Models
# =============================================================================

class OrbInfo(BaseModel):
    """An orb as seen by the client."""
    orb_id: int
    row: int
    col: int
    side: int = Field(..., ge=1, le=2, description="1 or 2")
    count: int = Field(..., ge=1, le=4)
    proton_ids: list[int] = Field(default_factory=list)


class ReactionNode(BaseModel):
    """
    One node of a reaction tree.

    Leaves carry their payload (orb_id, position, slot, ...); sequence and
    parallel nodes carry children.
    """
    id: int
    kind: str = Field(..., description="create_orb, move_orb, delete_orb, create_proton, "
                                       "move_proton, finish_game, sleep, sequence, parallel")
    orb_id: Optional[int] = None
    proton_id: Optional[int] = None
    position: Optional[list[int]] = Field(None, description="[row, col] board cell")
    slot: Optional[list[int]] = Field(None, description="[row, col] in the orb's 3x3 grid")
    side: Optional[int] = None
    winner: Optional[int] = None
    duration_ms: Optional[int] = None
    children: Optional[list[ReactionNode]] = None


ReactionNode.model_rebuild()


# =============================================================================
# Request Models
# =============================================================================

class CreateSessionRequest(BaseModel):
    """Request to create a new game session."""
    board_size: Optional[int] = Field(None, ge=1, le=26, description="Defaults to server config")
    layout: Optional[str] = Field(
        None, description="Preset name (heavy, thing, duel, empty) or board notation"
    )
    replay_mode: ReplayModeName = Field(
        ReplayModeName.IMMEDIATE,
        description="immediate: server replays at once; client: client acknowledges each tree",
    )


class PressRequest(BaseModel):
    """A tap on a board cell by the side whose turn it is."""
    row: int = Field(..., ge=0)
    col: int = Field(..., ge=0)


class CommandRequest(BaseModel):
    """A raw engine command."""
    kind: CommandKind
    side: Optional[int] = Field(None, ge=1, le=2, description="Defaults to the side to move")
    row: Optional[int] = Field(None, description="Create only")
    col: Optional[int] = Field(None, description="Create only")
    count: int = Field(1, ge=1, le=4, description="Create only")
    orb_id: Optional[int] = Field(None, description="Increment only")
    to: Optional[int] = Field(None, description="Increment only; informational")


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class SessionResponse(BaseModel):
    """Response containing session information."""
    session_id: str
    status: SessionStatus
    board_size: int
    generation: int = 0
    current_side: int = 1
    winner: Optional[int] = None
    replay_mode: ReplayModeName = ReplayModeName.IMMEDIATE
    pending_tree_id: Optional[int] = None
    turns_played: int = 0
    orbs: list[OrbInfo] = Field(default_factory=list)
    board: str = Field("", description="Board in text notation")
    created_at: float = 0.0
    api_version: str = "v1"


class CommandResponse(BaseModel):
    """Result of a press, command or restart."""
    session_id: str
    accepted: bool
    reason: Optional[str] = Field(None, description="Why the command was ignored")
    tree: Optional[ReactionNode] = None
    session: SessionResponse
    api_version: str = "v1"


class ReplayCompleteResponse(BaseModel):
    """Response after a client acknowledges a replayed tree."""
    session_id: str
    acknowledged: bool
    session: SessionResponse


class SessionListResponse(BaseModel):
    """Response listing active sessions."""
    sessions: list[str]
    count: int


class EndSessionResponse(BaseModel):
    """Response after ending a session."""
    success: bool
    session_id: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
