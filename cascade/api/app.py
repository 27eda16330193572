"""
FastAPI Application - REST API for rendering clients.

Endpoints:
    GET    /api/v1/health                                      Health check
    POST   /api/v1/sessions                                    Create game session
    GET    /api/v1/sessions                                    List sessions
    GET    /api/v1/sessions/{id}                               Get session status and board
    DELETE /api/v1/sessions/{id}                               End session
    POST   /api/v1/sessions/{id}/press                         Tap a cell
    POST   /api/v1/sessions/{id}/commands                      Raw create/increment command
    POST   /api/v1/sessions/{id}/replay/{reaction_id}/complete  Acknowledge a replayed tree
    POST   /api/v1/sessions/{id}/restart                       Start a new generation

Replay Flow:
    1. POST /press (or /commands) returns the reaction tree for the move
    2. immediate mode: the server has already replayed it; the next move
       is accepted right away
    3. client mode: the client animates the tree, then calls
       /replay/{tree id}/complete; moves are ignored until then

All responses are JSON with explicit Pydantic schemas.
"""

from typing import Optional, Union
import os

# Environment configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

API_VERSION = "0.1.0"

ERROR_STATUS = {
    "SESSION_NOT_FOUND": 404,
    "INVALID_LAYOUT": 400,
    "INVALID_COMMAND": 400,
    "CELL_OCCUPIED": 409,
    "ORB_NOT_FOUND": 404,
    "INVARIANT_VIOLATION": 500,
    "REPLAY_INTEGRITY": 409,
    "VALIDATION_ERROR": 422,
    "INTERNAL_ERROR": 500,
}


def create_app(service=None):
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (creates new if not provided)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Install with: pip install fastapi uvicorn"
        )

    from .service import APIService
    from .schemas import (
        CommandRequest,
        CommandResponse,
        CreateSessionRequest,
        EndSessionResponse,
        ErrorCode,
        ErrorResponse,
        HealthResponse,
        PressRequest,
        ReplayCompleteResponse,
        SessionListResponse,
        SessionResponse,
    )

    app = FastAPI(
        title="Cascade Orbs API",
        description="""
## Cascade Orbs Engine

Two players place and grow orbs on a square board. An orb that reaches
its threshold detonates into its neighbours; collisions merge or detonate
in rounds until the board settles or one side owns every orb.

Every move returns a **reaction tree**: nested `sequence` and `parallel`
groups of leaf effects (`create_orb`, `move_orb`, `delete_orb`,
`create_proton`, `move_proton`, `sleep`, `finish_game`).

## Error Codes

| Code | Description |
|------|-------------|
| `SESSION_NOT_FOUND` | Session does not exist |
| `INVALID_LAYOUT` | Layout is malformed or out of bounds |
| `INVALID_COMMAND` | Command is malformed |
| `CELL_OCCUPIED` | Create on an occupied cell |
| `ORB_NOT_FOUND` | Increment with a stale orb id |
| `REPLAY_INTEGRITY` | Acknowledged tree is not the pending one |
        """,
        version=API_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api_service = service or APIService()

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(mode="json"),
        )

    def error_from(response: ErrorResponse) -> JSONResponse:
        return make_error_response(
            response.error_code,
            response.error,
            status_code=ERROR_STATUS.get(response.error_code.value, 400),
            details=response.details,
        )

    # =========================================================================
    # Session Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions",
        response_model=SessionResponse,
        responses={400: {"model": ErrorResponse, "description": "Invalid layout or parameters"}},
        tags=["Sessions"],
        summary="Create a new game session",
    )
    async def create_session(request: CreateSessionRequest) -> Union[SessionResponse, JSONResponse]:
        """
        Create a new game session.

        `layout` is a preset name (`heavy`, `thing`, `duel`, `empty`) or a
        board in text notation. The initial layout tree is replayed as part
        of session creation in immediate mode.
        """
        response = api_service.create_session(request)
        if isinstance(response, ErrorResponse):
            return error_from(response)
        return response

    @app.get(
        "/api/v1/sessions",
        response_model=SessionListResponse,
        tags=["Sessions"],
        summary="List active sessions",
    )
    async def list_sessions() -> SessionListResponse:
        """List all active session IDs."""
        sessions = api_service.list_sessions()
        return SessionListResponse(sessions=sessions, count=len(sessions))

    @app.get(
        "/api/v1/sessions/{session_id}",
        response_model=SessionResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Get session status and board",
    )
    async def get_session(session_id: str) -> Union[SessionResponse, JSONResponse]:
        response = api_service.get_session(session_id)
        if isinstance(response, ErrorResponse):
            return error_from(response)
        return response

    @app.delete(
        "/api/v1/sessions/{session_id}",
        response_model=EndSessionResponse,
        tags=["Sessions"],
        summary="End a game session",
    )
    async def end_session(session_id: str) -> EndSessionResponse:
        """End a game session and release its engines."""
        success = api_service.end_session(session_id)
        return EndSessionResponse(success=success, session_id=session_id)

    # =========================================================================
    # Move Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions/{session_id}/press",
        response_model=CommandResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        tags=["Moves"],
        summary="Tap a board cell",
    )
    async def press(session_id: str, request: PressRequest) -> Union[CommandResponse, JSONResponse]:
        """
        Tap a cell as the side to move.

        Empty cell creates an orb, an own orb grows or detonates, an
        opponent orb is ignored (`accepted=false`).
        """
        response = api_service.press(session_id, request.row, request.col)
        if isinstance(response, ErrorResponse):
            return error_from(response)
        return response

    @app.post(
        "/api/v1/sessions/{session_id}/commands",
        response_model=CommandResponse,
        responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
        tags=["Moves"],
        summary="Run a raw engine command",
    )
    async def submit_command(session_id: str, request: CommandRequest) -> Union[CommandResponse, JSONResponse]:
        response = api_service.submit_command(session_id, request)
        if isinstance(response, ErrorResponse):
            return error_from(response)
        return response

    @app.post(
        "/api/v1/sessions/{session_id}/replay/{reaction_id}/complete",
        response_model=ReplayCompleteResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        tags=["Moves"],
        summary="Acknowledge that a reaction tree finished replaying",
    )
    async def complete_replay(session_id: str, reaction_id: int) -> Union[ReplayCompleteResponse, JSONResponse]:
        response = api_service.complete_replay(session_id, reaction_id)
        if isinstance(response, ErrorResponse):
            return error_from(response)
        return response

    @app.post(
        "/api/v1/sessions/{session_id}/restart",
        response_model=CommandResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Restart the game with a fresh engine",
    )
    async def restart(session_id: str) -> Union[CommandResponse, JSONResponse]:
        response = api_service.restart(session_id)
        if isinstance(response, ErrorResponse):
            return error_from(response)
        return response

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/api/v1/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="cascade-engine",
            version=API_VERSION,
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Cascade Orbs API",
            "version": API_VERSION,
            "docs": "/api/docs",
            "health": "/api/v1/health",
        }

    return app


# For running directly: uvicorn cascade.api.app:app
app = None
try:
    app = create_app()
except ImportError:
    # FastAPI not installed
    pass
