"""
Pytest fixtures for Cascade tests.
"""

import textwrap

import pytest

from ..config import GameConfig
from ..engine_core.engine import OrbEngine
from ..engine_core.reaction import Reaction
from ..replay import BoardMirror, ReactionRunner
from ..session import SessionManager


def board(text: str) -> str:
    """Dedent a triple-quoted board so fixtures can be indented in tests."""
    return textwrap.dedent(text).strip("\n")


def engine_view(engine: OrbEngine) -> dict:
    """Cell -> (side, count), the shape BoardMirror.board_view() returns."""
    return {orb.position: (orb.side, orb.count) for orb in engine.orbs}


@pytest.fixture
def config() -> GameConfig:
    """Default rules on a 5x5 board."""
    return GameConfig()


@pytest.fixture
def engine(config: GameConfig) -> OrbEngine:
    """A fresh engine with an empty board."""
    return OrbEngine(config=config)


@pytest.fixture
def mirror(config: GameConfig) -> BoardMirror:
    return BoardMirror(config.board_size, config)


@pytest.fixture
def replay(mirror: BoardMirror):
    """
    Replay trees into the shared mirror, fast-forwarding sleeps.

    Usage:
        replay(engine.initialize(layout))
        replay(engine.run_command(command))
    """
    runner = ReactionRunner(mirror)

    def _replay(tree: Reaction) -> ReactionRunner:
        runner.start(tree)
        assert runner.run_to_completion()
        return runner

    return _replay


@pytest.fixture
def manager(config: GameConfig) -> SessionManager:
    return SessionManager(config)


# =============================================================================
# Layouts
# =============================================================================

@pytest.fixture
def lone_three() -> str:
    """A side-1 orb one tap from detonating, with a distant opponent."""
    return board("""
          |  |  |  |
          |  |  |  |
          |  |▲3|  |
          |  |  |  |
          |  |  |  |▼1
    """)


@pytest.fixture
def capture_layout() -> str:
    """Detonating (2,2) lands a side-1 orb on the only opponent orb."""
    return board("""
          |  |  |  |
          |  |▼1|  |
          |  |▲3|  |
          |  |  |  |
          |  |  |  |
    """)
