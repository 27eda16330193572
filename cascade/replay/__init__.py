"""
Replay - Interpreting reaction trees outside the engine.

The runner schedules a tree (sequence cursors, parallel completion
counters, a virtual clock for sleeps). Handlers apply the leaves; the
board mirror is the headless reference handler.
"""

from .runner import ReactionRunner, ReactionHandler, Completion, RunnerState, VirtualClock
from .mirror import BoardMirror, MirrorOrb, MirrorProton

__all__ = [
    "ReactionRunner",
    "ReactionHandler",
    "Completion",
    "RunnerState",
    "VirtualClock",
    "BoardMirror",
    "MirrorOrb",
    "MirrorProton",
]
