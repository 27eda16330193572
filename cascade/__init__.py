"""
Cascade - Chain-Reaction Board Game Engine

A deterministic simulation core for a two-player chain-reaction game.
The engine accepts commands and returns reaction trees:
- Board state management (orbs and protons)
- Detonation and cascade resolution
- Replayable reaction trees for an external animation layer
- Sessions with command gating and clean restarts
"""

__version__ = "0.1.0"
