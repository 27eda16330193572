"""
Presentation Mapping - Board and slot coordinates to pixel offsets.

Pure functions consumed by renderers. The engine never calls these; the
board mirror uses them to give replayed orbs screen coordinates.
"""

from __future__ import annotations

from .config import GameConfig, DEFAULT_CONFIG
from .engine_core.state import Position


def orb_position(index: int, board_size: int, config: GameConfig = DEFAULT_CONFIG) -> float:
    """Pixel offset of a cell index, centred on the middle of the board."""
    return (index - board_size // 2) * (config.cell_size + config.gap) - config.orb_size / 2


def proton_position(coord: int, config: GameConfig = DEFAULT_CONFIG) -> float:
    """Pixel offset of a 0-2 slot coordinate inside an orb."""
    return config.orb_size / 2 + config.proton_size * (coord - 1.5)


def orb_screen_position(position: Position, board_size: int, config: GameConfig = DEFAULT_CONFIG) -> tuple[float, float]:
    return (
        orb_position(position.row, board_size, config),
        orb_position(position.col, board_size, config),
    )


def proton_screen_position(slot: Position, config: GameConfig = DEFAULT_CONFIG) -> tuple[float, float]:
    return (proton_position(slot.row, config), proton_position(slot.col, config))
