"""
Preset Layouts - Named starting boards in board notation.
"""

from __future__ import annotations

from .engine_core.errors import InvalidLayout
from .engine_core.notation import CELL_SEPARATOR, parse_layout
from .engine_core.state import LayoutEntry


PRESETS: dict[str, str] = {
    "empty": """
  |  |  |  |  
  |  |  |  |  
  |  |  |  |  
  |  |  |  |  
  |  |  |  |  
""",
    "heavy": """
▲3|▲3|▲3|▲3|▲3
▲3|▲3|▲3|▲3|▲3
▲3|▲3|▲3|▼3|▲3
▼3|▼3|▼3|▼3|▼3
▼3|▼3|▼3|▼3|  
""",
    "thing": """
▲3|  |  |  |  
  |  |  |▲3|  
  |  |  |▼3|  
  |  |  |  |  
  |  |▼3|  |  
""",
    "duel": """
  |  |  |▼1|  
  |  |  |▲1|▼1
  |  |▲1|▼3|▲1
  |  |  |▲1|  
  |  |  |  |  
""",
}


def get_preset(name: str) -> str:
    try:
        return PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown preset {name!r}; choose from {sorted(PRESETS)}") from None


def resolve_layout(name_or_text: str) -> str:
    """
    Board notation for a preset name or raw notation text.

    Text with no cell separator cannot be notation, so it must name a
    preset; anything else raises InvalidLayout instead of yielding an
    empty board.
    """
    if name_or_text in PRESETS:
        return PRESETS[name_or_text]
    if CELL_SEPARATOR not in name_or_text:
        raise InvalidLayout(f"Unknown preset {name_or_text!r}; choose from {sorted(PRESETS)}")
    return name_or_text


def load_layout(name_or_text: str) -> list[LayoutEntry]:
    """Layout entries for a preset name or raw board notation."""
    return parse_layout(resolve_layout(name_or_text))
