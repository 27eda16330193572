"""
Board Notation - Text grids for fixtures, presets and debug dumps.

Format:
    ▲3|  |  |  |
      |▼1|  |  |

- Rows are separated by line breaks; only lines containing "|" count
- Cells are separated by "|"
- A filled cell is a side marker (▲ = side 1, ▼ = side 2) and a count digit
- Blank cells are spaces or empty
- Row index is the line index, column index is the split position
"""

from __future__ import annotations
from typing import Iterable

from .errors import InvalidLayout
from .state import LayoutEntry, OrbSnapshot, Position, Side


CELL_SEPARATOR = "|"
EMPTY_CELL = "  "


def parse_layout(text: str) -> list[LayoutEntry]:
    """
    Parse a board grid into layout entries.

    Raises InvalidLayout for unknown markers or non-digit counts. Bounds
    and collisions are checked by the engine, not here.
    """
    lines = [line for line in text.split("\n") if CELL_SEPARATOR in line]
    entries: list[LayoutEntry] = []

    for row, line in enumerate(lines):
        for col, raw in enumerate(line.split(CELL_SEPARATOR)):
            cell = raw.strip()
            if not cell:
                continue
            if len(cell) != 2:
                raise InvalidLayout(f"Malformed cell {raw!r} at ({row},{col})")
            marker, digit = cell[0], cell[1]
            try:
                side = Side.from_marker(marker)
            except ValueError:
                raise InvalidLayout(f"Unknown side marker {marker!r} at ({row},{col})") from None
            if not digit.isdigit():
                raise InvalidLayout(f"Count must be a digit, got {digit!r} at ({row},{col})")
            entries.append(LayoutEntry(position=Position(row, col), count=int(digit), side=side))

    return entries


def layout_size(text: str) -> int:
    """Board size implied by a grid: the larger of row count and widest row."""
    lines = [line for line in text.split("\n") if CELL_SEPARATOR in line]
    if not lines:
        return 0
    widest = max(len(line.split(CELL_SEPARATOR)) for line in lines)
    return max(len(lines), widest)


def format_cell(orb: OrbSnapshot | None) -> str:
    if orb is None:
        return EMPTY_CELL
    return f"{orb.side.marker}{orb.count}"


def format_board(orbs: Iterable[OrbSnapshot], board_size: int, with_ids: bool = False) -> str:
    """
    Render orbs as a grid in the same notation parse_layout() reads.

    Cells holding several orbs (only possible mid-cascade) are joined with
    "+". With `with_ids`, each cell is suffixed by "#<orb id>", which makes
    the output a debug dump rather than parseable notation.
    """
    cells: dict[Position, list[OrbSnapshot]] = {}
    for orb in orbs:
        cells.setdefault(orb.position, []).append(orb)

    rows = []
    for row in range(board_size):
        parts = []
        for col in range(board_size):
            stack = cells.get(Position(row, col))
            if not stack:
                parts.append(EMPTY_CELL)
                continue
            rendered = []
            for orb in stack:
                text = format_cell(orb)
                if with_ids:
                    text += f"#{orb.orb_id}"
                rendered.append(text)
            parts.append("+".join(rendered))
        rows.append(CELL_SEPARATOR.join(parts))
    return "\n".join(rows)
