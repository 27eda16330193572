"""
Cascade CLI - Command-line interface for the engine.

Usage:
    cascade show <layout>                    Print a preset or notation board
    cascade run <layout> --press r,c ...     Play presses, print trees as JSON
    cascade play [<layout>]                  Interactive two-player game
    cascade serve                            Run the HTTP API with uvicorn

<layout> is a preset name (heavy, thing, duel, empty), a path to a file in
board notation, or notation text itself.
"""

import argparse
import json
import os
import sys

from .config import ConfigError, GameConfig
from .engine_core.errors import EngineError
from .engine_core.notation import layout_size
from .presets import PRESETS


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Cascade - Chain-reaction orb engine",
        prog="cascade",
    )
    parser.add_argument(
        "--trace",
        help="Comma-separated trace categories (STATE, ORBS, MERGE, APPLY, INTERACTION, ERROR) or '*'",
    )
    parser.add_argument(
        "--threshold", type=int, choices=(3, 4),
        help="Proton count at which an increment detonates",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Show command
    show_parser = subparsers.add_parser("show", help="Print a layout as a board")
    show_parser.add_argument("layout", help="Preset name, notation file or notation text")
    show_parser.add_argument("--ids", action="store_true", help="Suffix cells with orb ids")

    # Run command
    run_parser = subparsers.add_parser("run", help="Apply presses and print reaction trees")
    run_parser.add_argument("layout", help="Preset name, notation file or notation text")
    run_parser.add_argument(
        "--press", action="append", default=[], metavar="ROW,COL",
        help="Cell to tap (repeatable; sides alternate starting with side 1)",
    )
    run_parser.add_argument("--indent", type=int, default=None, help="JSON indent")

    # Play command
    play_parser = subparsers.add_parser("play", help="Interactive game on stdin")
    play_parser.add_argument("layout", nargs="?", default=None, help="Defaults to the configured layout")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")

    args = parser.parse_args(argv)

    if args.trace:
        from .trace import configure_tracing
        categories = None if args.trace.strip() == "*" else [c for c in args.trace.split(",") if c.strip()]
        configure_tracing(categories)

    if args.command == "show":
        return cmd_show(args)
    elif args.command == "run":
        return cmd_run(args)
    elif args.command == "play":
        return cmd_play(args)
    elif args.command == "serve":
        return cmd_serve(args)
    else:
        parser.print_help()
        sys.exit(1)


def _config(args, layout_text: str | None = None) -> GameConfig:
    try:
        config = GameConfig.from_env()
        overrides = {}
        if args.threshold is not None:
            overrides["pre_detonation_threshold"] = args.threshold
        if layout_text is not None and layout_text not in PRESETS:
            size = layout_size(layout_text)
            if size:
                overrides["board_size"] = size
        return config.with_overrides(**overrides) if overrides else config
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _read_layout(value: str) -> str:
    """Preset name, file path or literal notation."""
    if value in PRESETS:
        return value
    if os.path.isfile(value):
        with open(value, "r", encoding="utf-8") as f:
            return f.read()
    return value.replace("\\n", "\n")


def _parse_press(value: str) -> tuple[int, int]:
    try:
        row, col = (int(part) for part in value.split(","))
    except ValueError:
        print(f"Error: --press expects ROW,COL, got {value!r}")
        sys.exit(1)
    return row, col


def _new_session(args, layout: str):
    from .session import SessionManager

    config = _config(args, layout)
    manager = SessionManager(config)
    try:
        return manager.create_session(layout=layout)
    except EngineError as e:
        print(f"Error: {e}")
        sys.exit(1)


def cmd_show(args):
    """Print a layout as a board."""
    session = _new_session(args, _read_layout(args.layout))
    print(session.board_as_string(with_ids=args.ids))
    return 0


def cmd_run(args):
    """Apply presses in order and print one JSON document."""
    session = _new_session(args, _read_layout(args.layout))
    moves = []

    for value in args.press:
        row, col = _parse_press(value)
        side = session.current_side
        try:
            tree = session.press(row, col)
        except EngineError as e:
            print(f"Error: {e}")
            sys.exit(1)
        moves.append({
            "press": [row, col],
            "side": side.value,
            "accepted": tree is not None,
            "tree": tree.to_dict() if tree is not None else None,
        })

    output = {
        "moves": moves,
        "board": session.board_as_string(),
        "winner": session.winner.value if session.winner is not None else None,
    }
    print(json.dumps(output, indent=args.indent, ensure_ascii=False))
    return 0


def cmd_play(args):
    """Interactive two-player game: type 'row col', 'restart' or 'quit'."""
    layout = _read_layout(args.layout) if args.layout else None
    session = _new_session(args, layout if layout is not None else _config(args).initial_layout)

    while True:
        print()
        print(session.board_as_string())
        if session.winner is not None:
            print(f"Side {session.winner.value} ({session.winner.marker}) wins")
        else:
            print(f"Side {session.current_side.value} ({session.current_side.marker}) to move")

        try:
            line = input("> ").strip()
        except EOFError:
            return 0

        if line in ("q", "quit", "exit"):
            return 0
        if line == "restart":
            session.restart()
            continue

        try:
            row, col = (int(part) for part in line.replace(",", " ").split())
        except ValueError:
            print("Enter 'row col', 'restart' or 'quit'")
            continue

        try:
            tree = session.press(row, col)
        except EngineError as e:
            print(f"Error: {e}")
            print("Type 'restart' to start over")
            continue
        if tree is None:
            print("Ignored")


def cmd_serve(args):
    """Run the HTTP API."""
    try:
        import uvicorn
    except ImportError:
        print("Error: uvicorn not installed. Install with: pip install uvicorn")
        sys.exit(1)

    uvicorn.run("cascade.api.app:app", host=args.host, port=args.port, reload=args.reload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
