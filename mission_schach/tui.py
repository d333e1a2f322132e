"""Terminal mission player for Mission Schach.

Renders a Rich-based board with goals, hints and score. Two modes:

- ``watch``: auto-updates by watching data/current_session.json (written
  by the MCP server) via watchdog at ~4Hz.
- ``play MISSION_ID``: interactive console loop driving a MissionSession.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path

import chess
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from mission_schach.errors import MissionError
from mission_schach.events import WILDCARD, Events
from mission_schach.missions import MissionLibrary
from mission_schach.notation import parse_coordinate_token
from mission_schach.playback import PlaybackTimings
from mission_schach.progress import ProgressStore, default_data_dir
from mission_schach.scoring import progress_star_rating
from mission_schach.session import MissionSession

logger = logging.getLogger(__name__)

_SESSION_FILE = "current_session.json"

# Unicode piece symbols
_PIECE_SYMBOLS = {
    "K": "♔", "Q": "♕", "R": "♖", "B": "♗",
    "N": "♘", "P": "♙",
    "k": "♚", "q": "♛", "r": "♜", "b": "♝",
    "n": "♞", "p": "♟",
}

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"
_LAST_MOVE = "yellow"
_SELECTED = "gold1"
_PIECE_HINT = "orange1"
_DESTINATION_HINT = "green3"


def _stars(count: int) -> str:
    return "★" * count + "☆" * (3 - count)


def _load_session_state(path: Path) -> dict | None:
    """Load a session snapshot from a JSON file.

    Returns:
        Parsed dict or None if file missing/corrupt.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            return data
        return None
    except (json.JSONDecodeError, OSError):
        return None


def _square_styles(state: dict, hint_highlights: list[dict] | None = None) -> dict[int, str]:
    """Background colors for highlighted squares, by square index."""
    styles: dict[int, str] = {}

    last_move = state.get("last_move")
    if last_move and len(last_move) >= 4:
        try:
            mv = chess.Move.from_uci(last_move[:4])
            styles[mv.from_square] = _LAST_MOVE
            styles[mv.to_square] = _LAST_MOVE
        except (ValueError, chess.InvalidMoveError):
            pass

    highlights = list(hint_highlights or [])
    highlights.extend(state.get("playback", {}).get("highlights", []))
    for highlight in highlights:
        try:
            sq = chess.parse_square(highlight["square"])
        except (KeyError, ValueError):
            continue
        styles[sq] = _PIECE_HINT if highlight.get("kind") == "piece" else _DESTINATION_HINT

    selected = state.get("selected_square")
    if selected:
        try:
            styles[chess.parse_square(selected)] = _SELECTED
        except ValueError:
            pass

    return styles


def render_session(state: dict, hint: dict | None = None) -> Layout:
    """Render board and mission sidebar from a session snapshot.

    Args:
        state: Snapshot dict as produced by MissionSession.snapshot().
        hint: Optional hint dict (text, highlights) to show.

    Returns:
        Rich Layout with board and sidebar.
    """
    layout = Layout()
    layout.split_row(
        Layout(name="board", ratio=2),
        Layout(name="sidebar", ratio=1),
    )
    layout["board"].update(_render_board_panel(state, hint))
    layout["sidebar"].update(_render_sidebar(state, hint))
    return layout


def _render_board_panel(state: dict, hint: dict | None = None) -> Panel:
    board = chess.Board(state.get("fen", chess.STARTING_FEN))
    styles = _square_styles(state, (hint or {}).get("highlights"))

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 1))
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    for rank in range(7, -1, -1):
        row: list[Text] = [Text(str(rank + 1), style="bold")]
        for file in range(8):
            sq = chess.square(file, rank)
            piece = board.piece_at(sq)
            is_light = (rank + file) % 2 == 1
            bg = styles.get(sq, _LIGHT_SQ if is_light else _DARK_SQ)

            if piece is not None:
                symbol = _PIECE_SYMBOLS.get(piece.symbol(), "?")
                row.append(Text(f" {symbol} ", style=f"on {bg}"))
            else:
                row.append(Text("   ", style=f"on {bg}"))
        table.add_row(*row)

    file_labels = [Text("  ")]
    for f in range(8):
        file_labels.append(Text(f" {chr(ord('a') + f)} ", style="bold"))
    table.add_row(*file_labels)

    title = state.get("title", "Mission Schach")
    if state.get("phase") == "completed":
        title = f"Mission geschafft: {title}"
    elif state.get("game_over_reason"):
        title = f"Spiel beendet ({state['game_over_reason']}): {title}"

    return Panel(table, title=title, border_style="blue")


def _render_sidebar(state: dict, hint: dict | None = None) -> Panel:
    parts: list[str] = []

    instruction = state.get("instruction")
    if instruction:
        parts.append(f"[italic]{instruction}[/italic]")
        parts.append("")

    parts.append("[bold]Ziele:[/bold]")
    for goal in state.get("goals", []):
        mark = "[green]✓[/green]" if goal.get("completed") else "○"
        parts.append(f"  {mark} {goal.get('text', '')}")
    parts.append("")

    move_list = state.get("move_list", [])
    if move_list:
        parts.append("[bold]Züge:[/bold]")
        for i in range(0, len(move_list), 2):
            black_move = move_list[i + 1] if i + 1 < len(move_list) else ""
            parts.append(f"  {i // 2 + 1}. {move_list[i]} {black_move}")
        parts.append("")

    if hint:
        parts.append(f"[bold]Tipp {hint.get('level', '')}:[/bold] {hint.get('text', '')}")
        parts.append("")

    playback = state.get("playback", {})
    if playback.get("is_playing"):
        parts.append(
            f"[cyan]Lösung: Schritt {playback.get('step_index', 0) + 1} "
            f"von {playback.get('total_steps', 0)}[/cyan]"
        )

    parts.append(f"Tipps: {state.get('hint_level', 0)}/3")
    if state.get("solution_revealed"):
        parts.append("[red]Lösung angezeigt[/red]")
    if state.get("is_check"):
        parts.append("[bold red]Schach![/bold red]")

    score = state.get("score")
    if score:
        parts.append("")
        parts.append(f"[bold]Punkte:[/bold] {score['final_score']}")
        parts.append(f"  {_stars(score['star_rating'])}")

    return Panel("\n".join(parts), title=state.get("phase", ""), border_style="green")


def render_progress(library: MissionLibrary, store: ProgressStore) -> Panel:
    """Render the mission overview with recorded scores and stars.

    Stars use the progress display table (0 stars below 40%).
    """
    table = Table(show_header=True, box=None)
    table.add_column("Mission")
    table.add_column("Titel")
    table.add_column("Punkte", justify="right")
    table.add_column("Sterne")

    progress = store.load_all_progress()
    for mission in library.list_missions():
        record = progress.get(mission.id)
        if record is None:
            table.add_row(mission.id, mission.title, "-", "")
            continue
        score = record.get("score") or 0
        table.add_row(mission.id, mission.title, str(score), _stars(progress_star_rating(score)))

    stats = store.load_aggregate_stats()
    summary = Text(
        f"Abgeschlossen: {stats['completed_missions']}  "
        f"Punkte: {stats['total_score']}  Sterne: {stats['total_stars']}"
    )
    return Panel(Group(table, summary), title="Fortschritt", border_style="magenta")


def _render_waiting() -> Panel:
    return Panel(
        Text("Warte auf Mission...\n\nStarte eine Mission über den MCP-Server.",
             justify="center"),
        title="Mission Schach",
        border_style="dim",
    )


def _watch_loop(console: Console, data_dir: Path) -> None:
    """Watch current_session.json and auto-update display at ~4Hz."""
    from watchdog.events import FileSystemEventHandler
    from watchdog.observers import Observer

    session_path = data_dir / _SESSION_FILE
    last_state: dict | None = None
    state_changed = True

    class _Handler(FileSystemEventHandler):
        def on_modified(self, event):
            nonlocal state_changed
            if event.src_path.endswith(_SESSION_FILE):
                state_changed = True

    observer = Observer()
    data_dir.mkdir(parents=True, exist_ok=True)
    observer.schedule(_Handler(), str(data_dir), recursive=False)
    observer.start()

    try:
        with Live(console=console, refresh_per_second=4) as live:
            while True:
                if state_changed:
                    state = _load_session_state(session_path)
                    if state is not None and "mission_id" in state:
                        last_state = state
                        live.update(render_session(state))
                    elif last_state is None:
                        live.update(_render_waiting())
                    state_changed = False
                time.sleep(0.25)
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()


_PLAY_HELP = (
    "Befehle: <von><nach> (z.B. e2e4, e7e8n), hint, solution, play, reset, help, q"
)


def _play_loop(console: Console, session: MissionSession, mission_id: str) -> None:
    """Interactive mission loop on the console."""
    session.start(mission_id)
    hint: dict | None = None

    def _on_event(event: str, payload: dict) -> None:
        if event == Events.GOAL_COMPLETED:
            console.print(f"[green]Ziel erreicht:[/green] {payload['goal']}")
        elif event == Events.PLAYBACK_STEP:
            console.print(f"[cyan]{payload['commentary']}[/cyan]")
        elif event == Events.PLAYBACK_FAILED:
            console.print(f"[red]Wiedergabe abgebrochen:[/red] {payload['reason']}")

    session.events.subscribe(WILDCARD, _on_event)
    console.print(_PLAY_HELP)

    while True:
        console.print(render_session(session.snapshot(), hint))
        if session.snapshot()["phase"] != "active":
            return

        console.print("Dein Zug: ", end="")
        command = input().strip().lower()
        hint = None

        try:
            if command in ("q", "quit", "exit"):
                session.exit()
                return
            if command == "help":
                console.print(_PLAY_HELP)
            elif command == "hint":
                entry = session.request_hint()
                if entry is not None:
                    hint = {
                        "level": entry.level,
                        "text": entry.text,
                        "highlights": [{"kind": h.kind, "square": h.square} for h in entry.highlights],
                    }
            elif command == "solution":
                solution = session.reveal_solution()
                console.print(f"Die Lösung ist: [bold]{', '.join(solution) or '-'}[/bold]")
            elif command == "play":
                if session.playback.play():
                    asyncio.run(session.playback.run())
            elif command == "reset":
                session.reset()
            else:
                move = parse_coordinate_token(command.replace(" ", ""))
                if move is None:
                    console.print("Ungültige Eingabe. " + _PLAY_HELP)
                    continue
                record = session.attempt_move(*move)
                console.print(f"[green]{record.san} - Guter Zug![/green]")
        except MissionError as exc:
            console.print(f"[red]{exc}[/red]")


def main() -> None:
    """CLI entry point for tui.py."""
    parser = argparse.ArgumentParser(description="Mission Schach Terminal UI")
    parser.add_argument("--missions-dir", type=str, default=None, help="Missions directory")
    parser.add_argument("--data-dir", type=str, default=None, help="Data directory")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("watch", help="Follow the MCP server's current session")
    play_parser = subparsers.add_parser("play", help="Play a mission interactively")
    play_parser.add_argument("mission_id", type=str, help="Mission id")
    subparsers.add_parser("progress", help="Show mission progress")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    console = Console()
    data_dir = Path(args.data_dir) if args.data_dir else default_data_dir()
    library = MissionLibrary(args.missions_dir)
    store = ProgressStore(data_dir / "progress.json")

    if args.command == "watch":
        _watch_loop(console, data_dir)
    elif args.command == "play":
        session = MissionSession(library, store, timings=PlaybackTimings())
        try:
            _play_loop(console, session, args.mission_id)
        except MissionError as exc:
            console.print(f"[red]{exc}[/red]")
            sys.exit(1)
    elif args.command == "progress":
        console.print(render_progress(library, store))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
