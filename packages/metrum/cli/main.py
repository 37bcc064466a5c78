"""Command-line interface for Metrum.

Every command works on a tempo map state file (JSON or YAML):

    metrum new song.tempo.json --bpm 96 --meter 6/8
    metrum add-tempo song.tempo.json --bpm 120 --beat 32 --ramp
    metrum add-meter song.tempo.json --meter 3/4 --bar 17
    metrum show song.tempo.json
    metrum show song.tempo.json --json
    metrum convert song.tempo.json --bbt 17|1|0
    metrum grid song.tempo.json --start 0 --end 480000
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from metrum.core.config.loader import load_app_config
from metrum.core.config.models import AppConfig
from metrum.core.tempo import (
    BBTTime,
    Meter,
    MeterSection,
    PositionLockStyle,
    StateLoadError,
    Tempo,
    TempoMap,
    TempoMapError,
    TempoSection,
    TempoType,
    save_state,
)
from metrum.core.tempo.state import read_state_file
from metrum.core.utils.json import dumps_json
from metrum.core.utils.logging import configure_logging

console = Console()
logger = logging.getLogger(__name__)


def parse_meter(text: str) -> Meter:
    """Parse ``divisions/note`` (e.g. ``7/8``) into a Meter.

    Raises:
        argparse.ArgumentTypeError: If the text is not a meter.
    """
    try:
        divisions, note = text.split("/")
        return Meter(divisions_per_bar=float(divisions), note_type=float(note))
    except (ValueError, ValidationError) as e:
        raise argparse.ArgumentTypeError(f"Invalid meter '{text}', expected e.g. 3/4") from e


def parse_bbt(text: str) -> BBTTime:
    try:
        return BBTTime.parse(text)
    except (ValueError, ValidationError) as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _open_map(path: Path, config: AppConfig) -> TempoMap:
    """Load a state file into a map running at the file's frame rate."""
    state = read_state_file(path)
    tempo_map = TempoMap.from_config(config.model_copy(update={"frame_rate": state.frame_rate}))
    if not tempo_map.set_state(state):
        raise StateLoadError(f"Tempo map state in {path} was rejected")
    return tempo_map


def _lock_style(args: argparse.Namespace) -> PositionLockStyle:
    return PositionLockStyle.AUDIO_TIME if args.sample is not None else PositionLockStyle.MUSIC_TIME


# ============================================================================
# Commands
# ============================================================================


def cmd_new(args: argparse.Namespace, config: AppConfig) -> int:
    updates: dict[str, object] = {}
    if args.frame_rate is not None:
        updates["frame_rate"] = args.frame_rate
    if args.bpm is not None:
        updates["default_tempo"] = config.default_tempo.model_copy(
            update={"beats_per_minute": args.bpm, "note_type": args.note_type}
        )
    if args.meter is not None:
        updates["default_meter"] = config.default_meter.model_copy(
            update={
                "divisions_per_bar": args.meter.divisions_per_bar,
                "note_type": args.meter.note_type,
            }
        )
    tempo_map = TempoMap.from_config(config.model_copy(update=updates))
    save_state(tempo_map, args.state)
    console.print(f"[green]Created tempo map[/green] {args.state} @ {tempo_map.frame_rate} Hz")
    return 0


def cmd_show(args: argparse.Namespace, config: AppConfig) -> int:
    tempo_map = _open_map(args.state, config)
    if args.json:
        state = tempo_map.get_state().model_dump(mode="json")
        console.print(dumps_json(state), markup=False, highlight=False, soft_wrap=True)
        return 0

    table = Table(title=f"{args.state} @ {tempo_map.frame_rate} Hz")
    table.add_column("ID", justify="right")
    table.add_column("Kind")
    table.add_column("Value")
    table.add_column("BBT")
    table.add_column("Beat", justify="right")
    table.add_column("Sample", justify="right")
    table.add_column("Lock")

    for section in tempo_map.snapshot():
        if isinstance(section, TempoSection):
            value = str(section.tempo)
            if section.ramped:
                value += " ramp"
        else:
            value = str(section.meter)
        table.add_row(
            str(section.id),
            section.kind,
            value,
            str(section.bbt),
            f"{section.beat:.3f}",
            str(section.sample),
            section.lock_style.value,
        )

    console.print(table)
    return 0


def cmd_convert(args: argparse.Namespace, config: AppConfig) -> int:
    tempo_map = _open_map(args.state, config)

    if args.sample is not None:
        sample = args.sample
    elif args.beat is not None:
        sample = tempo_map.sample_at_beat(args.beat)
    else:
        sample = tempo_map.sample_at_bbt(args.bbt)

    seconds = sample / tempo_map.frame_rate
    console.print(f"[bold]Sample:[/bold]  {sample}")
    console.print(f"[bold]Seconds:[/bold] {seconds:.6f}")
    console.print(f"[bold]Beat:[/bold]    {tempo_map.beat_at_sample(sample):.6f}")
    console.print(f"[bold]BBT:[/bold]     {tempo_map.bbt_at_sample(sample)}")
    console.print(f"[bold]Tempo:[/bold]   {tempo_map.tempo_at(sample)}")
    console.print(f"[bold]Meter:[/bold]   {tempo_map.meter_at(sample)}")
    return 0


def cmd_grid(args: argparse.Namespace, config: AppConfig) -> int:
    tempo_map = _open_map(args.state, config)
    points = tempo_map.get_grid(args.start, args.end)
    if args.bars_only:
        points = [p for p in points if p.is_bar]

    table = Table(title=f"Grid [{args.start}, {args.end})")
    table.add_column("BBT")
    table.add_column("Sample", justify="right")
    table.add_column("Tempo")
    table.add_column("Meter")
    for point in points:
        style = "bold" if point.is_bar else None
        table.add_row(
            str(point.bbt),
            str(point.sample),
            str(point.tempo.tempo),
            str(point.meter.meter),
            style=style,
        )

    console.print(table)
    console.print(f"{len(points)} grid points")
    return 0


def cmd_add_tempo(args: argparse.Namespace, config: AppConfig) -> int:
    tempo_map = _open_map(args.state, config)
    tempo = Tempo(beats_per_minute=args.bpm, note_type=args.note_type)
    position = args.sample if args.sample is not None else args.beat
    tempo_type = TempoType.RAMP if args.ramp else TempoType.CONSTANT

    section = tempo_map.add_tempo(tempo, position, tempo_type, _lock_style(args))
    if section is None:
        console.print(f"[red]ERROR: Could not add tempo {tempo} at {position}[/red]")
        return 1

    save_state(tempo_map, args.state)
    console.print(f"[green]Added[/green] {section}")
    return 0


def cmd_add_meter(args: argparse.Namespace, config: AppConfig) -> int:
    tempo_map = _open_map(args.state, config)
    position: BBTTime | int = (
        args.sample if args.sample is not None else BBTTime(bars=args.bar)
    )

    section: MeterSection | None = tempo_map.add_meter(args.meter, position, _lock_style(args))
    if section is None:
        console.print(f"[red]ERROR: Could not add meter {args.meter} at {position}[/red]")
        return 1

    save_state(tempo_map, args.state)
    console.print(f"[green]Added[/green] {section}")
    return 0


COMMANDS = {
    "new": cmd_new,
    "show": cmd_show,
    "convert": cmd_convert,
    "grid": cmd_grid,
    "add-tempo": cmd_add_tempo,
    "add-meter": cmd_add_meter,
}


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for CLI."""
    p = argparse.ArgumentParser(
        prog="metrum",
        description="Metrum - tempo and meter maps for sample-accurate timelines",
    )
    p.add_argument(
        "--app-config",
        default="metrum.json",
        help="Path to app config JSON/YAML (default: metrum.json)",
    )
    p.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    new = sub.add_parser("new", help="Create a tempo map state file")
    new.add_argument("state", type=Path, help="State file to write (.json/.yaml)")
    new.add_argument("--bpm", type=float, help="Initial tempo")
    new.add_argument("--note-type", type=float, default=4.0, help="Beat note value (default: 4)")
    new.add_argument("--meter", type=parse_meter, help="Initial meter, e.g. 4/4")
    new.add_argument("--frame-rate", type=int, help="Sample rate in Hz")

    show = sub.add_parser("show", help="List tempo and meter sections")
    show.add_argument("state", type=Path)
    show.add_argument("--json", action="store_true", help="Print the state document as JSON")

    convert = sub.add_parser("convert", help="Convert a position to every time domain")
    convert.add_argument("state", type=Path)
    where = convert.add_mutually_exclusive_group(required=True)
    where.add_argument("--sample", type=int)
    where.add_argument("--beat", type=float)
    where.add_argument("--bbt", type=parse_bbt, help="bars|beats|ticks")

    grid = sub.add_parser("grid", help="List bar and beat lines")
    grid.add_argument("state", type=Path)
    grid.add_argument("--start", type=int, default=0, help="First sample")
    grid.add_argument("--end", type=int, required=True, help="Sample after the range")
    grid.add_argument("--bars-only", action="store_true", help="Only list bar lines")

    add_tempo = sub.add_parser("add-tempo", help="Add a tempo change")
    add_tempo.add_argument("state", type=Path)
    add_tempo.add_argument("--bpm", type=float, required=True)
    add_tempo.add_argument("--note-type", type=float, default=4.0)
    add_tempo.add_argument("--ramp", action="store_true", help="Ramp to the next tempo")
    tempo_where = add_tempo.add_mutually_exclusive_group(required=True)
    tempo_where.add_argument("--beat", type=float, help="Music-locked beat position")
    tempo_where.add_argument("--sample", type=int, help="Audio-locked sample position")

    add_meter = sub.add_parser("add-meter", help="Add a meter change")
    add_meter.add_argument("state", type=Path)
    add_meter.add_argument("--meter", type=parse_meter, required=True, help="e.g. 3/4")
    meter_where = add_meter.add_mutually_exclusive_group(required=True)
    meter_where.add_argument("--bar", type=int, help="Music-locked bar number")
    meter_where.add_argument("--sample", type=int, help="Audio-locked sample position")

    return p


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI."""
    p = build_arg_parser()
    args = p.parse_args(argv)

    try:
        config = load_app_config(Path(args.app_config))
    except (ValueError, ValidationError) as e:
        console.print(f"[red]ERROR: Could not load config: {e}[/red]")
        return 1

    configure_logging(
        level=args.log_level or config.logging.level,
        format_string=config.logging.format,
        filename=config.logging.filename,
        structured=config.logging.structured,
    )

    try:
        return COMMANDS[args.cmd](args, config)
    except TempoMapError as e:
        console.print(f"[red]ERROR: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
