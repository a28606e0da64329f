"""Command-line interface for gridcalc."""

from __future__ import annotations

from pathlib import Path

import click
import polars as pl

from gridcalc import __version__


@click.group()
@click.version_option(version=__version__, prog_name="gridcalc")
def main() -> None:
    """gridcalc -- reactive in-memory spreadsheet engine."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _parse_assignments(assignments: tuple[str, ...]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for item in assignments:
        if "=" not in item:
            raise click.ClickException(f"Invalid --set format: {item!r}. Use REF=VALUE.")
        ref, value = item.split("=", 1)
        pairs.append((ref.strip(), value))
    return pairs


def _build_engine(config_path: str | None, assignments: tuple[str, ...]):
    from gridcalc.config import load_config
    from gridcalc.engine import SpreadsheetEngine

    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.ClickException(str(e))
    engine = SpreadsheetEngine(config)
    for ref, value in _parse_assignments(assignments):
        try:
            engine.set_ref(ref, value)
        except ValueError as e:
            raise click.ClickException(str(e))
    return engine


def _echo_frame(frame: pl.DataFrame) -> None:
    with pl.Config(
        tbl_rows=-1,
        tbl_cols=-1,
        tbl_hide_dataframe_shape=True,
        tbl_hide_column_data_types=True,
    ):
        click.echo(str(frame))


# ---------------------------------------------------------------------------
# Formulas
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("formula")
@click.option("--set", "assignments", multiple=True, help="Write a cell first, as REF=VALUE.")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True), help="gridcalc.yaml or its directory.")
def eval_cmd(formula: str, assignments: tuple[str, ...], config_path: str | None) -> None:
    """Evaluate FORMULA and print its display value."""
    from gridcalc.cells import detect_data_type
    from gridcalc.formatting import render
    from gridcalc.formulas import ENGINE_ERRORS, evaluate

    engine = _build_engine(config_path, assignments)
    try:
        value = evaluate(formula, engine.store.resolve_ref)
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(render(value, detect_data_type(value)))


@main.command("refs")
@click.argument("formula")
@click.option("--deps", is_flag=True, help="Print the dependency keys that drive recalculation instead.")
def refs_cmd(formula: str, deps: bool) -> None:
    """List the references FORMULA mentions."""
    from gridcalc.addressing import range_label
    from gridcalc.cell_graph import key_label
    from gridcalc.formulas import extract_dependency_keys, extract_references

    if deps:
        for key in extract_dependency_keys(formula):
            click.echo(f"{key}\t{key_label(key)}")
        return
    for rng in extract_references(formula):
        click.echo(range_label(rng))


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------


@main.command("calc")
@click.option("--set", "assignments", multiple=True, help="Write a cell, as REF=VALUE (applied in order).")
@click.option("--show", "show", default="A1:E10", help="Range to print.")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True), help="gridcalc.yaml or its directory.")
def calc_cmd(assignments: tuple[str, ...], show: str, config_path: str | None) -> None:
    """Apply writes to a fresh grid and print a range."""
    engine = _build_engine(config_path, assignments)
    try:
        frame = engine.range_frame(show)
    except ValueError as e:
        raise click.ClickException(str(e))
    _echo_frame(frame)

    errors = [(pos, cell) for pos, cell in engine.store.cells() if cell.error is not None]
    if errors:
        from gridcalc.addressing import position_to_ref

        click.echo("Errors:")
        for pos, cell in errors:
            assert cell.error is not None
            click.echo(f"  {position_to_ref(pos.row, pos.col)} [{cell.error.kind.value}] {cell.error.message}")


@main.command("window")
@click.option("--scroll-top", default=0.0, type=float, help="Vertical scroll offset in pixels.")
@click.option("--scroll-left", default=0.0, type=float, help="Horizontal scroll offset in pixels.")
@click.option("--height", default=600.0, type=float, help="Viewport height in pixels.")
@click.option("--width", default=1200.0, type=float, help="Viewport width in pixels.")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True), help="gridcalc.yaml or its directory.")
def window_cmd(scroll_top: float, scroll_left: float, height: float, width: float, config_path: str | None) -> None:
    """Print the rows and columns materialized for a scroll position."""
    from gridcalc.addressing import index_to_col_letter

    engine = _build_engine(config_path, ())
    win = engine.window(scroll_top, scroll_left, height, width)
    click.echo(f"Rows: [{win.row_start}, {win.row_end})")
    click.echo(f"Cols: [{win.col_start}, {win.col_end})")
    if win.row_end > win.row_start and win.col_end > win.col_start:
        first = f"{index_to_col_letter(win.col_start)}{win.row_start + 1}"
        last = f"{index_to_col_letter(win.col_end - 1)}{win.row_end}"
        click.echo(f"Range: {first}:{last}")


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default="127.0.0.1", help="Host to bind.")
@click.option("--port", default=8000, type=int, help="Port to bind.")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True), help="gridcalc.yaml or its directory.")
def serve(host: str, port: int, config_path: str | None) -> None:
    """Run the HTTP service."""
    import uvicorn

    from gridcalc.config import load_config
    from gridcalc.server import create_app

    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.ClickException(str(e))
    app = create_app(config)

    click.echo(f"Serving at http://{host}:{port}")
    click.echo("Press Ctrl+C to stop")
    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    except KeyboardInterrupt:
        click.echo("\nStopped.")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--ref", default=None, help="Filter by cell reference.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    ref: str | None,
    limit: int,
) -> None:
    """Show structured event log for DIRECTORY."""
    from gridcalc.logging.sink import EventSink

    sink = EventSink(Path(directory))
    events = sink.read_global(level=level, event_type=event_type, ref=ref, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)
