#!/usr/bin/env python3
"""
cli.py

Command-line interface for turning a fetched profiling dataset (JSON) into a
flame graph: render it in the terminal, export the payload, or dump folded
stacks. Stage spans can be recorded to SQLite and listed afterwards.
"""
import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import click
from rich import print
from rich.logging import RichHandler

from stackflame import telemetry
from stackflame.config import Settings
from stackflame.directory import load_fetch_result
from stackflame.errors import StackFlameError
from stackflame.exporters import folded, view_flame
from stackflame.pipeline import create_flame_graph_payload
from stackflame.sampling import select_events_index


@telemetry.profile
def _load(path):
    return load_fetch_result(path)


def _build(path, time_from, time_to, partitions=1):
    if time_to < time_from:
        raise click.BadParameter("--time-to must not be before --time-from")
    try:
        fetch_result = _load(path)
        if partitions == 1:
            return create_flame_graph_payload(fetch_result, time_from, time_to)
        with ThreadPoolExecutor(max_workers=partitions) as pool:
            return create_flame_graph_payload(
                fetch_result, time_from, time_to, partitions=partitions, executor=pool
            )
    except StackFlameError as exc:
        raise click.ClickException(str(exc)) from exc


def window_options(f):
    f = click.option("--partitions", type=click.IntRange(1), default=1,
                     help="Aggregate events in this many partitions on worker threads")(f)
    f = click.option("--time-to", type=float, default=0.0, help="End of the query window (epoch seconds)")(f)
    f = click.option("--time-from", type=float, default=0.0, help="Start of the query window (epoch seconds)")(f)
    return f


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log stage timings")
@click.option("--telemetry/--no-telemetry", "use_telemetry", default=None,
              help="Record stage spans to the telemetry database")
@click.pass_context
def main(ctx, verbose, use_telemetry):
    """
    Build flame graphs from sampled stack traces.
    """
    try:
        settings = Settings.from_env()
    except StackFlameError as exc:
        raise click.ClickException(str(exc)) from exc
    ctx.obj = settings
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(show_path=False)],
        )
    if use_telemetry is None:
        use_telemetry = settings.telemetry_enabled
    if use_telemetry:
        telemetry.start_session(ctx.invoked_subcommand or "", db_path=settings.telemetry_db)
        ctx.call_on_close(telemetry.end_session)


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@window_options
@click.option("--min-width", type=float, default=0.0, help="Hide frames narrower than this fraction")
def render(path, time_from, time_to, min_width, partitions):
    """Render a flame graph as a tree in the terminal."""
    fg = _build(path, time_from, time_to, partitions)
    if fg.size == 0:
        click.echo("No samples matched.")
        return
    print(view_flame.build_tree(fg, min_width=min_width))


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@window_options
@click.option("--output", "-o", type=click.File("w"), default="-", help="Write the payload here")
@click.option("--indent", type=int, default=None)
def export(path, time_from, time_to, partitions, output, indent):
    """Export the flame graph payload as JSON."""
    fg = _build(path, time_from, time_to, partitions)
    json.dump(fg.to_dict(), output, indent=indent)
    output.write("\n")


@main.command(name="folded")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--min-count", type=click.IntRange(1), default=1, help="Omit stacks with fewer self samples")
def folded_cmd(path, min_count):
    """Print folded stacks (frame;frame;frame count)."""
    fg = _build(path, 0.0, 0.0)
    for line in folded.folded_lines(fg, min_count=min_count):
        click.echo(line)


@main.command(name="select-index")
@click.argument("full_count", type=click.IntRange(0))
@click.option("--target-sample-size", type=click.IntRange(1), default=None,
              help="Defaults to STACKFLAME_TARGET_SAMPLE_SIZE")
@click.pass_context
def select_index(ctx, full_count, target_sample_size):
    """Show which events index to read for FULL_COUNT raw samples."""
    settings = ctx.obj
    index = select_events_index(
        full_count,
        target_sample_size or settings.target_sample_size,
        settings.max_downsample_level,
    )
    click.echo(f"{index.name}\tsampleRate={index.sample_rate:g}")


@main.command()
@click.option("--db", "db_path", type=click.Path(dir_okay=False), default=None,
              help="Telemetry database (defaults to STACKFLAME_TELEMETRY_DB)")
@click.option("--limit", type=click.IntRange(1), default=20)
@click.pass_context
def spans(ctx, db_path, limit):
    """List recently recorded stage spans."""
    db_path = db_path or ctx.obj.telemetry_db
    if not os.path.isfile(db_path):
        raise click.ClickException(f"No telemetry database at {db_path}")
    rows = telemetry.read_spans(db_path, limit=limit)
    if not rows:
        click.echo("No spans recorded.")
        return
    for span in rows:
        started = datetime.fromtimestamp(span["start_time"] / 1_000_000).isoformat()
        ms = span["duration_us"] / 1_000
        status = "error" if span["status_code"] else "ok"
        click.echo(f"{started}  {span['name']:<32} {ms:9.2f}ms  {status}")


if __name__ == "__main__":
    main()
