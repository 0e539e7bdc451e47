#!/usr/bin/env python3
"""
cli.py

Command-line interface for viewing folded stacks and live py-spy samples as
flame graphs in the terminal.
"""
import dataclasses
import logging
import time

import click
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler

from flamewatch.app import App
from flamewatch.config import load_settings
from flamewatch.errors import SamplerError
from flamewatch.logbuffer import LogChannel
from flamewatch.render import render_app

logger = logging.getLogger("flamewatch")

_settings = load_settings()


def _apply_search(app: App, search, regex):
    if search and not app.set_manual_search_pattern(search, regex):
        click.echo(app.transient_message, err=True)
        raise SystemExit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug messages")
@click.pass_context
def main(ctx, verbose):
    """
    Interactive flame graphs for folded stacks and running Python processes.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command()
@click.argument("folded", type=click.File("r"))
@click.option("--search", "-s", default=None, help="Highlight frames containing this text")
@click.option("--regex", is_flag=True, help="Treat --search as a regular expression")
@click.option(
    "--ignore-case", is_flag=True, envvar="FLAMEWATCH_IGNORE_CASE",
    default=_settings.ignore_case, help="Case-insensitive search"
)
@click.option("--zoom", "-z", default=None, help="Zoom into this call path, e.g. 'main;run'")
@click.option("--table", is_flag=True, help="Show the aggregated table instead of the tree")
@click.option(
    "--sort", type=click.Choice(["total", "own"]), default="total",
    help="Table sort column"
)
@click.option("--min-percent", default=0.1, type=float, help="Hide frames below this share of samples")
@click.option("--max-depth", default=None, type=int, help="Limit the rendered tree depth")
@click.pass_context
def view(ctx, folded, search, regex, ignore_case, zoom, table, sort, min_percent, max_depth):
    """Render a folded-stack file ('-' for stdin) once and exit."""
    logging.basicConfig(
        level=logging.DEBUG if ctx.obj["verbose"] else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    settings = load_settings()
    settings = dataclasses.replace(settings, ignore_case=ignore_case)
    app = App.from_text(folded.name, folded.read(), settings=settings)

    if zoom:
        flame_view = app.view
        path = tuple(name for name in zoom.split(";") if name)
        flame_view.state.selection = app.flamegraph.resolve_prefix(path)
        flame_view.zoom_in()
    if table:
        app.view.toggle_view_kind()
    if sort == "own":
        app.view.toggle_table_sort()
    _apply_search(app, search, regex)

    Console().print(render_app(app, min_ratio=min_percent / 100, max_depth=max_depth))


@main.command()
@click.option("--pid", "-p", required=True, type=int, help="Process ID to sample")
@click.option("--py-spy-args", default=None, help="Extra arguments passed to 'py-spy dump'")
@click.option("--idle", is_flag=True, help="Include idle threads")
@click.option("--search", "-s", default=None, help="Highlight frames containing this text")
@click.option("--regex", is_flag=True, help="Treat --search as a regular expression")
@click.option(
    "--ignore-case", is_flag=True, envvar="FLAMEWATCH_IGNORE_CASE",
    default=_settings.ignore_case, help="Case-insensitive search"
)
@click.option("--fps", default=4, type=click.IntRange(1, 60), help="Screen refreshes per second")
@click.option("--duration", default=0, type=float, help="Stop after this many seconds (0 = until Ctrl-C)")
@click.option(
    "--interval", default=_settings.sample_interval, type=float,
    envvar="FLAMEWATCH_SAMPLE_INTERVAL", help="Seconds between py-spy dumps"
)
@click.option("--logs", "show_logs", is_flag=True, help="Show the log panel")
@click.option("--debug", is_flag=True, help="Show timing information")
@click.pass_context
def record(ctx, pid, py_spy_args, idle, search, regex, ignore_case, fps, duration, interval, show_logs, debug):
    """Sample a running Python process with py-spy and show a live flame graph."""
    channel = LogChannel()
    channel.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%H:%M:%S"))
    logger.addHandler(channel)
    logger.setLevel(logging.DEBUG if ctx.obj["verbose"] else logging.INFO)
    logger.propagate = False

    settings = load_settings()
    settings = dataclasses.replace(settings, ignore_case=ignore_case, sample_interval=interval)
    app = App.with_pid(pid, py_spy_args, settings=settings, include_idle=idle, log_channel=channel)
    _apply_search(app, search, regex)
    app.show_log_panel = show_logs
    if debug:
        app.toggle_debug()

    deadline = time.monotonic() + duration if duration else None
    try:
        with Live(render_app(app), refresh_per_second=fps, auto_refresh=False) as live:
            while app.running:
                app.tick()
                live.update(render_app(app), refresh=True)
                if deadline is not None and time.monotonic() >= deadline:
                    app.quit()
                    break
                time.sleep(1 / fps)
    except SamplerError as e:
        click.echo(str(e), err=True)
        raise SystemExit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
