"""
render.py

Rich renderables for the flame view: an aggregated, collapsible tree of the
display root (or a table of hottest frames), a status line, and the log
panel.
"""

from typing import Optional

from rich.console import Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from flamewatch.app import App, LiveProcess
from flamewatch.flame import Frame, SortColumn, StackPath
from flamewatch.logbuffer import LogBuffer
from flamewatch.view import FlameView, ViewKind

MATCH_STYLE = "black on yellow"
SELECTED_STYLE = "reverse"


def format_count(n: int) -> str:
    """Convert a sample count to a short human-friendly string."""
    if n >= 1_000_000:
        return f"{n / 1_000_000:.2f}M"
    elif n >= 1_000:
        return f"{n / 1_000:.1f}k"
    else:
        return str(n)


def _percent(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


def _frame_label(view: FlameView, path: StackPath, frame: Frame, total: int) -> str:
    name = escape(frame.name)
    if view.is_match(frame):
        name = f"[{MATCH_STYLE}]{name}[/]"
    else:
        name = f"[bold]{name}[/]"
    label = f"{name} • {format_count(frame.total)} ({_percent(frame.total, total):.1f}%)"
    if frame.self_count:
        label += f" [dim]self {format_count(frame.self_count)}[/]"
    if path == view.state.selection:
        label = f"[{SELECTED_STYLE}]▶ {label}[/]"
    return label


def _add_children(view, path, node, tree: Tree, total: int, min_ratio: float, depth_left: Optional[int]):
    if depth_left is not None and depth_left <= 0:
        return
    hidden = 0
    for child in node.child_list():
        if total and child.total / total < min_ratio:
            hidden += child.total
            continue
        child_path = path + (child.name,)
        branch = tree.add(_frame_label(view, child_path, child, total))
        _add_children(
            view,
            child_path,
            child,
            branch,
            total,
            min_ratio,
            None if depth_left is None else depth_left - 1,
        )
    if hidden:
        tree.add(f"[dim]… {format_count(hidden)} samples in smaller frames[/]")


def render_graph(view: FlameView, min_ratio: float = 0.001, max_depth: Optional[int] = None) -> Tree:
    root_path = view.display_root_path()
    root = view.display_root()
    total = root.total
    tree = Tree(_frame_label(view, root_path, root, total), guide_style="dim")
    _add_children(view, root_path, root, tree, total, min_ratio, max_depth)
    return tree


def render_table(view: FlameView, limit: int = 50) -> Table:
    total = view.tree.total_samples
    sort = view.state.table_sort
    table = Table(expand=True, box=None, header_style="bold")
    table.add_column("Total" + (" ▼" if sort is SortColumn.TOTAL else ""), justify="right")
    table.add_column("%", justify="right")
    table.add_column("Own" + (" ▼" if sort is SortColumn.OWN else ""), justify="right")
    table.add_column("%", justify="right")
    table.add_column("Name", ratio=1)
    rows = view.rows()
    first = max(0, min(view.state.table_index - limit // 2, len(rows) - limit))
    for index in range(first, min(len(rows), first + limit)):
        row = rows[index]
        style = None
        if index == view.state.table_index:
            style = SELECTED_STYLE
        elif view.state.search is not None and view.state.search.matches(row.name):
            style = MATCH_STYLE
        table.add_row(
            format_count(row.total),
            f"{_percent(row.total, total):.1f}%",
            format_count(row.own),
            f"{_percent(row.own, total):.1f}%",
            Text(row.name),
            style=style,
        )
    return table


def render_logs(buffer: LogBuffer) -> Panel:
    start, end = buffer.visible_window()
    text = Text()
    for index in range(start, end):
        line = buffer.lines[index]
        if index == buffer.current_match:
            style = "bold " + MATCH_STYLE
        elif buffer.is_match(index):
            style = "yellow"
        else:
            style = ""
        text.append(line + "\n", style=style)
    title = "Logs"
    if buffer.search_text is not None:
        title += f" /{escape(buffer.search_text)}"
    if not buffer.auto_scroll:
        title += f" [dim](+{buffer.scroll_offset} below)[/]"
    return Panel(text, title=title, title_align="left", height=buffer.visible_lines + 2)


def render_status(app: App) -> Text:
    source = app.flame_input
    if isinstance(source, LiveProcess):
        status = f"pid {source.pid}"
        if source.cmdline:
            status += f": {escape(source.cmdline)}"
    else:
        status = escape(source.path)
    status = f"[b]{status}[/] • {format_count(app.flamegraph.total_samples)} samples"

    state = app.sampler_state()
    if state is not None:
        status += f" • {state.samples} dumps over {state.elapsed:.0f}s"
    if app.flamegraph_state.freeze:
        status += " • [bold cyan]FROZEN[/]"

    summary = app.view.search_summary()
    if summary is not None:
        search = app.flamegraph_state.search
        status += (
            f" • [{MATCH_STYLE}]{escape(search.text)}[/] matched "
            f"{format_count(summary.matched_samples)} samples ({summary.ratio * 100:.1f}%)"
        )
    if app.transient_message:
        status += f" • [bold red]{escape(app.transient_message)}[/]"
    if app.debug:
        timings = ", ".join(f"{name} {seconds * 1000:.1f}ms" for name, seconds in sorted(app.elapsed.items()))
        status += f"\n[dim]{timings} • {app.flamegraph.num_frames} frames • {app.mailbox.dropped} dropped[/]"
    return Text.from_markup(status)


def render_app(app: App, min_ratio: float = 0.001, max_depth: Optional[int] = None) -> Group:
    parts = [render_status(app)]
    if app.flamegraph_state.view_kind is ViewKind.TABLE:
        parts.append(render_table(app.view))
    else:
        parts.append(render_graph(app.view, min_ratio=min_ratio, max_depth=max_depth))
    if app.show_log_panel:
        parts.append(render_logs(app.logs))
    return Group(*parts)
