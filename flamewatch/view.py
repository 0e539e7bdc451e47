"""
view.py

Navigation, zoom and search state over the live FrameTree.

Selection and zoom are stored as StackPaths (frame names from the root), not
as Frame objects, so they survive a wholesale tree replacement: after a swap
each path is walked again by name and cut back to the deepest ancestor that
still exists.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from flamewatch.flame import Frame, FrameTree, SortColumn, StackPath, TableRow
from flamewatch.search import SearchPattern, SearchSummary, search_summary

logger = logging.getLogger(__name__)


class ViewKind(Enum):
    GRAPH = "graph"
    TABLE = "table"


class Direction(Enum):
    PARENT = "parent"
    CHILD = "child"
    PREV = "prev"
    NEXT = "next"


@dataclass
class FlameViewState:
    selection: StackPath = ()
    zoom: Optional[StackPath] = None
    view_kind: ViewKind = ViewKind.GRAPH
    freeze: bool = False
    search: Optional[SearchPattern] = None
    table_sort: SortColumn = SortColumn.TOTAL
    table_index: int = 0
    table_row: Optional[str] = None

    def toggle_view_kind(self) -> None:
        self.view_kind = ViewKind.TABLE if self.view_kind is ViewKind.GRAPH else ViewKind.GRAPH

    def toggle_freeze(self) -> None:
        self.freeze = not self.freeze


class FlameView:
    def __init__(self, tree: FrameTree, state: Optional[FlameViewState] = None):
        self.tree = tree
        self.state = state if state is not None else FlameViewState()
        self._rows: Optional[List[TableRow]] = None
        self._reconcile()

    # -- tree replacement ---------------------------------------------------

    def replace_tree(self, tree: FrameTree) -> bool:
        """Install ``tree`` unless frozen. Returns whether the tree was swapped."""
        if self.state.freeze:
            return False
        self.tree = tree
        self._rows = None
        self._reconcile()
        return True

    def _reconcile(self) -> None:
        state = self.state
        if state.zoom is not None:
            zoom = self.tree.resolve_prefix(state.zoom)
            if zoom != state.zoom:
                logger.debug("Zoom %r truncated to %r", state.zoom, zoom)
            state.zoom = zoom or None

        selection = self.tree.resolve_prefix(state.selection)
        root = self.display_root_path()
        if selection[: len(root)] != root:
            selection = root
        state.selection = selection
        self._reconcile_table()

    def _reconcile_table(self) -> None:
        state = self.state
        rows = self.rows()
        if not rows:
            state.table_index = 0
            state.table_row = None
            return
        names = [row.name for row in rows]
        if state.table_row in names:
            state.table_index = names.index(state.table_row)
        else:
            state.table_index = max(0, min(state.table_index, len(rows) - 1))
        state.table_row = rows[state.table_index].name

    # -- queries ------------------------------------------------------------

    def rows(self) -> List[TableRow]:
        if self._rows is None:
            self._rows = self.tree.rows(self.state.table_sort)
        return self._rows

    def display_root_path(self) -> StackPath:
        return self.state.zoom or ()

    def display_root(self) -> Frame:
        return self.tree.resolve(self.display_root_path()) or self.tree.root

    def is_root_selected(self) -> bool:
        return self.state.selection == self.display_root_path()

    def get_selected_stack(self) -> Optional[StackPath]:
        if self.tree.resolve(self.state.selection) is None:
            return None
        return self.state.selection

    def get_selected_frame(self) -> Optional[Frame]:
        return self.tree.resolve(self.state.selection)

    def get_selected_row_name(self) -> Optional[str]:
        rows = self.rows()
        if not rows:
            return None
        return rows[self.state.table_index].name

    def is_match(self, frame: Frame) -> bool:
        search = self.state.search
        if search is None or frame is self.tree.root:
            return False
        return search.matches(frame.name)

    def search_summary(self) -> Optional[SearchSummary]:
        if self.state.search is None:
            return None
        return search_summary(self.tree, self.state.search, self.display_root_path())

    # -- navigation ---------------------------------------------------------

    def select(self, direction: Direction) -> None:
        if self.state.view_kind is ViewKind.TABLE:
            self._select_row(direction)
            return

        selection = self.state.selection
        root = self.display_root_path()
        if direction is Direction.PARENT:
            if len(selection) > len(root):
                selection = selection[:-1]
        elif direction is Direction.CHILD:
            node = self.tree.resolve(selection)
            if node is not None and node.children:
                selection = selection + (next(iter(node.children)),)
        else:
            if len(selection) <= len(root):
                return
            parent = self.tree.resolve(selection[:-1])
            if parent is None or selection[-1] not in parent.children:
                return
            names = list(parent.children)
            index = names.index(selection[-1])
            step = -1 if direction is Direction.PREV else 1
            index = max(0, min(index + step, len(names) - 1))
            selection = selection[:-1] + (names[index],)
        self.state.selection = selection

    def _select_row(self, direction: Direction) -> None:
        rows = self.rows()
        if not rows:
            return
        index = self.state.table_index
        if direction is Direction.PREV:
            index -= 1
        elif direction is Direction.NEXT:
            index += 1
        elif direction is Direction.PARENT:
            index = 0
        else:
            index = len(rows) - 1
        self.state.table_index = max(0, min(index, len(rows) - 1))
        self.state.table_row = rows[self.state.table_index].name

    def select_next_match(self) -> bool:
        """Select the next matching frame after the selection in pre-order. No wrap-around."""
        search = self.state.search
        if search is None:
            return False
        passed = False
        for path, frame in self.tree.walk(self.display_root_path()):
            if passed and path and search.matches(frame.name):
                self.state.selection = path
                return True
            if path == self.state.selection:
                passed = True
        return False

    def select_prev_match(self) -> bool:
        search = self.state.search
        if search is None:
            return False
        candidate = None
        for path, frame in self.tree.walk(self.display_root_path()):
            if path == self.state.selection:
                break
            if path and search.matches(frame.name):
                candidate = path
        if candidate is None:
            return False
        self.state.selection = candidate
        return True

    # -- zoom ---------------------------------------------------------------

    def zoom_in(self) -> None:
        self.state.zoom = self.state.selection or None

    def zoom_out(self) -> None:
        zoom = self.state.zoom
        if zoom is None:
            return
        self.state.zoom = zoom[:-1] or None

    def reset_zoom(self) -> None:
        self.state.zoom = None

    # -- toggles and search -------------------------------------------------

    def toggle_view_kind(self) -> None:
        self.state.toggle_view_kind()

    def toggle_freeze(self) -> None:
        self.state.toggle_freeze()

    def toggle_table_sort(self) -> None:
        state = self.state
        state.table_sort = SortColumn.OWN if state.table_sort is SortColumn.TOTAL else SortColumn.TOTAL
        self._rows = None
        self._reconcile_table()

    def set_search_pattern(self, pattern: SearchPattern) -> None:
        self.state.search = pattern

    def clear_search(self) -> None:
        self.state.search = None
