"""
flame.py

Aggregated call tree built from FlameGraph-style folded stacks:

    root;child;subchild <count>

Every line adds <count> samples to the self count of its last frame. Totals
are computed once, bottom-up, after all lines are read. A tree is never
patched after it is built: live sampling produces a new tree and the view
swaps it in wholesale.
"""

import logging
import re
from enum import Enum
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

# Path of frame names from the synthetic root; () is the root itself.
StackPath = Tuple[str, ...]

ROOT_NAME = "all"

# py-spy style location decoration: "handle (server/app.py:42)"
_LOCATION_SUFFIX = re.compile(r"\s+\([^()]*\)$")


def short_name_of(name: str) -> str:
    """Strip a trailing ``(file:line)`` decoration from a frame label."""
    stripped = _LOCATION_SUFFIX.sub("", name)
    return stripped or name


class SortColumn(Enum):
    TOTAL = "total"
    OWN = "own"


class TableRow(NamedTuple):
    name: str
    own: int
    total: int

    @property
    def short_name(self) -> str:
        return short_name_of(self.name)


class Frame:
    __slots__ = ("name", "full_name", "self_count", "total", "children")

    def __init__(self, name: str, full_name: str):
        self.name = name
        self.full_name = full_name
        self.self_count = 0
        self.total = 0
        self.children: Dict[str, "Frame"] = {}

    @property
    def short_name(self) -> str:
        return short_name_of(self.name)

    def child_list(self) -> List["Frame"]:
        return list(self.children.values())

    def __repr__(self):
        return f"Frame({self.full_name or self.name!r}, self={self.self_count}, total={self.total})"


class FrameTree:
    """A synthetic root frame and the aggregated tree beneath it."""

    def __init__(self, root: Frame, skipped_lines: int = 0, num_frames: int = 0, max_depth: int = 0):
        self.root = root
        self.skipped_lines = skipped_lines
        self.num_frames = num_frames
        self.max_depth = max_depth

    @classmethod
    def empty(cls) -> "FrameTree":
        return cls(Frame(ROOT_NAME, ""))

    @classmethod
    def parse(cls, raw_text: str, sort: bool = True) -> "FrameTree":
        return parse(raw_text, sort=sort)

    @property
    def total_samples(self) -> int:
        return self.root.total

    def resolve(self, path: StackPath) -> Optional[Frame]:
        node = self.root
        for name in path:
            node = node.children.get(name)
            if node is None:
                return None
        return node

    def resolve_prefix(self, path: StackPath) -> StackPath:
        """Return the deepest ancestor of ``path`` (possibly itself) present in this tree."""
        node = self.root
        depth = 0
        for name in path:
            node = node.children.get(name)
            if node is None:
                break
            depth += 1
        return tuple(path[:depth])

    def walk(self, start: StackPath = ()) -> Iterator[Tuple[StackPath, Frame]]:
        """Yield ``(path, frame)`` pairs in pre-order, starting at ``start``."""
        first = self.resolve(start)
        if first is None:
            return
        pending = [(tuple(start), first)]
        while pending:
            path, node = pending.pop()
            yield path, node
            for child in reversed(node.child_list()):
                pending.append((path + (child.name,), child))

    def short_name(self, path: StackPath) -> str:
        if not path:
            return ROOT_NAME
        return short_name_of(path[-1])

    def full_name(self, path: StackPath) -> str:
        return ";".join(path)

    def rows(self, sort_by: SortColumn = SortColumn.TOTAL) -> List[TableRow]:
        """
        Aggregate frames by name. A frame's total only counts when no ancestor
        carries the same name, so recursive calls are not counted twice.
        """
        own: Dict[str, int] = {}
        total: Dict[str, int] = {}
        active: Dict[str, int] = {}
        pending = [(child, False) for child in reversed(self.root.child_list())]
        while pending:
            node, leaving = pending.pop()
            if leaving:
                active[node.name] -= 1
                continue
            own[node.name] = own.get(node.name, 0) + node.self_count
            if not active.get(node.name):
                total[node.name] = total.get(node.name, 0) + node.total
            else:
                total.setdefault(node.name, 0)
            active[node.name] = active.get(node.name, 0) + 1
            pending.append((node, True))
            pending.extend((child, False) for child in reversed(node.child_list()))

        rows = [TableRow(name, own[name], total[name]) for name in own]
        rows.sort(key=lambda row: (-getattr(row, sort_by.value), row.name))
        return rows

    def to_folded(self) -> str:
        """Canonical folded-stack text; parsing it back yields the same counts."""
        lines = []
        for path, node in self.walk():
            if not path:
                continue
            if node.self_count or not node.children:
                lines.append(f"{';'.join(path)} {node.self_count}")
        return "\n".join(lines)


def parse(raw_text: str, sort: bool = True) -> FrameTree:
    """
    Build a FrameTree from folded-stack text.

    Lines without a trailing integer count, with a negative count, or with
    an empty frame path are skipped; the rest of the input is still used.
    """
    root = Frame(ROOT_NAME, "")
    skipped = 0
    for line in raw_text.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.rsplit(None, 1)
        if len(parts) != 2:
            skipped += 1
            logger.debug("Skipping line without a sample count: %r", line)
            continue
        stack_part, count_part = parts
        try:
            count = int(count_part)
        except ValueError:
            skipped += 1
            logger.debug("Skipping line with invalid sample count: %r", line)
            continue
        frames = [name for name in stack_part.split(";") if name]
        if count < 0 or not frames:
            skipped += 1
            logger.debug("Skipping malformed line: %r", line)
            continue

        node = root
        for name in frames:
            child = node.children.get(name)
            if child is None:
                full_name = f"{node.full_name};{name}" if node.full_name else name
                child = Frame(name, full_name)
                node.children[name] = child
            node = child
        node.self_count += count

    num_frames, max_depth = _aggregate(root, sort)
    if skipped:
        logger.debug("Skipped %d malformed folded-stack lines", skipped)
    return FrameTree(root, skipped_lines=skipped, num_frames=num_frames, max_depth=max_depth)


def _aggregate(root: Frame, sort: bool) -> Tuple[int, int]:
    # Reversed pre-order visits every child before its parent.
    order = []
    max_depth = 0
    pending = [(root, 0)]
    while pending:
        node, depth = pending.pop()
        order.append(node)
        max_depth = max(max_depth, depth)
        pending.extend((child, depth + 1) for child in node.children.values())

    for node in reversed(order):
        node.total = node.self_count + sum(child.total for child in node.children.values())
        if sort and len(node.children) > 1:
            node.children = dict(
                sorted(node.children.items(), key=lambda kv: (-kv[1].total, kv[0]))
            )
    return len(order) - 1, max_depth
