"""
logbuffer.py

Bounded buffer of log lines with a scrollable viewport and regex search.

The scroll offset counts lines hidden below the bottom of the viewport, so 0
means the newest line is visible. While auto-scroll is off, new lines grow
the offset and evictions at the top leave it alone: the lines on screen stay
where they are.
"""

import logging
import re
import threading
from collections import deque
from typing import Deque, List, Optional, Tuple

from flamewatch.errors import InvalidPattern

DEFAULT_CAPACITY = 1000
DEFAULT_VISIBLE_LINES = 8


class LogBuffer:
    def __init__(self, capacity: int = DEFAULT_CAPACITY, visible_lines: int = DEFAULT_VISIBLE_LINES):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        self.visible_lines = visible_lines
        self.lines: Deque[str] = deque()
        self.scroll_offset = 0
        self.auto_scroll = True
        self.search_pattern: Optional[re.Pattern] = None
        self.search_text: Optional[str] = None
        self.current_match: Optional[int] = None

    def __len__(self):
        return len(self.lines)

    def _max_offset(self) -> int:
        return max(0, len(self.lines) - self.visible_lines)

    def push(self, line: str) -> None:
        self.lines.append(line)
        if not self.auto_scroll:
            self.scroll_offset += 1
        self._evict()

    def _evict(self) -> None:
        while len(self.lines) > self.capacity:
            self.lines.popleft()
            if self.current_match is not None:
                self.current_match = self.current_match - 1 if self.current_match > 0 else None
        self.scroll_offset = min(self.scroll_offset, self._max_offset())

    def set_capacity(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        self._evict()

    def set_visible_lines(self, visible_lines: int) -> None:
        self.visible_lines = max(0, visible_lines)
        self.scroll_offset = min(self.scroll_offset, self._max_offset())

    def visible_window(self) -> Tuple[int, int]:
        """``(start, end)`` indices of the lines inside the viewport."""
        end = max(0, len(self.lines) - self.scroll_offset)
        start = max(0, end - self.visible_lines)
        return start, end

    def visible(self) -> List[str]:
        start, end = self.visible_window()
        return [self.lines[i] for i in range(start, end)]

    # -- scrolling ----------------------------------------------------------

    def scroll_up(self, lines: int = 1) -> None:
        self.scroll_offset = min(self.scroll_offset + lines, self._max_offset())
        self.auto_scroll = False

    def scroll_down(self, lines: int = 1) -> None:
        self.scroll_offset = max(0, self.scroll_offset - lines)
        if self.scroll_offset == 0:
            self.auto_scroll = True

    def scroll_to_bottom(self) -> None:
        self.scroll_offset = 0
        self.auto_scroll = True

    def center_on(self, line: int) -> None:
        """Bring ``line`` into view, centering it unless it is already visible."""
        start, end = self.visible_window()
        if start <= line < end:
            return
        total = len(self.lines)
        half = self.visible_lines // 2
        self.scroll_offset = min(max(0, total - (line + half + 1)), self._max_offset())
        self.auto_scroll = self.scroll_offset == 0

    # -- search -------------------------------------------------------------

    def search(self, pattern: str) -> Optional[int]:
        """
        Compile ``pattern`` and jump to the newest matching line.

        Raises InvalidPattern without touching the current search.
        """
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise InvalidPattern(pattern, str(exc)) from exc
        self.search_pattern = regex
        self.search_text = pattern
        self.current_match = None
        for i in range(len(self.lines) - 1, -1, -1):
            if regex.search(self.lines[i]):
                self.current_match = i
                self.center_on(i)
                break
        return self.current_match

    def clear_search(self) -> None:
        self.search_pattern = None
        self.search_text = None
        self.current_match = None

    def is_match(self, index: int) -> bool:
        return self.search_pattern is not None and self.search_pattern.search(self.lines[index]) is not None

    def next_match(self) -> Optional[int]:
        if self.search_pattern is None:
            return None
        start = 0 if self.current_match is None else self.current_match + 1
        for i in range(start, len(self.lines)):
            if self.is_match(i):
                return self._jump_to(i)
        return self.current_match

    def prev_match(self) -> Optional[int]:
        if self.search_pattern is None:
            return None
        start = len(self.lines) if self.current_match is None else self.current_match
        for i in range(start - 1, -1, -1):
            if self.is_match(i):
                return self._jump_to(i)
        return self.current_match

    def _jump_to(self, index: int) -> int:
        self.current_match = index
        self.center_on(index)
        return index


class LogChannel(logging.Handler):
    """
    Collects formatted log records from any thread; the foreground drains
    them into a LogBuffer once per tick.
    """

    def __init__(self, level=logging.NOTSET):
        super().__init__(level)
        self._pending: Deque[str] = deque()
        self._pending_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._pending_lock:
            self._pending.extend(message.splitlines() or [""])

    def drain_into(self, buffer: LogBuffer) -> int:
        with self._pending_lock:
            pending, self._pending = self._pending, deque()
        for line in pending:
            buffer.push(line)
        return len(pending)
