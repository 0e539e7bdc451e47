"""
app.py

Application session: the flame view, where its samples come from, and the
once-per-frame tick that swaps in freshly parsed trees.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional, Union

from flamewatch.config import Settings
from flamewatch.errors import InvalidPattern, SamplerError
from flamewatch.flame import FrameTree, parse
from flamewatch.ingest import IngestionPipeline, Mailbox, ParsedTree
from flamewatch.logbuffer import LogBuffer, LogChannel
from flamewatch.sampler import PySpySampler, SamplerState, process_cmdline
from flamewatch.search import SearchPattern
from flamewatch.view import FlameView, FlameViewState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaticFile:
    path: str


@dataclass(frozen=True)
class LiveProcess:
    pid: int
    cmdline: Optional[str] = None
    extra_args: Optional[str] = None


FlameInput = Union[StaticFile, LiveProcess]


class App:
    def __init__(
        self,
        tree: FrameTree,
        flame_input: FlameInput,
        settings: Optional[Settings] = None,
        pipeline: Optional[IngestionPipeline] = None,
        sampler=None,
        log_channel: Optional[LogChannel] = None,
    ):
        self.settings = settings or Settings()
        self.running = True
        self.view = FlameView(tree)
        self.flame_input = flame_input
        self.pipeline = pipeline
        self.mailbox: Mailbox[ParsedTree] = pipeline.mailbox if pipeline is not None else Mailbox()
        self.sampler = sampler
        # Timing information for the debug overlay, in seconds
        self.elapsed: Dict[str, float] = {}
        self.transient_message: Optional[str] = None
        self.debug = False
        self.logs = LogBuffer(self.settings.log_capacity, self.settings.log_visible_lines)
        self.log_channel = log_channel
        self.show_log_panel = False

    @classmethod
    def from_text(cls, filename: str, text: str, settings: Optional[Settings] = None, **kwargs) -> "App":
        tic = time.perf_counter()
        tree = parse(text)
        app = cls(tree, StaticFile(filename), settings=settings, **kwargs)
        app.add_elapsed("flamegraph", time.perf_counter() - tic)
        if tree.skipped_lines:
            logger.warning("%s: skipped %d malformed lines", filename, tree.skipped_lines)
        return app

    @classmethod
    def with_pid(
        cls,
        pid: int,
        py_spy_args: Optional[str] = None,
        settings: Optional[Settings] = None,
        sampler=None,
        include_idle: bool = False,
        start: bool = True,
        log_channel: Optional[LogChannel] = None,
    ) -> "App":
        settings = settings or Settings()
        if sampler is None:
            sampler = PySpySampler(
                pid,
                py_spy_args,
                interval=settings.sample_interval,
                executable=settings.py_spy,
                include_idle=include_idle,
                timeout=settings.dump_timeout,
            )
        pipeline = IngestionPipeline(sampler, interval=settings.poll_interval)
        if start:
            sampler.start()
            pipeline.start()
        flame_input = LiveProcess(pid, process_cmdline(pid), py_spy_args)
        return cls(
            FrameTree.empty(),
            flame_input,
            settings=settings,
            pipeline=pipeline,
            sampler=sampler,
            log_channel=log_channel,
        )

    @property
    def flamegraph(self) -> FrameTree:
        return self.view.tree

    @property
    def flamegraph_state(self) -> FlameViewState:
        return self.view.state

    @property
    def has_log_channel(self) -> bool:
        return self.log_channel is not None

    def tick(self) -> None:
        """
        Swap in at most one pending tree, drain log records, and raise
        SamplerError if the sampler has died.
        """
        if not self.view.state.freeze:
            parsed = self.mailbox.take()
            if parsed is not None:
                self.add_elapsed("flamegraph", parsed.elapsed)
                tic = time.perf_counter()
                self.view.replace_tree(parsed.tree)
                self.add_elapsed("replacement", time.perf_counter() - tic)

        if self.log_channel is not None:
            self.log_channel.drain_into(self.logs)

        state = self.sampler_state()
        if state is not None and state.status.is_error:
            raise SamplerError(state.status.error_message)

    def quit(self) -> None:
        self.running = False

    def sampler_state(self) -> Optional[SamplerState]:
        if self.sampler is None:
            return None
        return self.sampler.state()

    def add_elapsed(self, name: str, elapsed: float) -> None:
        self.elapsed[name] = elapsed

    # -- search -------------------------------------------------------------

    def _case_sensitive(self) -> bool:
        return not self.settings.ignore_case

    def search_selected(self) -> None:
        """Search for the short name of the selected frame."""
        if self.view.is_root_selected():
            return
        stack = self.view.get_selected_stack()
        if stack is None:
            return
        short_name = self.flamegraph.short_name(stack)
        self.view.set_search_pattern(
            SearchPattern.compile(short_name, is_manual=False, case_sensitive=self._case_sensitive())
        )

    def search_selected_row(self) -> None:
        """Search for the selected table row and switch back to the graph."""
        name = self.view.get_selected_row_name()
        if name is not None:
            self.view.set_search_pattern(
                SearchPattern.compile(name, is_manual=False, case_sensitive=self._case_sensitive())
            )
        self.view.toggle_view_kind()

    def set_manual_search_pattern(self, pattern: str, is_regex: bool) -> bool:
        try:
            compiled = SearchPattern.compile(
                pattern, is_regex=is_regex, is_manual=True, case_sensitive=self._case_sensitive()
            )
        except InvalidPattern as exc:
            self.set_transient_message(str(exc))
            return False
        self.view.set_search_pattern(compiled)
        return True

    def set_transient_message(self, message: str) -> None:
        self.transient_message = message

    def clear_transient_message(self) -> None:
        self.transient_message = None

    def toggle_debug(self) -> None:
        self.debug = not self.debug

    # -- log panel ----------------------------------------------------------

    def toggle_log_panel(self) -> None:
        if self.has_log_channel:
            self.show_log_panel = not self.show_log_panel

    def set_log_search_pattern(self, pattern: str) -> bool:
        try:
            self.logs.search(pattern)
        except InvalidPattern as exc:
            self.set_transient_message(str(exc))
            return False
        return True
