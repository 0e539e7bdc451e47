"""
ingest.py

Background parsing of sampler output and the single-slot handoff to the
foreground.

    sampler output -> IngestionPipeline thread (parse) -> Mailbox -> App.tick()

The mailbox holds at most one fully built tree. Publishing overwrites any
tree the foreground has not picked up yet, so a slow or frozen consumer only
ever sees the latest sample.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Generic, Optional, Protocol, TypeVar

from flamewatch.flame import FrameTree, parse

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Mailbox(Generic[T]):
    """Overwrite-on-publish single slot guarded by a lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self.dropped = 0

    def publish(self, value: T) -> None:
        with self._lock:
            if self._value is not None:
                self.dropped += 1
            self._value = value

    def take(self) -> Optional[T]:
        with self._lock:
            value, self._value = self._value, None
        return value

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._value is not None


@dataclass
class ParsedTree:
    tree: FrameTree
    elapsed: float


class SampleSource(Protocol):
    def latest_output(self) -> Optional[str]:
        ...


class IngestionPipeline:
    def __init__(
        self,
        source: SampleSource,
        mailbox: Optional[Mailbox] = None,
        interval: float = 0.25,
        sort: bool = True,
    ):
        self.source = source
        self.mailbox: Mailbox[ParsedTree] = mailbox if mailbox is not None else Mailbox()
        self.interval = interval
        self.sort = sort
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> bool:
        """Parse and publish the source's latest output, if any."""
        output = self.source.latest_output()
        if output is None:
            return False
        tic = time.perf_counter()
        tree = parse(output, sort=self.sort)
        elapsed = time.perf_counter() - tic
        self.mailbox.publish(ParsedTree(tree, elapsed))
        logger.debug("Parsed %d frames in %.1fms", tree.num_frames, elapsed * 1000)
        return True

    def _run(self) -> None:
        while True:
            self.run_once()
            time.sleep(self.interval)

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self._run, name="flamewatch-ingest", daemon=True)
        self._thread.start()
        return self._thread
