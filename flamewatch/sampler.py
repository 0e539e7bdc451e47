"""
sampler.py

Live sampling of a running Python process with py-spy.

The sampler repeatedly runs ``py-spy dump --pid PID`` on its own thread,
folds every dump into stacks (outermost frame first), accumulates the counts
and publishes the cumulative folded text. Any failed dump ends sampling with
an error status; the foreground treats that as fatal.
"""

import dataclasses
import logging
import re
import shlex
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import psutil

from flamewatch.ingest import Mailbox

logger = logging.getLogger(__name__)

_THREAD_HEADER = re.compile(r'^Thread (\S+) \(([^)]*)\)(?::\s*"(.*)")?')
_PROCESS_HEADER = re.compile(r"^Process \d+:")


@dataclass(frozen=True)
class SamplerStatus:
    error_message: Optional[str] = None

    @classmethod
    def error(cls, message: str) -> "SamplerStatus":
        return cls(error_message=message)

    @property
    def is_error(self) -> bool:
        return self.error_message is not None

    def __str__(self):
        return "running" if self.error_message is None else f"error: {self.error_message}"


RUNNING = SamplerStatus()


@dataclass
class SamplerState:
    status: SamplerStatus = RUNNING
    samples: int = 0
    started_at: float = field(default_factory=time.time)

    @property
    def elapsed(self) -> float:
        return time.time() - self.started_at


def fold_dump(text: str, include_idle: bool = False) -> List[str]:
    """
    Convert ``py-spy dump`` output into folded stacks, one per thread:

        thread "MainThread";<module> (app.py:25);main (app.py:20)
    """
    stacks = []
    thread_frame = None
    frames: List[str] = []

    def flush():
        if thread_frame is not None and frames:
            stacks.append(";".join([thread_frame] + list(reversed(frames))))

    for line in text.splitlines():
        header = _THREAD_HEADER.match(line)
        if header or _PROCESS_HEADER.match(line):
            flush()
            frames = []
            thread_frame = None
            if header:
                thread_id, activity, name = header.groups()
                if "idle" in activity and not include_idle:
                    continue
                thread_frame = f'thread "{name or thread_id}"'
            continue
        # frames are indented by four spaces; --locals output is nested deeper
        if thread_frame is not None and line.startswith("    ") and not line.startswith("     "):
            frames.append(line.strip().replace(";", ":"))
    flush()
    return stacks


def process_cmdline(pid: int) -> Optional[str]:
    """Best-effort command line of ``pid``; None when it cannot be read."""
    try:
        cmdline = psutil.Process(pid).cmdline()
    except (psutil.Error, OSError) as exc:
        logger.debug("Could not read command line of pid %s: %s", pid, exc)
        return None
    return " ".join(cmdline) or None


class PySpySampler:
    def __init__(
        self,
        pid: int,
        extra_args: Optional[str] = None,
        interval: float = 0.1,
        executable: str = "py-spy",
        include_idle: bool = False,
        timeout: float = 10.0,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.pid = pid
        self.extra_args = extra_args
        self.interval = interval
        self.executable = executable
        self.include_idle = include_idle
        self.timeout = timeout
        self._runner = runner
        self._output: Mailbox[str] = Mailbox()
        self._state = SamplerState()
        self._state_lock = threading.Lock()
        self._stacks: Dict[str, int] = {}
        self._thread: Optional[threading.Thread] = None

    def command(self) -> List[str]:
        cmd = [self.executable, "dump", "--pid", str(self.pid)]
        if self.extra_args:
            cmd.extend(shlex.split(self.extra_args))
        return cmd

    def sample_once(self) -> bool:
        """Take one dump. Returns False once sampling has failed."""
        if self.state().status.is_error:
            return False
        cmd = self.command()
        try:
            result = self._runner(cmd, capture_output=True, text=True, check=True, timeout=self.timeout)
        except FileNotFoundError:
            self._fail(f"{self.executable} not found; install it with 'pip install py-spy'")
            return False
        except OSError as exc:
            self._fail(f"could not run {self.executable}: {exc}")
            return False
        except subprocess.TimeoutExpired:
            self._fail(f"{' '.join(cmd)} did not finish within {self.timeout:g}s")
            return False
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            self._fail(stderr or f"{' '.join(cmd)} exited with status {exc.returncode}")
            return False

        for stack in fold_dump(result.stdout, include_idle=self.include_idle):
            self._stacks[stack] = self._stacks.get(stack, 0) + 1
        self._output.publish(self.folded())
        with self._state_lock:
            self._state.samples += 1
        return True

    def _fail(self, message: str) -> None:
        logger.error("py-spy sampling of pid %s failed: %s", self.pid, message)
        with self._state_lock:
            self._state.status = SamplerStatus.error(message)

    def folded(self) -> str:
        return "\n".join(f"{stack} {count}" for stack, count in self._stacks.items())

    def latest_output(self) -> Optional[str]:
        return self._output.take()

    def state(self) -> SamplerState:
        with self._state_lock:
            return dataclasses.replace(self._state)

    def _run(self) -> None:
        logger.info("Sampling pid %s with %s", self.pid, " ".join(self.command()))
        while True:
            try:
                sampled = self.sample_once()
            except Exception as exc:
                logger.exception("py-spy sampler crashed")
                self._fail(f"sampler crashed: {exc!r}")
                return
            if not sampled:
                return
            time.sleep(self.interval)

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self._run, name="flamewatch-sampler", daemon=True)
        self._thread.start()
        return self._thread
