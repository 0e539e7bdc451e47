import os
import subprocess

import psutil

from flamewatch.flame import parse
from flamewatch.sampler import RUNNING, PySpySampler, SamplerStatus, fold_dump, process_cmdline

DUMP = """\
Process 4242: python server.py --port 8000
Python v3.11.4 (/usr/bin/python3.11)

Thread 4242 (active+gil): "MainThread"
    compute (server.py:10)
    handle (server.py:20)
    <module> (server.py:30)
Thread 4250 (idle): "worker-1"
    wait (threading.py:320)
    run (threading.py:900)
Thread 0x7F00 (active)
    poll (selectors.py:415)
"""

LOCALS_DUMP = """\
Thread 1 (active): "MainThread"
    compute (app.py:10)
        Arguments:
            n: 3
    <module> (app.py:30)
"""


def test_fold_dump_outermost_first_and_skips_idle():
    stacks = fold_dump(DUMP)

    assert stacks == [
        'thread "MainThread";<module> (server.py:30);handle (server.py:20);compute (server.py:10)',
        'thread "0x7F00";poll (selectors.py:415)',
    ]


def test_fold_dump_with_idle_threads():
    stacks = fold_dump(DUMP, include_idle=True)

    assert 'thread "worker-1";run (threading.py:900);wait (threading.py:320)' in stacks
    assert len(stacks) == 3


def test_fold_dump_ignores_locals():
    assert fold_dump(LOCALS_DUMP) == ['thread "MainThread";<module> (app.py:30);compute (app.py:10)']


def test_fold_dump_of_empty_output():
    assert fold_dump("") == []


class Runner:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return subprocess.CompletedProcess(cmd, 0, stdout=result, stderr="")


def test_command_includes_extra_args():
    sampler = PySpySampler(42, extra_args="--native --nonblocking", executable="/opt/py-spy")

    assert sampler.command() == ["/opt/py-spy", "dump", "--pid", "42", "--native", "--nonblocking"]


def test_samples_accumulate_into_folded_output():
    runner = Runner(DUMP, DUMP)
    sampler = PySpySampler(4242, runner=runner)

    assert sampler.sample_once()
    first = sampler.latest_output()
    assert parse(first).total_samples == 2
    assert sampler.latest_output() is None

    assert sampler.sample_once()
    tree = parse(sampler.latest_output())
    assert tree.total_samples == 4
    assert tree.resolve(('thread "MainThread"',)).total == 2
    assert sampler.state().samples == 2
    assert runner.calls[0][1]["check"] is True


def test_failed_dump_sets_error_status():
    error = subprocess.CalledProcessError(1, ["py-spy"], stderr="Permission Denied\n")
    sampler = PySpySampler(1, runner=Runner(error))

    assert not sampler.sample_once()
    assert sampler.state().status == SamplerStatus.error("Permission Denied")
    assert not sampler.sample_once()


def test_missing_executable_sets_error_status():
    sampler = PySpySampler(1, executable="no-such-py-spy", runner=Runner(FileNotFoundError()))

    sampler.sample_once()
    status = sampler.state().status
    assert status.is_error
    assert "no-such-py-spy not found" in status.error_message


def test_state_is_a_copy():
    sampler = PySpySampler(1, runner=Runner(DUMP))
    state = sampler.state()

    sampler.sample_once()
    assert state.samples == 0
    assert state.status is RUNNING
    assert str(state.status) == "running"


def test_process_cmdline_of_current_process():
    cmdline = process_cmdline(os.getpid())

    assert cmdline
    assert cmdline == " ".join(psutil.Process(os.getpid()).cmdline())


def test_process_cmdline_of_missing_process(monkeypatch):
    def no_such_process(pid):
        raise psutil.NoSuchProcess(pid)

    monkeypatch.setattr(psutil, "Process", no_such_process)
    assert process_cmdline(999999) is None


def test_unexecutable_py_spy_sets_error_status():
    error = PermissionError(13, "Permission denied", "/opt/py-spy")
    sampler = PySpySampler(1, executable="/opt/py-spy", runner=Runner(error))

    assert not sampler.sample_once()
    status = sampler.state().status
    assert status.is_error
    assert "could not run /opt/py-spy" in status.error_message
    assert "Permission denied" in status.error_message


def test_hung_dump_times_out_into_error_status():
    runner = Runner(subprocess.TimeoutExpired(["py-spy", "dump"], 2.5))
    sampler = PySpySampler(1, timeout=2.5, runner=runner)

    assert not sampler.sample_once()
    assert runner.calls[0][1]["timeout"] == 2.5
    status = sampler.state().status
    assert status.is_error
    assert "did not finish within 2.5s" in status.error_message


def test_unexpected_exception_stops_thread_with_error_status():
    sampler = PySpySampler(1, interval=0, runner=Runner(DUMP, RuntimeError("boom")))

    thread = sampler.start()
    thread.join(timeout=5)

    assert not thread.is_alive()
    state = sampler.state()
    assert state.samples == 1
    assert state.status.is_error
    assert "boom" in state.status.error_message
