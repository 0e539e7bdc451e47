import threading

import pytest

from flamewatch.ingest import Mailbox
from flamewatch.sampler import SamplerState, SamplerStatus

SAMPLE = """\
main;parse;read 5
main;parse;tokenize 3
main;render 2
idle 1
"""


@pytest.fixture
def sample_text():
    return SAMPLE


class FakeSampler:
    """Stands in for PySpySampler: output and status are set by the test."""

    def __init__(self):
        self._output = Mailbox()
        self._state = SamplerState()
        self.started = threading.Event()

    def emit(self, text):
        self._output.publish(text)

    def fail(self, message):
        self._state.status = SamplerStatus.error(message)

    def latest_output(self):
        return self._output.take()

    def state(self):
        return self._state

    def start(self):
        self.started.set()


@pytest.fixture
def fake_sampler():
    return FakeSampler()
