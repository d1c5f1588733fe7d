"""
Shared fixtures: a controllable clock and channels that record or fail.
"""

import pytest

from multi_i3status.errors import ChannelError, ChannelUnavailable


class FakeClock:
    """Monotonic clock moved by hand."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingWriter:
    def __init__(self, owner):
        self.owner = owner
        self.closed = False
        self.aborted = False

    def write_line(self, line: bytes):
        if self.owner.fail_writes:
            self.owner.fail_writes -= 1
            raise ChannelError("Error on write to fake: Broken pipe")
        self.owner.lines.append(line)

    def close(self):
        self.closed = True

    def abort(self):
        self.aborted = True
        self.closed = True


class RecordingChannel:
    """
    Channel double. `unavailable` open attempts fail before one succeeds,
    then `fail_writes` writes fail.
    """

    def __init__(self, unavailable: int = 0, fail_writes: int = 0):
        self.unavailable = unavailable
        self.fail_writes = fail_writes
        self.lines = []
        self.writers = []

    def ensure(self):
        pass

    def open_writer(self):
        if self.unavailable:
            self.unavailable -= 1
            raise ChannelUnavailable("No reader on fake")
        writer = RecordingWriter(self)
        self.writers.append(writer)
        return writer

    def iter_lines(self):
        yield from list(self.lines)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_channel():
    return RecordingChannel()
