"""
Shared Channel Tests

FIFO semantics: idempotent creation, one long-lived reader, writers that
come and go and fail fast when nobody reads.
"""

import os
import stat
import threading
import time
from queue import Queue

import pytest

from multi_i3status.channel import FifoChannel, FifoWriter, QueueChannel
from multi_i3status.errors import ChannelError, ChannelUnavailable

needs_fifo = pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="named pipes need a POSIX host")


def open_when_ready(channel, deadline: float = 5.0):
    """The reader thread may not have opened its end yet."""
    end = time.monotonic() + deadline
    while True:
        try:
            return channel.open_writer()
        except ChannelUnavailable:
            if time.monotonic() > end:
                raise
            time.sleep(0.01)


def start_reader(channel) -> Queue:
    received = Queue()

    def consume():
        for line in channel.iter_lines():
            received.put(line)

    threading.Thread(target=consume, daemon=True).start()
    return received


# =============================================================================
# FIFO
# =============================================================================

@needs_fifo
class TestFifoCreation:
    """Create-if-absent."""

    def test_creates_fifo(self, tmp_path):
        path = tmp_path / "multi-i3status"
        FifoChannel(str(path)).ensure()
        st = os.stat(path)
        assert stat.S_ISFIFO(st.st_mode)
        assert stat.S_IMODE(st.st_mode) & 0o077 == 0

    def test_existing_fifo_is_reused(self, tmp_path):
        path = str(tmp_path / "multi-i3status")
        channel = FifoChannel(path)
        channel.ensure()
        inode = os.stat(path).st_ino
        channel.ensure()
        assert os.stat(path).st_ino == inode

    def test_unusable_location(self, tmp_path):
        with pytest.raises(ChannelError):
            FifoChannel(str(tmp_path / "missing" / "fifo")).ensure()

    def test_default_path_is_shared(self):
        assert FifoChannel().path == FifoChannel().path


@needs_fifo
class TestFifoWriters:
    """Writers never block and never treat a missing reader as fatal."""

    def test_no_fifo(self, tmp_path):
        with pytest.raises(ChannelUnavailable):
            FifoChannel(str(tmp_path / "nothing")).open_writer()

    def test_no_reader(self, tmp_path):
        channel = FifoChannel(str(tmp_path / "fifo"))
        channel.ensure()
        started = time.monotonic()
        with pytest.raises(ChannelUnavailable):
            channel.open_writer()
        assert time.monotonic() - started < 1.0

    def test_broken_pipe_is_channel_error(self):
        r, w = os.pipe()
        os.close(r)
        writer = FifoWriter(w, "pipe")
        with pytest.raises(ChannelError):
            writer.write_line(b"0:AAAA\n")
        writer.close()
        writer.close()

    def test_reading_missing_fifo(self, tmp_path):
        with pytest.raises(ChannelError):
            next(FifoChannel(str(tmp_path / "nothing")).iter_lines())


@needs_fifo
class TestFifoDelivery:
    """Whole lines, in order, across writer reconnects."""

    def test_lines_arrive_in_order(self, tmp_path):
        channel = FifoChannel(str(tmp_path / "fifo"))
        channel.ensure()
        received = start_reader(channel)
        writer = open_when_ready(channel)
        writer.write_line(b"1:AAAA\n")
        writer.write_line(b"2:QkJC\n")
        assert received.get(timeout=5) == b"1:AAAA\n"
        assert received.get(timeout=5) == b"2:QkJC\n"
        writer.close()

    def test_reader_survives_writer_churn(self, tmp_path):
        channel = FifoChannel(str(tmp_path / "fifo"))
        channel.ensure()
        received = start_reader(channel)
        for i in range(3):
            writer = open_when_ready(channel)
            writer.write_line(b"%d:AAAA\n" % i)
            writer.close()
            assert received.get(timeout=5) == b"%d:AAAA\n" % i

    def test_two_writers(self, tmp_path):
        channel = FifoChannel(str(tmp_path / "fifo"))
        channel.ensure()
        received = start_reader(channel)
        first = open_when_ready(channel)
        second = open_when_ready(channel)
        first.write_line(b"1:AAAA\n")
        second.write_line(b"2:AAAA\n")
        got = {received.get(timeout=5), received.get(timeout=5)}
        assert got == {b"1:AAAA\n", b"2:AAAA\n"}
        first.close()
        second.close()


# =============================================================================
# IN-MEMORY
# =============================================================================

class TestQueueChannel:
    """Same interface, one process."""

    def test_lines_then_close(self):
        channel = QueueChannel()
        channel.ensure()
        writer = channel.open_writer()
        writer.write_line(b"1:AAAA\n")
        writer.write_line(b"2:AAAA\n")
        writer.close()
        channel.close()
        assert list(channel.iter_lines()) == [b"1:AAAA\n", b"2:AAAA\n"]

    def test_writers_share_the_queue(self):
        channel = QueueChannel()
        channel.open_writer().write_line(b"1:AAAA\n")
        channel.open_writer().write_line(b"2:AAAA\n")
        channel.close()
        assert len(list(channel.iter_lines())) == 2
