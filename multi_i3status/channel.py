# channel.py
# ------------------------------------------------------------
# - FifoChannel: named pipe shared by every process on the host.
#   One reader owns it for its lifetime; writers come and go.
# - QueueChannel: in-process stand-in for combined mode.
# ------------------------------------------------------------

import errno
import os
import sys
from queue import Queue
from typing import Generator, Optional

from . import settings
from .errors import ChannelError, ChannelUnavailable

SENTINEL = None


class FifoWriter:
    """Write handle on the FIFO. Each call sends one whole line."""
    def __init__(self, fd: int, path: str):
        self._fd = fd
        self.path = path

    def write_line(self, line: bytes):
        view = memoryview(line)
        try:
            while view:
                n = os.write(self._fd, view)
                view = view[n:]
        except OSError as e:
            raise ChannelError(f"Error on write to {self.path}: {e}") from e

    def close(self):
        if self._fd < 0:
            return
        try:
            os.close(self._fd)
        except OSError:
            pass
        self._fd = -1

    abort = close


class FifoChannel:
    """
    Named pipe at a well-known path.

    The reader creates it if absent and keeps a write handle of its own, so a
    blocking line read never sees end-of-stream while writers come and go.
    Writers open without blocking: no reader attached means ChannelUnavailable.
    """
    def __init__(self, path: Optional[str] = None, mode: int = settings.FIFO_MODE):
        self.path = path or settings.FIFO_PATH
        self.mode = mode

    def __repr__(self):
        return f"FifoChannel({self.path!r})"

    def ensure(self):
        """Create the FIFO; an existing one is reused as is."""
        try:
            os.mkfifo(self.path, self.mode)
            print(f"✅ Created fifo {self.path}", file=sys.stderr, flush=True)
        except FileExistsError:
            pass
        except OSError as e:
            raise ChannelError(f"Error on creating fifo file: {e}") from e

    def open_writer(self) -> FifoWriter:
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_NONBLOCK)
        except OSError as e:
            if e.errno in (errno.ENXIO, errno.ENOENT):
                raise ChannelUnavailable(f"No reader on {self.path}: {e.strerror}") from e
            raise ChannelUnavailable(f"Could not open {self.path}: {e}") from e
        os.set_blocking(fd, True)
        return FifoWriter(fd, self.path)

    def _open_reader(self):
        # O_NONBLOCK so the read side does not wait for a writer to show up.
        rfd = os.open(self.path, os.O_RDONLY | os.O_NONBLOCK)
        try:
            keepalive = os.open(self.path, os.O_WRONLY)
        except OSError:
            os.close(rfd)
            raise
        os.set_blocking(rfd, True)
        return os.fdopen(rfd, "rb"), keepalive

    def iter_lines(self) -> Generator[bytes, None, None]:
        """Yield complete lines forever, in arrival order."""
        while True:
            try:
                reader, keepalive = self._open_reader()
            except OSError as e:
                raise ChannelError(f"Error on opening {self.path}: {e}") from e
            try:
                while True:
                    line = reader.readline()
                    if not line:
                        # Every writer handle is gone; reopen and keep going.
                        print(f"ℹ️  End of stream on {self.path}, reopening", file=sys.stderr, flush=True)
                        break
                    yield line
            finally:
                reader.close()
                os.close(keepalive)


class _QueueWriter:
    def __init__(self, q: Queue):
        self._q = q

    def write_line(self, line: bytes):
        self._q.put(line)

    def close(self):
        pass

    abort = close


class QueueChannel:
    """Same interface as FifoChannel, backed by a Queue. close() ends iter_lines()."""
    def __init__(self, maxsize: int = 0):
        self._q = Queue(maxsize=maxsize)

    def __repr__(self):
        return "QueueChannel()"

    def ensure(self):
        pass

    def open_writer(self) -> _QueueWriter:
        return _QueueWriter(self._q)

    def iter_lines(self) -> Generator[bytes, None, None]:
        while True:
            line = self._q.get()
            if line is SENTINEL:
                return
            yield line

    def close(self):
        self._q.put(SENTINEL)
