# arbiter.py
# ------------------------------------------------------------
# Consumer role: read framed lines from the shared channel, decide
# which producer currently owns the display, and write the winning
# block lists to stdout as one never-closed i3bar array.
# ------------------------------------------------------------

import sys
import time
from typing import Callable, Optional

from . import settings
from .codec import decode_payload, parse_priority, split_line

HEADER = b'{"version":1}\n'
ARRAY_OPEN = b"[\n"

# Below any legal priority: the first message always wins.
NO_PRIORITY = float("-inf")


class AcceptancePolicy:
    """
    Priority with staleness override.

    An update is accepted when its priority is at least the last accepted
    one, or when nothing has been accepted for more than `timeout` seconds.
    An accepted lower priority becomes the new floor.
    """
    def __init__(self, timeout: float = settings.DEFAULT_TIMEOUT,
                 clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self.last_priority = NO_PRIORITY
        self.last_accepted_at = clock()

    def offer(self, priority: int) -> bool:
        now = self._clock()
        if priority >= self.last_priority or (now - self.last_accepted_at) > self.timeout:
            self.last_priority = priority
            self.last_accepted_at = now
            return True
        return False


class MergedOutput:
    """Unterminated JSON array on a byte stream; every element is flushed at once."""
    def __init__(self, stream=None):
        self._stream = stream
        self.count = 0

    @property
    def stream(self):
        if self._stream is None:
            self._stream = sys.stdout.buffer
        return self._stream

    def open(self):
        self.stream.write(HEADER)
        self.stream.write(ARRAY_OPEN)
        self.stream.flush()

    def emit(self, payload: bytes):
        if self.count:
            self.stream.write(b",")
        self.stream.write(payload)
        self.stream.flush()
        self.count += 1


class MergeArbiter:
    """
    Owns the acceptance state and the output stream for the lifetime of the
    consumer role.
    """
    def __init__(self, channel, timeout: float = settings.DEFAULT_TIMEOUT,
                 output: Optional[MergedOutput] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.channel = channel
        self.policy = AcceptancePolicy(timeout, clock)
        self.output = output or MergedOutput()
        self.rejected = 0

    def handle_line(self, line: bytes) -> bool:
        """
        Process one channel line. Returns True when its payload was written.

        Raises ProtocolViolation without a `:` separator and
        PayloadDecodeError for an undecodable payload. A malformed priority
        tag is reported and the line skipped.
        """
        tag, body = split_line(line)
        priority = parse_priority(tag)
        if priority is None:
            print(f"⚠️  Invalid rank: {tag.decode('utf-8', errors='replace')}", file=sys.stderr, flush=True)
            return False
        payload = decode_payload(body)
        if not self.policy.offer(priority):
            self.rejected += 1
            return False
        self.output.emit(payload)
        return True

    def run(self):
        self.channel.ensure()
        self.output.open()
        print(f"ℹ️  Merging updates from {self.channel!r} (timeout {self.policy.timeout}s)",
              file=sys.stderr, flush=True)
        for line in self.channel.iter_lines():
            self.handle_line(line)
