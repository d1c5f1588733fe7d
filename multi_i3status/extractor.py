# extractor.py
# ------------------------------------------------------------
# Producer role: turn an i3bar status stream on stdin
#
#     {"version":1}
#     [
#     [{"full_text":"a"}],
#     [{"full_text":"b"}],
#     ...
#
# into one framed channel line per completed block list.
# ------------------------------------------------------------

import sys
from enum import Enum
from typing import Iterable, Iterator, List, Optional

from . import settings
from .codec import frame
from .errors import ChannelError, ChannelUnavailable, ProtocolViolation

_WHITESPACE = frozenset(b" \t\r\n")


class Token(Enum):
    OBJECT = "{"
    ARRAY = "["


class BlockExtractor:
    """
    Structural state machine over raw bytes.

    Tracks only what is needed to delimit the elements of the outermost
    array: open brackets/braces outside strings, the in-string flag and a
    pending backslash. Bytes are fed one at a time; feed() returns a payload
    each time an element of the outermost array closes.
    """
    def __init__(self):
        self.buf = bytearray()
        self.nest: List[Token] = []
        self.in_string = False
        self.escape = False

    def feed(self, c: int) -> Optional[bytes]:
        if self.in_string:
            self.buf.append(c)
            if self.escape:
                self.escape = False
            elif c == 0x5C:  # backslash
                self.escape = True
            elif c == 0x22:  # "
                self.in_string = False
            return None

        top_level = self.nest == [Token.ARRAY]

        # Separators and whitespace between elements are not part of any payload.
        if top_level and c == 0x2C:
            self.buf.clear()
            return None
        if top_level and c in _WHITESPACE:
            return None

        self.buf.append(c)
        if c == 0x22:
            self.in_string = True
        elif c == 0x7B:  # {
            self.nest.append(Token.OBJECT)
        elif c == 0x7D:  # }
            self._pop(Token.OBJECT, "}")
            if not self.nest:
                # {"version":1} header, or an object outside any array
                self.buf.clear()
        elif c == 0x5B:  # [
            self.nest.append(Token.ARRAY)
            if len(self.nest) == 1:
                # the outer array's own bracket is not part of a payload
                self.buf.clear()
        elif c == 0x5D:  # ]
            self._pop(Token.ARRAY, "]")
            if self.nest == [Token.ARRAY]:
                payload = bytes(self.buf) + b"\n"
                self.buf.clear()
                return payload
        return None

    def feed_bytes(self, chunk: Iterable[int]) -> Iterator[bytes]:
        for c in chunk:
            payload = self.feed(c)
            if payload is not None:
                yield payload

    def _pop(self, expected: Token, char: str):
        if not self.nest or self.nest[-1] is not expected:
            found = self.nest[-1].value if self.nest else "nothing"
            raise ProtocolViolation(f"Unbalanced `{char}`: innermost open token is {found}")
        self.nest.pop()


class StreamProducer:
    """
    Read status text from `source`, publish each block list on `channel`
    under `priority`.

    Delivery is best effort: a missing reader or a failed write drops that
    message, is reported on stderr, and the next payload tries a fresh handle.
    Reading the source never waits on the channel.
    """
    def __init__(self, channel, priority: int = settings.DEFAULT_PRIORITY,
                 source=None, read_chunk: int = settings.READ_CHUNK):
        self.channel = channel
        self.priority = priority
        self.source = source
        self.read_chunk = read_chunk
        self.extractor = BlockExtractor()
        self._writer = None
        self.sent = 0
        self.dropped = 0

    def _get_writer(self):
        if self._writer is None:
            try:
                self._writer = self.channel.open_writer()
            except ChannelUnavailable as e:
                print(f"⚠️  Output fails due to missing channel: {e}", file=sys.stderr, flush=True)
        return self._writer

    def publish(self, payload: bytes) -> bool:
        """Frame and send one payload. Returns False when it was dropped."""
        writer = self._get_writer()
        if writer is None:
            self.dropped += 1
            return False
        try:
            writer.write_line(frame(self.priority, payload))
        except ChannelError as e:
            print(f"⚠️  {e}", file=sys.stderr, flush=True)
            writer.abort()
            self._writer = None
            self.dropped += 1
            return False
        self.sent += 1
        return True

    def _chunks(self) -> Iterator[bytes]:
        source = self.source if self.source is not None else sys.stdin.buffer
        # read1 returns as soon as any bytes are available
        read = getattr(source, "read1", source.read)
        while True:
            chunk = read(self.read_chunk)
            if not chunk:
                return
            yield chunk

    def run(self):
        try:
            for chunk in self._chunks():
                for payload in self.extractor.feed_bytes(chunk):
                    self.publish(payload)
        finally:
            if self._writer is not None:
                self._writer.close()
                self._writer = None
        print(f"ℹ️  End of input: {self.sent} sent, {self.dropped} dropped", file=sys.stderr, flush=True)
