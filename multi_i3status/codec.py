# codec.py
# ------------------------------------------------------------
# Wire format of the shared channel, one message per line:
#
#     <priority>:<base64 payload>\n
#
# The payload is the verbatim bytes of one block list.
# ------------------------------------------------------------

import base64
import binascii
import re
from typing import Optional, Tuple

from .errors import PayloadDecodeError, ProtocolViolation

SEPARATOR = b":"
LINE_END = b"\n"

_PRIORITY_RE = re.compile(rb"[+-]?[0-9]+")


def encode_payload(payload: bytes) -> bytes:
    return base64.b64encode(payload)


def decode_payload(text: bytes) -> bytes:
    """Strict base64 decode; anything outside the alphabet is an error."""
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadDecodeError(f"Error on decode base64: {e}") from e


def frame(priority: int, payload: bytes) -> bytes:
    """Build one complete channel line for `payload`."""
    return str(priority).encode("ascii") + SEPARATOR + encode_payload(payload) + LINE_END


def split_line(line: bytes) -> Tuple[bytes, bytes]:
    """
    Split a channel line into (tag, encoded payload).
    A trailing line terminator is dropped; a line without `:` is a protocol violation.
    """
    line = line.rstrip(b"\r\n")
    tag, sep, body = line.partition(SEPARATOR)
    if not sep:
        raise ProtocolViolation(f"There is no `:` in channel line {line[:64]!r}")
    return tag, body


def parse_priority(tag: bytes) -> Optional[int]:
    """Return the integer priority, or None when the tag is malformed."""
    if not _PRIORITY_RE.fullmatch(tag):
        return None
    return int(tag)
