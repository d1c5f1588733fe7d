"""
Error taxonomy shared by both roles.

Fatal conditions raise one of these; recoverable ones are printed to stderr
and never leave the role that hit them.
"""


class MergeError(Exception):
    """Base class: anything that terminates a role with a diagnostic."""


class ProtocolViolation(MergeError):
    """Structurally impossible input (bad nesting, missing `:` in a channel line)."""


class PayloadDecodeError(MergeError):
    """A channel payload that does not decode; the producer is incompatible or corrupted."""


class ChannelError(MergeError):
    """A read or write on an open channel handle failed."""


class ChannelUnavailable(ChannelError):
    """No handle could be acquired (no reader attached, FIFO missing, broker down)."""
