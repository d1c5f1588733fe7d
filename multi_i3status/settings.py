# settings.py
# ------------------------------------------------------------
# Defaults for every role, overridable through the environment.
# Command-line options take precedence over these values.
# A malformed numeric value falls back to its default here and is
# reported as a usage error by cli.cmd_parser.
# ------------------------------------------------------------

import math
import os
import tempfile


def positive_int(value: str) -> int:
    n = int(value)
    if n <= 0:
        raise ValueError(f"must be a positive integer: {value!r}")
    return n


def non_negative_seconds(value: str) -> float:
    seconds = float(value)
    if seconds < 0 or math.isnan(seconds):
        raise ValueError(f"must be a non-negative number of seconds: {value!r}")
    return seconds


def env_number(name: str, default, cast=int):
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        return default


# === CHANNEL CONFIG ===
FIFO_NAME = "multi-i3status"
FIFO_PATH = os.getenv("MULTI_I3STATUS_FIFO", os.path.join(tempfile.gettempdir(), FIFO_NAME))
FIFO_MODE = 0o700  # rwx for the owner only
CHANNEL_BACKEND = os.getenv("MULTI_I3STATUS_CHANNEL", "fifo")  # fifo, kafka, memory
CHANNEL_BACKENDS = ("fifo", "kafka", "memory")

# === PRODUCER CONFIG ===
DEFAULT_PRIORITY = env_number("MULTI_I3STATUS_PRIORITY", 0, int)
READ_CHUNK = env_number("MULTI_I3STATUS_READ_CHUNK", 4096, positive_int)  # bytes per stdin read

# === CONSUMER CONFIG ===
DEFAULT_TIMEOUT = env_number("MULTI_I3STATUS_TIMEOUT", 2.0, non_negative_seconds)  # staleness window

# === COMBINED MODE ===
START_DELAY = env_number("MULTI_I3STATUS_START_DELAY", 1.0, non_negative_seconds)  # consumer creates the FIFO first

# Numeric variables above and how each one is parsed.
NUMERIC_ENV = {
    "MULTI_I3STATUS_PRIORITY": int,
    "MULTI_I3STATUS_READ_CHUNK": positive_int,
    "MULTI_I3STATUS_TIMEOUT": non_negative_seconds,
    "MULTI_I3STATUS_START_DELAY": non_negative_seconds,
}

# === KAFKA CONFIG ===
KAFKA_TOPIC = os.getenv("KAFKA_TOPIC", "multi_i3status")
KAFKA_GROUP_ID = os.getenv("KAFKA_GROUP_ID", "multi-i3status")
