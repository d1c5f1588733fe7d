# kafka_io.py
# ------------------------------------------------------------
# - KafkaLineConsumer: delivers framed channel lines from a topic.
# - KafkaLineProducer: publishes framed channel lines to a topic.
# - KafkaChannel: the two above behind the shared channel interface,
#   for producers that do not share a host with the consumer.
# ------------------------------------------------------------

import os
import sys
from typing import Generator, Optional

from confluent_kafka import (
    Consumer as _KafkaConsumer,
    Producer as _KafkaProducer,
    KafkaException,
    KafkaError,
)

from . import settings
from .codec import LINE_END
from .errors import ChannelError, ChannelUnavailable

# -----------------------------
# Defaults (configurable by env)
# -----------------------------

def get_bootstrap(override: Optional[str] = None) -> str:
    """
    Resolution order:
    1) explicit argument (override),
    2) KAFKA_BOOTSTRAP environment variable,
    3) default "localhost:9092".
    """
    if override:
        return override
    return os.getenv("KAFKA_BOOTSTRAP", "localhost:9092")

# Status lines are only worth anything while fresh: start at the end of the topic.
DEFAULT_AUTO_OFFSET_RESET = os.getenv("KAFKA_AUTO_OFFSET_RESET", "latest")
DEFAULT_ALLOW_AUTO_CREATE_TOPICS = os.getenv("KAFKA_ALLOW_AUTO_CREATE_TOPICS", "true").lower() == "true"

# One line per status tick, so no batching delay on the producer side.
DEFAULT_LINGER_MS = settings.env_number("KAFKA_PRODUCER_LINGER_MS", 0)
DEFAULT_FLUSH_TIMEOUT = settings.env_number("KAFKA_PRODUCER_FLUSH_TIMEOUT", 1.0, settings.non_negative_seconds)
DEFAULT_MESSAGE_TIMEOUT_MS = settings.env_number("KAFKA_PRODUCER_MESSAGE_TIMEOUT_MS", 5000, settings.positive_int)


def _kafka_consumer_config(bootstrap: Optional[str], group_id: Optional[str], debug: Optional[str] = None) -> dict:
    cfg = {
        "bootstrap.servers": get_bootstrap(bootstrap),
        "group.id": group_id or settings.KAFKA_GROUP_ID,
        "enable.auto.commit": True,
        "auto.offset.reset": DEFAULT_AUTO_OFFSET_RESET,
        "allow.auto.create.topics": DEFAULT_ALLOW_AUTO_CREATE_TOPICS,
        "enable.partition.eof": False,
        "fetch.wait.max.ms": 50,
        "session.timeout.ms": 10000,
        "socket.keepalive.enable": True,
    }
    if debug:
        cfg["debug"] = debug  # ej: "cgrp,topic,fetch,protocol"
    return cfg


def _kafka_producer_config(bootstrap: Optional[str], debug: Optional[str] = None) -> dict:
    cfg = {
        "bootstrap.servers": get_bootstrap(bootstrap),
        "linger.ms": DEFAULT_LINGER_MS,
        "message.timeout.ms": DEFAULT_MESSAGE_TIMEOUT_MS,  # a stale status line is worthless
        "socket.keepalive.enable": True,
    }
    if debug:
        cfg["debug"] = debug  # ej: "msg"
    return cfg


class KafkaLineConsumer:
    """
    Single consumer of the status topic. Every message value is one channel
    line without its terminator.
    """
    def __init__(
        self,
        topic: str = settings.KAFKA_TOPIC,
        poll_timeout: float = 1.0,
        group_id: Optional[str] = None,
        bootstrap: Optional[str] = None,
        debug: Optional[str] = None,
    ):
        self.topic = topic
        self.poll_timeout = poll_timeout
        self._closing = False
        self._consumer = _KafkaConsumer(_kafka_consumer_config(bootstrap, group_id, debug))
        self._consumer.subscribe([self.topic])

    def iter_lines(self) -> Generator[bytes, None, None]:
        try:
            while not self._closing:
                try:
                    msg = self._consumer.poll(self.poll_timeout)
                except KafkaException as ke:
                    print(f"❌ KafkaException: {ke}", file=sys.stderr, flush=True)
                    continue
                if msg is None:
                    continue
                if msg.error():
                    err = msg.error()
                    if err.code() == KafkaError._PARTITION_EOF:
                        continue
                    print(f"⚠️  Error consumer: {err}", file=sys.stderr, flush=True)
                    continue
                value = msg.value() or b""
                yield value if value.endswith(LINE_END) else value + LINE_END
        finally:
            self.close()

    def close(self):
        self._closing = True
        try:
            self._consumer.close()
        except (KafkaException, RuntimeError):
            pass


class KafkaLineProducer:
    """
    Publishes one channel line per message without waiting for delivery.
    Delivery failures surface through the delivery callback.
    """
    def __init__(self, topic: str = settings.KAFKA_TOPIC, bootstrap: Optional[str] = None,
                 debug: Optional[str] = None, flush_timeout: float = DEFAULT_FLUSH_TIMEOUT):
        self.topic = topic
        self.flush_timeout = flush_timeout
        self._producer = _KafkaProducer(_kafka_producer_config(bootstrap, debug))

    def _delivery_cb(self, err, msg):
        if err is not None:
            print(f"❌ Delivery failed: {err}", file=sys.stderr, flush=True)

    def write_line(self, line: bytes):
        try:
            self._producer.produce(self.topic, value=line.rstrip(LINE_END), on_delivery=self._delivery_cb)
            self._producer.poll(0)  # serves callbacks
        except (BufferError, KafkaException) as e:
            raise ChannelError(f"Error on produce to {self.topic}: {e}") from e

    def abort(self):
        """Drop whatever is still queued; never waits on the broker."""
        try:
            self._producer.purge()
            self._producer.flush(0)
        except KafkaException as ke:
            print(f"⚠️  Purge failed: {ke}", file=sys.stderr, flush=True)

    def close(self):
        try:
            remaining = self._producer.flush(self.flush_timeout)
        except KafkaException as ke:
            print(f"⚠️  Flush on close failed: {ke}", file=sys.stderr, flush=True)
            return
        if remaining:
            print(f"⚠️  {remaining} message(s) not delivered to {self.topic}", file=sys.stderr, flush=True)


class KafkaChannel:
    """Shared channel carried by a Kafka topic."""
    def __init__(self, topic: str = settings.KAFKA_TOPIC, bootstrap: Optional[str] = None,
                 group_id: Optional[str] = None, debug: Optional[str] = None):
        self.topic = topic
        self.bootstrap = get_bootstrap(bootstrap)
        self.group_id = group_id
        self.debug = debug

    def __repr__(self):
        return f"KafkaChannel({self.topic!r} @ {self.bootstrap})"

    def ensure(self):
        # The topic is created on first use by the broker.
        pass

    def open_writer(self) -> KafkaLineProducer:
        try:
            return KafkaLineProducer(self.topic, self.bootstrap, self.debug)
        except KafkaException as e:
            raise ChannelUnavailable(f"Could not create producer for {self.topic}: {e}") from e

    def iter_lines(self) -> Generator[bytes, None, None]:
        try:
            consumer = KafkaLineConsumer(self.topic, group_id=self.group_id,
                                         bootstrap=self.bootstrap, debug=self.debug)
        except KafkaException as e:
            raise ChannelError(f"Could not subscribe to {self.topic}: {e}") from e
        yield from consumer.iter_lines()
