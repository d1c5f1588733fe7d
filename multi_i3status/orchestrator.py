# orchestrator.py
# ------------------------------------------------------------
# Runs the producer role, the consumer role, or both in one process.
# In combined mode the first role to finish ends the run.
# ------------------------------------------------------------

import sys
import threading
import time
from queue import Queue
from typing import Callable, Optional, Tuple

from . import settings
from .arbiter import MergeArbiter, MergedOutput
from .channel import FifoChannel, QueueChannel
from .errors import MergeError
from .extractor import StreamProducer

EXIT_OK = 0
EXIT_FAILED = 1


def make_channel(backend: str = settings.CHANNEL_BACKEND, fifo: Optional[str] = None,
                 topic: Optional[str] = None, bootstrap: Optional[str] = None,
                 debug: Optional[str] = None):
    if backend == "fifo":
        return FifoChannel(fifo)
    if backend == "memory":
        return QueueChannel()
    if backend == "kafka":
        from .kafka_io import KafkaChannel
        return KafkaChannel(topic or settings.KAFKA_TOPIC, bootstrap, debug=debug)
    raise ValueError(f"Unknown channel backend: {backend}")


def _run_role(name: str, target: Callable[[], None]) -> bool:
    """Run one role to completion. Returns False when it died on an error."""
    try:
        target()
    except (MergeError, OSError) as e:
        print(f"❌ {name}: {e}", file=sys.stderr, flush=True)
        return False
    return True


def run_producer(channel, priority: int = settings.DEFAULT_PRIORITY, source=None) -> int:
    producer = StreamProducer(channel, priority, source=source)
    return EXIT_OK if _run_role("producer", producer.run) else EXIT_FAILED


def run_consumer(channel, timeout: float = settings.DEFAULT_TIMEOUT, sink=None) -> int:
    arbiter = MergeArbiter(channel, timeout, output=MergedOutput(sink))
    return EXIT_OK if _run_role("consumer", arbiter.run) else EXIT_FAILED


def run_combined(channel, priority: int = settings.DEFAULT_PRIORITY,
                 timeout: float = settings.DEFAULT_TIMEOUT,
                 start_delay: float = settings.START_DELAY,
                 source=None, sink=None) -> int:
    """
    Consumer and producer on two daemon threads sharing `channel`.

    The producer starts `start_delay` seconds late so the consumer has
    created the channel first. Returns as soon as either side finishes;
    the other thread is abandoned with the process.
    """
    done: "Queue[Tuple[str, bool]]" = Queue()
    producer = StreamProducer(channel, priority, source=source)
    arbiter = MergeArbiter(channel, timeout, output=MergedOutput(sink))

    # A role that dies on anything must still report, or done.get() never returns.
    def _producer():
        ok = False
        try:
            time.sleep(start_delay)
            ok = _run_role("producer", producer.run)
        finally:
            done.put(("producer", ok))

    def _consumer():
        ok = False
        try:
            ok = _run_role("consumer", arbiter.run)
        finally:
            done.put(("consumer", ok))

    threading.Thread(target=_consumer, name="consumer", daemon=True).start()
    threading.Thread(target=_producer, name="producer", daemon=True).start()

    name, ok = done.get()
    print(f"ℹ️  {name} finished, stopping", file=sys.stderr, flush=True)
    return EXIT_OK if ok else EXIT_FAILED
