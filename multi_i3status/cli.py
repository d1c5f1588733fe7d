import argparse
import os
import sys
from typing import List, Optional

from . import __version__, settings
from .orchestrator import make_channel, run_combined, run_consumer, run_producer


def _seconds(value: str) -> float:
    try:
        return settings.non_negative_seconds(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"seconds must be a non-negative number: {value!r}")


class cmd_parser:
    """
    Parse CLI arguments to select the role(s) this process plays.

    Behaviors:
      - "producer [priority]"          -> publish stdin under <priority> (alias: reader)
      - "consumer [timeout]"           -> merge the channel onto stdout (aliases: receiver, reciever)
      - "combined [priority] [timeout]" -> both, in one process (alias: both)
      - Channel options may follow any mode.
      - The in-memory channel only makes sense when both roles share the process.
    """

    # Dictionary that associates a mode with the names it is accepted under.
    MODE_REGISTRY = {
        "producer": ["reader"],
        "consumer": ["receiver", "reciever"],
        "combined": ["both"],
    }

    def __init__(self) -> None:
        self._parser = self._make_parser()

    def parse(self, argv: Optional[List[str]] = None) -> argparse.Namespace:
        args = self._parser.parse_args(argv)
        self._check_environment()
        if args.mode is None:
            self._parser.error(f"a mode is required: {', '.join(self.MODE_REGISTRY)}")
        if args.channel not in settings.CHANNEL_BACKENDS:
            # only reachable through $MULTI_I3STATUS_CHANNEL; --channel has choices
            self._parser.error(f"invalid value for $MULTI_I3STATUS_CHANNEL: {args.channel!r}")
        if args.channel == "memory" and args.mode != "combined":
            self._parser.error("--channel memory needs both roles in one process (combined mode).")
        return args

    def _check_environment(self) -> None:
        """Numeric defaults from the environment are validated here, not at import."""
        for name, cast in settings.NUMERIC_ENV.items():
            raw = os.environ.get(name)
            if raw is None:
                continue
            try:
                cast(raw)
            except ValueError:
                self._parser.error(f"invalid value for ${name}: {raw!r}")

    def _make_parser(self) -> argparse.ArgumentParser:
        """
        Create the top-level parser with one subcommand per mode. The channel
        options live on a parent parser shared by every mode.
        """
        common = argparse.ArgumentParser(add_help=False)
        common.add_argument("--channel", choices=settings.CHANNEL_BACKENDS, default=settings.CHANNEL_BACKEND,
                            help="Transport between producers and the consumer (default: %(default)s).")
        common.add_argument("--fifo", default=settings.FIFO_PATH, metavar="PATH",
                            help="Named pipe shared by every process on the host (default: %(default)s).")
        common.add_argument("--topic", default=settings.KAFKA_TOPIC,
                            help="Kafka topic for --channel kafka (default: %(default)s).")
        common.add_argument("--bootstrap", default=None, metavar="HOST:PORT",
                            help="Kafka bootstrap servers (default: $KAFKA_BOOTSTRAP or localhost:9092).")
        # Optional debug flag passthrough
        common.add_argument("--debug", default=None,
                            help="librdkafka debug contexts to enable (e.g., 'cgrp,topic,msg').")

        p = argparse.ArgumentParser(
            prog="multi-i3status",
            description="Merge several i3bar status feeds into one, preferring higher priorities."
        )
        p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
        sub = p.add_subparsers(dest="mode", metavar="MODE")

        producer = sub.add_parser("producer", aliases=self.MODE_REGISTRY["producer"], parents=[common],
                                  help="Read an i3bar stream on stdin and publish it.")
        producer.add_argument("priority", nargs="?", type=int, default=settings.DEFAULT_PRIORITY,
                              help="Priority of this feed; higher wins (default: %(default)s).")
        producer.set_defaults(mode="producer")

        consumer = sub.add_parser("consumer", aliases=self.MODE_REGISTRY["consumer"], parents=[common],
                                  help="Merge published feeds onto stdout.")
        consumer.add_argument("timeout", nargs="?", type=_seconds, default=settings.DEFAULT_TIMEOUT,
                              help="Seconds of silence before a lower priority may take over "
                                   "(default: %(default)s).")
        consumer.set_defaults(mode="consumer")

        combined = sub.add_parser("combined", aliases=self.MODE_REGISTRY["combined"], parents=[common],
                                  help="Run a producer and the consumer in this process.")
        combined.add_argument("priority", nargs="?", type=int, default=settings.DEFAULT_PRIORITY)
        combined.add_argument("timeout", nargs="?", type=_seconds, default=settings.DEFAULT_TIMEOUT)
        combined.add_argument("--start-delay", type=_seconds, default=settings.START_DELAY, metavar="SECONDS",
                              help="Delay before the producer starts (default: %(default)s).")
        combined.set_defaults(mode="combined")
        return p


def main(argv: Optional[List[str]] = None) -> int:
    args = cmd_parser().parse(argv)
    channel = make_channel(args.channel, fifo=args.fifo, topic=args.topic,
                           bootstrap=args.bootstrap, debug=args.debug)
    try:
        if args.mode == "producer":
            return run_producer(channel, args.priority)
        if args.mode == "consumer":
            return run_consumer(channel, args.timeout)
        return run_combined(channel, args.priority, args.timeout, args.start_delay)
    except KeyboardInterrupt:
        print("\n🛑 Interrupted", file=sys.stderr, flush=True)
        return 130
