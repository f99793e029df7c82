# amqpharness/cli.py
import argparse
import logging
import os
import sys

from .config import HarnessConfig
from .errors import HarnessConfigError
from .harness import AMQPHarness

logger = logging.getLogger(__name__)


def cmd_publish(harness: AMQPHarness, args) -> int:
    if args.exchange is not None:
        harness.publish_to_exchange(args.exchange, args.message, args.routing_key)
    else:
        harness.publish_to_queue(args.queue, args.message)
    return 0


def cmd_count(harness: AMQPHarness, args) -> int:
    print(harness.count_messages(args.queue))
    return 0


def cmd_get(harness: AMQPHarness, args) -> int:
    msg = harness.fetch_message(args.queue, auto_ack=args.ack)
    if msg is None:
        logger.info(f"Queue {args.queue} is empty")
        return 1
    print(msg.text)
    return 0


def cmd_purge(harness: AMQPHarness, args) -> int:
    for queue in args.queues:
        harness.schedule_cleanup(queue)
        purged = harness.purge_queue(queue)
        print(f"{queue}: {purged}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="amqp-harness",
        description="Inspect and reset AMQP broker state. Connection settings come from AMQP_* env vars.",
    )
    parser.add_argument("--loglevel", default=os.getenv("AMQP_LOGLEVEL", "warning"),
                        choices=["debug", "info", "warning", "error"])
    sub = parser.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("publish", help="Publish a message to a queue or exchange")
    p.add_argument("queue", help="Target queue (routing key when --exchange is given)")
    p.add_argument("message")
    p.add_argument("-e", "--exchange", default=None)
    p.add_argument("-k", "--routing-key", default=None)
    p.set_defaults(func=cmd_publish)

    c = sub.add_parser("count", help="Print the number of messages in a queue")
    c.add_argument("queue")
    c.set_defaults(func=cmd_count)

    g = sub.add_parser("get", help="Fetch one message without waiting")
    g.add_argument("queue")
    g.add_argument("--ack", action="store_true", help="Remove the message from the queue")
    g.set_defaults(func=cmd_get)

    u = sub.add_parser("purge", help="Purge one or more queues")
    u.add_argument("queues", nargs="+")
    u.set_defaults(func=cmd_purge)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.cmd == "publish" and args.routing_key is None:
        args.routing_key = args.queue

    logging.basicConfig(
        level=getattr(logging, args.loglevel.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = HarnessConfig.from_env()
        with AMQPHarness(config) as harness:
            return args.func(harness, args)
    except HarnessConfigError as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
