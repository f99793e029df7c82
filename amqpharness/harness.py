import logging
from contextlib import contextmanager
from typing import NamedTuple

import pika
import pika.exceptions
import pytest

from adapters.broker import connect
from .config import HarnessConfig
from .errors import HarnessConfigError, is_not_found
from .message import Message, to_message

logger = logging.getLogger(__name__)


class QueueInfo(NamedTuple):
    queue: str
    message_count: int
    consumer_count: int


class AMQPHarness:
    """
    Test-side handle on an AMQP broker.

    Holds one connection and either a single shared channel or a fresh
    channel per operation (``config.single_channel``). Every operation is a
    straight delegation to pika; the ``assert_*`` helpers report mismatches
    through ``pytest.fail``.

        harness = AMQPHarness(HarnessConfig(queues=("mail",)))
        harness.connect()
        harness.publish_to_queue("mail", "Hello, davert")
        harness.assert_message_contains("mail", "davert")
    """

    def __init__(self, config: HarnessConfig | None = None):
        self.config = config or HarnessConfig()
        self.queues: list[str] = list(self.config.queues)
        self.connection: pika.BlockingConnection | None = None
        self._shared_channel = None
        # per-call channels that must outlive the call (unacked fetches)
        self._held_channels: list = []

    # ---- lifecycle ----
    def connect(self) -> "AMQPHarness":
        if self.connection is None or not self.connection.is_open:
            self.connection = connect(self.config)
        return self

    def close(self):
        for channel in [self._shared_channel, *self._held_channels]:
            if channel is not None and channel.is_open:
                channel.close()
        self._shared_channel = None
        self._held_channels = []
        if self.connection is not None and self.connection.is_open:
            self.connection.close()
            logger.info(f"[amqp] Closed connection to {self.config.address}")
        self.connection = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, *exc_info):
        self.close()

    # ---- publishing ----
    def publish_to_exchange(
        self,
        exchange: str,
        message: str | bytes | Message,
        routing_key: str = "",
        properties: pika.BasicProperties | None = None,
    ):
        """Publish ``message`` to ``exchange``, optionally with a routing key."""
        msg = to_message(message, properties)
        with self._channel() as ch:
            ch.basic_publish(
                exchange=exchange,
                routing_key=routing_key or "",
                body=msg.body,
                properties=msg.properties,
            )
        logger.debug(f"[amqp] Published {len(msg.body)} bytes to exchange '{exchange}'")

    def publish_to_queue(
        self,
        queue: str,
        message: str | bytes | Message,
        properties: pika.BasicProperties | None = None,
    ):
        """
        Publish ``message`` to ``queue`` through the default exchange.

        The queue is created with default flags when it does not exist yet;
        an existing queue is left as declared.
        """
        msg = to_message(message, properties)
        self._ensure_queue(queue)
        with self._channel() as ch:
            ch.basic_publish(
                exchange="", routing_key=queue, body=msg.body, properties=msg.properties
            )
        logger.debug(f"[amqp] Published {len(msg.body)} bytes to queue '{queue}'")

    # ---- topology ----
    def declare_exchange(
        self,
        exchange: str,
        exchange_type: str = "direct",
        passive: bool = False,
        durable: bool = False,
        auto_delete: bool = True,
        internal: bool = False,
        arguments: dict | None = None,
    ):
        """Alias of pika's ``exchange_declare``; returns the ``DeclareOk`` frame."""
        with self._channel() as ch:
            return ch.exchange_declare(
                exchange=exchange,
                exchange_type=exchange_type,
                passive=passive,
                durable=durable,
                auto_delete=auto_delete,
                internal=internal,
                arguments=arguments,
            )

    def declare_queue(
        self,
        queue: str = "",
        passive: bool = False,
        durable: bool = False,
        exclusive: bool = False,
        auto_delete: bool = True,
        arguments: dict | None = None,
    ) -> QueueInfo:
        """Alias of pika's ``queue_declare``. An empty name lets the broker pick one."""
        with self._channel() as ch:
            frame = ch.queue_declare(
                queue=queue,
                passive=passive,
                durable=durable,
                exclusive=exclusive,
                auto_delete=auto_delete,
                arguments=arguments,
            )
        return QueueInfo(
            frame.method.queue, frame.method.message_count, frame.method.consumer_count
        )

    def bind_queue(
        self,
        queue: str,
        exchange: str,
        routing_key: str = "",
        arguments: dict | None = None,
    ):
        """Alias of pika's ``queue_bind``."""
        with self._channel() as ch:
            return ch.queue_bind(
                queue=queue,
                exchange=exchange,
                routing_key=routing_key,
                arguments=arguments,
            )

    # ---- inspection ----
    def count_messages(self, queue: str) -> int:
        with self._channel() as ch:
            frame = ch.queue_declare(queue=queue, passive=True)
        return frame.method.message_count

    def fetch_message(self, queue: str, auto_ack: bool = False) -> Message | None:
        """
        Take one message from ``queue`` without waiting.

        Returns ``None`` when the queue is empty. Unless ``auto_ack`` is set the
        message stays unacknowledged until ``Message.ack()`` is called or the
        harness is closed.
        """
        ch = self._hold_channel()
        method, properties, body = ch.basic_get(queue=queue, auto_ack=auto_ack)
        if method is None:
            self._release_channel(ch)
            logger.debug(f"[amqp] Queue '{queue}' is empty")
            return None
        msg = Message.from_get(ch, method, properties, body)
        if auto_ack:
            self._release_channel(ch)
        logger.debug(f"[amqp] Message from '{queue}': {msg.text}")
        return msg

    # ---- assertions ----
    def assert_message_count(self, queue: str, expected: int):
        count = self.count_messages(queue)
        if count != expected:
            pytest.fail(
                f"Expected {expected} message(s) in queue '{queue}', found {count}"
            )

    def assert_queue_empty(self, queue: str):
        count = self.count_messages(queue)
        if count != 0:
            pytest.fail(f"Queue '{queue}' is not empty: {count} message(s)")

    def assert_queue_not_empty(self, queue: str):
        if self.count_messages(queue) == 0:
            pytest.fail(f"Queue '{queue}' is empty")

    def assert_message_contains(self, queue: str, text: str | bytes) -> Message:
        """
        Fetch one message from ``queue`` and check that its body contains ``text``.

        The message is acknowledged before the check, so it is removed from the
        queue whether the assertion passes or not. Does not wait: an empty
        queue fails immediately.
        """
        msg = self.fetch_message(queue)
        if msg is None:
            pytest.fail(f"Message was not received from queue '{queue}'")
        msg.ack()
        self._release_channel(msg.channel)

        needle = text.encode() if isinstance(text, str) else text
        if needle not in msg.body:
            pytest.fail(
                f"Message from queue '{queue}' does not contain {text!r}: {msg.text!r}"
            )
        return msg

    # ---- cleanup ----
    def schedule_cleanup(self, queue: str):
        if queue not in self.queues:
            self.queues.append(queue)

    def purge_queue(self, queue: str) -> int:
        """Purge a queue registered for cleanup; returns the purged message count."""
        if queue not in self.queues:
            raise HarnessConfigError(f"'{queue}' doesn't exist in queues config list")
        with self._channel() as ch:
            frame = ch.queue_purge(queue=queue)
        return frame.method.message_count

    def purge_all_queues(self):
        self.cleanup()

    def cleanup(self):
        """Purge every registered queue, skipping ones the broker doesn't have."""
        if self.connection is None:
            return

        for queue in self.queues:
            try:
                with self._channel() as ch:
                    ch.queue_purge(queue=queue)
            except pika.exceptions.ChannelClosedByBroker as e:
                # ignore if queue doesn't exist and rethrow if it's something else
                if not is_not_found(e):
                    raise
                logger.debug(f"[amqp] Queue '{queue}' not found, skipping purge")

    # ---- channels ----
    def _ensure_queue(self, queue: str):
        try:
            with self._channel() as ch:
                ch.queue_declare(queue=queue, passive=True)
        except pika.exceptions.ChannelClosedByBroker as e:
            if not is_not_found(e):
                raise
            with self._channel() as ch:
                ch.queue_declare(queue=queue)
            logger.debug(f"[amqp] Declared queue '{queue}'")

    def _connection(self) -> pika.BlockingConnection:
        if self.connection is None:
            self.connect()
        return self.connection

    def _get_shared_channel(self):
        # the broker closes a channel on any channel-level error, e.g. a 404
        if self._shared_channel is None or not self._shared_channel.is_open:
            self._shared_channel = self._connection().channel()
        return self._shared_channel

    def _hold_channel(self):
        if self.config.single_channel:
            return self._get_shared_channel()
        ch = self._connection().channel()
        self._held_channels.append(ch)
        return ch

    def _release_channel(self, ch):
        if ch in self._held_channels:
            self._held_channels.remove(ch)
            if ch.is_open:
                ch.close()

    @contextmanager
    def _channel(self):
        if self.config.single_channel:
            yield self._get_shared_channel()
            return

        ch = self._connection().channel()
        try:
            yield ch
        finally:
            if ch.is_open:
                ch.close()
