from dataclasses import dataclass
from typing import Any

import pika


@dataclass
class Message:
    """
    A message body plus its AMQP envelope.

    Build one directly to publish with custom properties, or receive one from
    ``AMQPHarness.fetch_message``; fetched messages remember the channel they
    came from so they can be acknowledged.
    """

    body: bytes
    properties: pika.BasicProperties | None = None
    exchange: str | None = None
    routing_key: str | None = None
    delivery_tag: int | None = None
    redelivered: bool = False
    message_count: int | None = None
    channel: Any = None

    def __post_init__(self):
        if isinstance(self.body, str):
            self.body = self.body.encode()

    @classmethod
    def from_get(cls, channel, method, properties, body) -> "Message":
        """Wrap the ``(method, properties, body)`` triple of ``basic_get``."""
        return cls(
            body=body,
            properties=properties,
            exchange=method.exchange,
            routing_key=method.routing_key,
            delivery_tag=method.delivery_tag,
            redelivered=method.redelivered,
            message_count=method.message_count,
            channel=channel,
        )

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def headers(self) -> dict:
        if self.properties is None:
            return {}
        return self.properties.headers or {}

    def ack(self):
        self._require_delivery().basic_ack(delivery_tag=self.delivery_tag)

    def nack(self, requeue: bool = True):
        self._require_delivery().basic_nack(
            delivery_tag=self.delivery_tag, requeue=requeue
        )

    def reject(self, requeue: bool = True):
        self._require_delivery().basic_reject(
            delivery_tag=self.delivery_tag, requeue=requeue
        )

    def _require_delivery(self):
        if self.channel is None or self.delivery_tag is None:
            raise RuntimeError("Message was not fetched from a queue")
        return self.channel


def to_message(message: "str | bytes | Message", properties=None) -> Message:
    if isinstance(message, Message):
        if properties is not None:
            message.properties = properties
        return message
    return Message(body=message, properties=properties)
