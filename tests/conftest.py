from unittest.mock import Mock, patch

import pytest

from amqpharness.config import HarnessConfig
from amqpharness.harness import AMQPHarness


def declare_ok(queue="test_queue", message_count=0, consumer_count=0):
    """Mock the frame returned by ``queue_declare``."""
    return Mock(
        method=Mock(
            queue=queue, message_count=message_count, consumer_count=consumer_count
        )
    )


def get_ok(body=b"hello", delivery_tag=1, routing_key="test_queue", message_count=0):
    """Mock the ``(method, properties, body)`` triple returned by ``basic_get``."""
    method = Mock(
        exchange="",
        routing_key=routing_key,
        delivery_tag=delivery_tag,
        redelivered=False,
        message_count=message_count,
    )
    return method, Mock(headers={"x-test": "1"}), body


@pytest.fixture
def mock_channel():
    """Mock RabbitMQ channel"""
    channel = Mock()
    channel.is_open = True
    channel.queue_declare.return_value = declare_ok()
    channel.queue_purge.return_value = Mock(method=Mock(message_count=0))
    channel.basic_get.return_value = (None, None, None)
    return channel


@pytest.fixture
def mock_connection(mock_channel):
    """Mock RabbitMQ connection"""
    connection = Mock()
    connection.is_open = True
    connection.channel.return_value = mock_channel
    return connection


@pytest.fixture
def config():
    return HarnessConfig(queues=("queue1",), cleanup=False)


@pytest.fixture
def harness(config, mock_connection):
    """Create AMQPHarness with mocked connection"""
    with patch("pika.BlockingConnection", return_value=mock_connection):
        yield AMQPHarness(config).connect()
