# adapters/broker.py
import logging
import ssl

import pika
import pika.exceptions

from amqpharness.config import HarnessConfig
from amqpharness.errors import HarnessConfigError

logger = logging.getLogger(__name__)


def build_ssl_context(config: HarnessConfig) -> ssl.SSLContext:
    """
    SSL context for ``amqps`` connections.

    With ``verify_peer`` off the broker certificate is not checked at all;
    with ``verify_peer_name`` off only the hostname check is skipped.
    """
    opts = config.ssl
    context = ssl.create_default_context(cafile=opts.cafile, capath=opts.capath)

    # Client certs for mTLS if provided
    if opts.certfile:
        context.load_cert_chain(opts.certfile, opts.keyfile)

    if not opts.verify_peer:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    else:
        context.check_hostname = opts.verify_peer_name
        context.verify_mode = ssl.CERT_REQUIRED
    return context


def build_parameters(config: HarnessConfig) -> pika.connection.Parameters:
    if config.url:
        params = pika.URLParameters(config.url)
    else:
        params = pika.ConnectionParameters(
            host=config.host,
            port=config.port,
            virtual_host=config.vhost,
            credentials=pika.PlainCredentials(config.username, config.password),
        )

    params.connection_attempts = config.connection_attempts
    params.retry_delay = config.retry_delay
    if config.heartbeat is not None:
        params.heartbeat = config.heartbeat
    if config.blocked_connection_timeout is not None:
        params.blocked_connection_timeout = config.blocked_connection_timeout

    if config.ssl_enabled:
        params.ssl_options = pika.SSLOptions(
            build_ssl_context(config), server_hostname=params.host
        )
    return params


def connect(config: HarnessConfig) -> pika.BlockingConnection:
    """Open a blocking connection, reporting any failure as a config error."""
    try:
        params = build_parameters(config)
        conn = pika.BlockingConnection(params)
    except (pika.exceptions.AMQPError, OSError, ValueError) as e:
        logger.error(f"Cannot connect to AMQP broker at {config.address}: {e}")
        raise HarnessConfigError(
            f"{e!r} while establishing connection to AMQP broker at {config.address}"
        ) from e
    logger.info(f"Connected to AMQP broker at {config.address}")
    return conn
