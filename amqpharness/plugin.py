"""
pytest plugin exposing an ``AMQPHarness`` as fixtures.

Settings resolve in order: command line (``--amqp-host``), ini file
(``amqp_host``), environment (``AMQP_HOST``), built-in default.

    [pytest]
    amqp_host = localhost
    amqp_queues =
        mail
        twitter
    amqp_single_channel = false

    def test_mail_is_sent(amqp):
        amqp.publish_to_queue("mail", "Hello, davert")
        amqp.assert_message_contains("mail", "davert")
"""
import logging

import pytest

from .config import HarnessConfig, env_settings
from .errors import HarnessConfigError
from .harness import AMQPHarness

logger = logging.getLogger(__name__)

OPTIONS = {
    "host": "broker host to connect to",
    "port": "broker port",
    "username": "username to connect with",
    "password": "password to connect with",
    "vhost": "virtual host to connect to",
    "url": "amqp:// or amqps:// URL, replaces host/port/credentials/vhost",
    "queues": "queues to purge before each test (comma separated)",
    "cleanup": "purge the configured queues before each test (true/false)",
    "single_channel": "use one shared channel for the whole session (true/false)",
    "ssl_enabled": "connect over TLS (true/false)",
    "ssl_capath": "directory of CA certificates",
    "ssl_cafile": "CA bundle file",
    "ssl_verify_peer": "verify the broker certificate (true/false)",
    "ssl_verify_peer_name": "verify the broker hostname (true/false)",
    "ssl_certfile": "client certificate for mutual TLS",
    "ssl_keyfile": "client private key for mutual TLS",
}


def pytest_addoption(parser):
    group = parser.getgroup("amqp", "AMQP broker harness")
    for name, help_text in OPTIONS.items():
        group.addoption(
            f"--amqp-{name.replace('_', '-')}",
            dest=f"amqp_{name}",
            default=None,
            help=help_text,
        )
        parser.addini(
            f"amqp_{name}",
            help=help_text,
            type="linelist" if name == "queues" else None,
        )


def load_config(pytestconfig) -> HarnessConfig:
    settings: dict = env_settings()
    for name in OPTIONS:
        ini_value = pytestconfig.getini(f"amqp_{name}")
        if ini_value:
            settings[name] = ini_value
        cli_value = pytestconfig.getoption(f"amqp_{name}")
        if cli_value is not None:
            settings[name] = cli_value
    return HarnessConfig.from_mapping(settings)


def pytest_report_header(config):
    try:
        return f"amqp: {load_config(config).address}"
    except HarnessConfigError as e:
        return f"amqp: invalid configuration ({e})"


@pytest.fixture(scope="session")
def amqp_config(pytestconfig) -> HarnessConfig:
    return load_config(pytestconfig)


@pytest.fixture(scope="session")
def amqp_harness(amqp_config):
    """Connected harness shared by the whole session."""
    harness = AMQPHarness(amqp_config).connect()
    yield harness
    harness.close()


@pytest.fixture
def amqp(amqp_harness):
    """The session harness, with registered queues purged first when cleanup is on."""
    if amqp_harness.config.cleanup:
        logger.debug(f"[amqp] Purging {len(amqp_harness.queues)} queue(s) before test")
        amqp_harness.cleanup()
    yield amqp_harness
