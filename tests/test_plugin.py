"""Tests for the pytest plugin: option resolution and fixtures"""
import pytest

from amqpharness.config import setting_names


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in setting_names():
        monkeypatch.delenv(f"AMQP_{name.upper()}", raising=False)


MOCK_HARNESS_CONFTEST = """
    from unittest.mock import Mock

    import pytest

    from amqpharness.harness import AMQPHarness


    @pytest.fixture(scope="session")
    def amqp_harness(amqp_config):
        harness = Mock(spec=AMQPHarness)
        harness.config = amqp_config
        harness.queues = list(amqp_config.queues)
        return harness
"""


class TestOptions:
    """Test how settings are resolved"""

    def test_defaults(self, pytester):
        pytester.makepyfile("""
            def test_config(amqp_config):
                assert amqp_config.host == "localhost"
                assert amqp_config.port == 5672
                assert amqp_config.queues == ()
                assert amqp_config.cleanup is True
        """)

        result = pytester.runpytest()

        result.assert_outcomes(passed=1)

    def test_command_line(self, pytester):
        pytester.makepyfile("""
            def test_config(amqp_config):
                assert amqp_config.host == "broker.test"
                assert amqp_config.port == 5673
                assert amqp_config.queues == ("mail", "twitter")
                assert amqp_config.single_channel is True
                assert amqp_config.ssl.verify_peer is False
        """)

        result = pytester.runpytest(
            "--amqp-host=broker.test",
            "--amqp-port=5673",
            "--amqp-queues=mail,twitter",
            "--amqp-single-channel=true",
            "--amqp-ssl-verify-peer=false",
        )

        result.assert_outcomes(passed=1)

    def test_ini(self, pytester):
        pytester.makeini("""
            [pytest]
            amqp_vhost = /tests
            amqp_cleanup = false
            amqp_queues =
                queue1
                queue2
        """)
        pytester.makepyfile("""
            def test_config(amqp_config):
                assert amqp_config.vhost == "/tests"
                assert amqp_config.cleanup is False
                assert amqp_config.queues == ("queue1", "queue2")
        """)

        result = pytester.runpytest()

        result.assert_outcomes(passed=1)

    def test_precedence(self, pytester, monkeypatch):
        monkeypatch.setenv("AMQP_HOST", "from-env")
        monkeypatch.setenv("AMQP_USERNAME", "env-user")
        monkeypatch.setenv("AMQP_PASSWORD", "env-pass")
        pytester.makeini("""
            [pytest]
            amqp_host = from-ini
            amqp_username = ini-user
        """)
        pytester.makepyfile("""
            def test_config(amqp_config):
                assert amqp_config.host == "from-cli"
                assert amqp_config.username == "ini-user"
                assert amqp_config.password == "env-pass"
        """)

        result = pytester.runpytest("--amqp-host=from-cli")

        result.assert_outcomes(passed=1)

    def test_report_header(self, pytester):
        pytester.makepyfile("def test_nothing(): pass")

        result = pytester.runpytest("--amqp-host=rabbit", "--amqp-port=5671")

        result.stdout.fnmatch_lines(["amqp: rabbit:5671/"])

    def test_invalid_setting_fails_fixture(self, pytester):
        pytester.makepyfile("""
            def test_config(amqp_config):
                pass
        """)

        result = pytester.runpytest("--amqp-port=not-a-port")

        result.assert_outcomes(errors=1)
        result.stdout.fnmatch_lines(["*'port' must be an integer*"])


class TestFixtures:
    """Test the per-test cleanup hook"""

    def test_amqp_purges_before_each_test(self, pytester):
        pytester.makeconftest(MOCK_HARNESS_CONFTEST)
        pytester.makepyfile("""
            def test_first(amqp):
                assert amqp.cleanup.call_count == 1

            def test_second(amqp):
                assert amqp.cleanup.call_count == 2
        """)

        result = pytester.runpytest("--amqp-queues=queue1")

        result.assert_outcomes(passed=2)

    def test_amqp_without_cleanup(self, pytester):
        pytester.makeconftest(MOCK_HARNESS_CONFTEST)
        pytester.makepyfile("""
            def test_no_purge(amqp):
                amqp.cleanup.assert_not_called()
        """)

        result = pytester.runpytest("--amqp-cleanup=false")

        result.assert_outcomes(passed=1)

    def test_unreachable_broker_errors(self, pytester):
        pytester.makepyfile("""
            def test_needs_broker(amqp):
                pass
        """)

        result = pytester.runpytest("--amqp-host=127.0.0.1", "--amqp-port=1")

        result.assert_outcomes(errors=1)
        result.stdout.fnmatch_lines(["*HarnessConfigError*"])
