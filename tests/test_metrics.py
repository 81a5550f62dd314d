"""
Unit tests for the metrics abstraction layer.

Covers the no-op client, the Telegraf wrapper (delegation, name prefixing, close errors)
and backend selection through the factory.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from social.graze.connect.app.metrics import (
    MetricsClient,
    NoOpMetricsClient,
    TelegrafCompatibilityClient,
    create_metrics_client,
)


class TestMetricsClientInterface:
    def test_interface_is_abstract(self):
        """MetricsClient should be abstract and not instantiable."""
        with pytest.raises(TypeError):
            MetricsClient()


class TestNoOpMetricsClient:
    @pytest.fixture
    def noop_client(self):
        return NoOpMetricsClient()

    def test_noop_accepts_everything(self, noop_client):
        noop_client.increment("test.counter", 1, {"tag": "value"})
        noop_client.increment("test.counter")
        noop_client.gauge("test.gauge", 42.5, {"tag": "value"})
        noop_client.timer("test.timer", 0.001)

    async def test_noop_connect_and_close(self, noop_client):
        await noop_client.connect()
        await noop_client.close()


class TestTelegrafCompatibilityClient:
    @pytest.fixture
    def mock_telegraf_client(self):
        """A stand-in for TelegrafStatsdClient."""
        mock = Mock()
        mock.connect = AsyncMock()
        mock.close = AsyncMock()
        return mock

    def test_increment_delegates(self, mock_telegraf_client):
        client = TelegrafCompatibilityClient(mock_telegraf_client)
        client.increment("authorization.begin", 3, {"provider": "twitter"})

        mock_telegraf_client.increment.assert_called_once_with(
            "authorization.begin", 3, tag_dict={"provider": "twitter"}
        )

    def test_missing_tags_become_empty_dict(self, mock_telegraf_client):
        client = TelegrafCompatibilityClient(mock_telegraf_client)
        client.increment("token.request")

        mock_telegraf_client.increment.assert_called_once_with(
            "token.request", 1, tag_dict={}
        )

    def test_prefix_is_joined_with_a_dot(self, mock_telegraf_client):
        client = TelegrafCompatibilityClient(mock_telegraf_client, prefix="connect")
        client.gauge("health.pressure", 4.0)
        client.timer("provider.request.time", 0.25, {"operation": "refresh"})

        mock_telegraf_client.gauge.assert_called_once_with(
            "connect.health.pressure", 4.0, tag_dict={}
        )
        mock_telegraf_client.timer.assert_called_once_with(
            "connect.provider.request.time", 0.25, tag_dict={"operation": "refresh"}
        )

    async def test_connect_and_close_delegate(self, mock_telegraf_client):
        client = TelegrafCompatibilityClient(mock_telegraf_client)
        await client.connect()
        await client.close()

        mock_telegraf_client.connect.assert_awaited_once()
        mock_telegraf_client.close.assert_awaited_once()

    async def test_close_errors_are_logged_not_raised(self, mock_telegraf_client):
        mock_telegraf_client.close.side_effect = OSError("socket gone")
        client = TelegrafCompatibilityClient(mock_telegraf_client)

        await client.close()


class TestCreateMetricsClient:
    def test_none_backend(self):
        assert isinstance(create_metrics_client("none"), NoOpMetricsClient)

    def test_backend_name_is_case_insensitive(self):
        assert isinstance(create_metrics_client("NONE"), NoOpMetricsClient)

    def test_telegraf_wraps_given_client(self):
        telegraf_client = Mock()
        client = create_metrics_client(
            "telegraf", prefix="connect", telegraf_client=telegraf_client
        )

        assert isinstance(client, TelegrafCompatibilityClient)
        assert client.client is telegraf_client
        assert client.prefix == "connect"

    async def test_telegraf_builds_client(self):
        client = create_metrics_client("telegraf", host="localhost", port=8125)
        assert isinstance(client, TelegrafCompatibilityClient)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Invalid metrics backend"):
            create_metrics_client("prometheus")
