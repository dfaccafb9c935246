"""Unit tests for transport tuning."""

import h2.config
import h2.connection
import pytest
from h2.settings import SettingCodes

from common.constants import (
    DEFAULT_CONNECTION_WINDOW,
    DEFAULT_MAX_FRAME_SIZE,
    DEFAULT_STREAM_WINDOW,
)
from common.exceptions import ConfigurationError
from common.transport import apply_transport_config, build_transport_config
from common.types import TransportConfig


def _connection_pair():
    client = h2.connection.H2Connection(config=h2.config.H2Configuration(client_side=True))
    server = h2.connection.H2Connection(config=h2.config.H2Configuration(client_side=False))
    return client, server


def _exchange(sender, receiver):
    return receiver.receive_data(sender.data_to_send())


class TestBuildTransportConfig:
    """Test configuration construction."""

    def test_defaults(self):
        config = build_transport_config()

        assert config == TransportConfig(
            stream_window=DEFAULT_STREAM_WINDOW,
            connection_window=DEFAULT_CONNECTION_WINDOW,
            max_frame_size=DEFAULT_MAX_FRAME_SIZE,
        )

    @pytest.mark.parametrize("field", ["stream_window", "connection_window", "max_frame_size"])
    def test_zero_rejected(self, field):
        with pytest.raises(ConfigurationError):
            build_transport_config(**{field: 0})

    def test_out_of_range_values_pass_through(self):
        config = build_transport_config(max_frame_size=1 << 30)
        assert config.max_frame_size == 1 << 30

    def test_config_is_immutable(self):
        config = build_transport_config()
        with pytest.raises(AttributeError):
            config.stream_window = 1


class TestApplyTransportConfig:
    """Test that the configuration reaches the peer."""

    def test_settings_and_window_reach_peer(self):
        config = build_transport_config()
        client, server = _connection_pair()

        client.initiate_connection()
        apply_transport_config(client, config)
        server.initiate_connection()
        apply_transport_config(server, config)

        _exchange(client, server)
        _exchange(server, client)
        _exchange(client, server)

        assert server.remote_settings[SettingCodes.INITIAL_WINDOW_SIZE] == DEFAULT_STREAM_WINDOW
        assert server.remote_settings[SettingCodes.MAX_FRAME_SIZE] == DEFAULT_MAX_FRAME_SIZE
        assert server.max_outbound_frame_size == DEFAULT_MAX_FRAME_SIZE
        assert server.outbound_flow_control_window == DEFAULT_CONNECTION_WINDOW
        assert client.outbound_flow_control_window == DEFAULT_CONNECTION_WINDOW

    def test_invalid_frame_size_rejected(self):
        client, _ = _connection_pair()
        client.initiate_connection()

        with pytest.raises(ConfigurationError):
            apply_transport_config(client, build_transport_config(max_frame_size=1 << 30))

    def test_invalid_window_rejected(self):
        client, _ = _connection_pair()
        client.initiate_connection()

        with pytest.raises(ConfigurationError):
            apply_transport_config(client, build_transport_config(stream_window=1 << 31))
