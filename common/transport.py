"""Transport tuning: builds and applies the per-process HTTP/2 configuration."""

import logging

import h2.connection
import h2.exceptions
from h2.settings import SettingCodes

from common.constants import (
    DEFAULT_CONNECTION_WINDOW,
    DEFAULT_MAX_FRAME_SIZE,
    DEFAULT_STREAM_WINDOW,
)
from common.exceptions import ConfigurationError
from common.types import TransportConfig

logger = logging.getLogger(__name__)


def build_transport_config(
    stream_window: int = DEFAULT_STREAM_WINDOW,
    connection_window: int = DEFAULT_CONNECTION_WINDOW,
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
) -> TransportConfig:
    """
    Build the transport configuration shared by every connection.

    Only zero values are rejected here; range checks belong to h2 and
    surface when the configuration is applied to a connection.

    Args:
        stream_window: Initial per-stream flow-control window in bytes
        connection_window: Initial per-connection flow-control window in bytes
        max_frame_size: Largest frame payload we accept

    Returns:
        Immutable TransportConfig

    Raises:
        ConfigurationError: If any value is zero
    """
    for name, value in (
        ("stream_window", stream_window),
        ("connection_window", connection_window),
        ("max_frame_size", max_frame_size),
    ):
        if not value:
            raise ConfigurationError(f"{name} must not be zero")

    return TransportConfig(
        stream_window=stream_window,
        connection_window=connection_window,
        max_frame_size=max_frame_size,
    )


def apply_transport_config(conn: h2.connection.H2Connection, config: TransportConfig) -> None:
    """
    Advertise the configured windows and frame size on a fresh connection.

    Must be called right after ``initiate_connection()``. The stream window
    and frame size travel in a SETTINGS frame; the connection window can
    only grow through a WINDOW_UPDATE on stream 0.

    Raises:
        ConfigurationError: If h2 rejects one of the values
    """
    try:
        conn.update_settings({
            SettingCodes.INITIAL_WINDOW_SIZE: config.stream_window,
            SettingCodes.MAX_FRAME_SIZE: config.max_frame_size,
        })
        increment = config.connection_window - conn.inbound_flow_control_window
        if increment > 0:
            conn.increment_flow_control_window(increment)
    except (h2.exceptions.ProtocolError, ValueError) as e:
        raise ConfigurationError(f"transport configuration rejected: {e}") from e

    logger.debug(
        f"Applied transport config: stream_window={config.stream_window} "
        f"connection_window={config.connection_window} max_frame_size={config.max_frame_size}"
    )
