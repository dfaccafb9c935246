"""Connection acceptor: one task per TCP connection, optional TLS, then HTTP/2."""

import asyncio
import logging
import ssl
from typing import Optional, Set

from common.constants import ALPN_H2
from common.exceptions import ConfigurationError, HandshakeError, ProtocolError
from common.h2_endpoint import H2Endpoint, RequestCallback
from common.types import TransportConfig

logger = logging.getLogger(__name__)


class ConnectionAcceptor:
    """
    Accepts connections and serves each one end-to-end in its own task.

    A failure on one connection (handshake, protocol) is logged and only
    tears down that connection.
    """

    def __init__(
        self,
        handler: RequestCallback,
        transport_config: TransportConfig,
        ssl_context: Optional[ssl.SSLContext] = None
    ):
        self.handler = handler
        self.transport_config = transport_config
        self.ssl_context = ssl_context
        self._server: Optional[asyncio.AbstractServer] = None
        self._connections: Set[asyncio.Task] = set()

    @property
    def port(self) -> int:
        """Port of the first listening socket."""
        return self._server.sockets[0].getsockname()[1]

    async def start(self, host: str, port: int) -> None:
        """
        Bind the listening socket.

        Raises:
            ConfigurationError: If the address cannot be bound
        """
        try:
            self._server = await asyncio.start_server(self._handle_connection, host, port)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"cannot listen on {host}:{port}: {e}") from e

        scheme = "h2" if self.ssl_context is not None else "h2c"
        for sock in self._server.sockets:
            logger.info(f"Serving {scheme} at {sock.getsockname()}")

    async def serve_forever(self) -> None:
        await self._server.serve_forever()

    async def stop(self) -> None:
        """Stop accepting, tear down open connections and close the listening sockets."""
        if self._server is None:
            return
        self._server.close()
        for task in self._connections:
            task.cancel()
        if self._connections:
            await asyncio.gather(*self._connections, return_exceptions=True)
        await self._server.wait_closed()
        logger.info("Acceptor stopped")

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info('peername')
        logger.info(f"Connection from {peer}")
        task = asyncio.current_task()
        self._connections.add(task)
        try:
            if self.ssl_context is not None:
                await self._handshake(writer, peer)
            endpoint = H2Endpoint(
                reader,
                writer,
                self.transport_config,
                client_side=False,
                request_callback=self.handler
            )
            await endpoint.open()
            await endpoint.run()
        except HandshakeError as e:
            logger.warning(str(e))
        except (ProtocolError, ConfigurationError) as e:
            logger.warning(f"Connection from {peer} failed: {e}")
        finally:
            self._connections.discard(task)
            writer.close()
            logger.info(f"Connection from {peer} closed")

    async def _handshake(self, writer: asyncio.StreamWriter, peer) -> None:
        try:
            await writer.start_tls(self.ssl_context)
        except (ssl.SSLError, ConnectionError, OSError) as e:
            raise HandshakeError(f"TLS handshake with {peer} failed: {e}") from e

        ssl_object = writer.get_extra_info('ssl_object')
        alpn = ssl_object.selected_alpn_protocol() if ssl_object is not None else None
        if alpn is not None and alpn != ALPN_H2:
            raise HandshakeError(f"peer {peer} negotiated unsupported protocol {alpn!r}")
