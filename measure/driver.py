"""HTTP/2 measurement driver: one timed download or upload over a tuned connection."""

import asyncio
import logging
import ssl
import time
from typing import Optional

from common.exceptions import MeasurementError, ProtocolError
from common.h2_endpoint import H2Endpoint
from common.transfer import TransferGenerator
from common.types import MeasurementResult, TransportConfig
from measure.throughput import build_result

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ('GET', 'PUT')


class MeasurementDriver:
    """
    Times a single transfer against an h2/h2c server.

    Connection setup, the TLS handshake and the SETTINGS exchange all happen
    before the start timestamp; everything after it, including time spent
    blocked on flow control, counts towards the measurement.
    """

    def __init__(
        self,
        host: str,
        port: int,
        transport_config: TransportConfig,
        ssl_context: Optional[ssl.SSLContext] = None
    ):
        self.host = host
        self.port = port
        self.transport_config = transport_config
        self.ssl_context = ssl_context

    @property
    def protocol(self) -> str:
        return "h2" if self.ssl_context is not None else "h2c"

    @property
    def scheme(self) -> str:
        return "https" if self.ssl_context is not None else "http"

    async def measure(self, method: str, size: int) -> MeasurementResult:
        """
        Run one measurement.

        Args:
            method: 'GET' for a download, 'PUT' for an upload
            size: Number of bytes to transfer

        Returns:
            MeasurementResult for the timed window

        Raises:
            MeasurementError: On connection failure, stream error or a
                non-success status
        """
        method = method.upper()
        if method not in SUPPORTED_METHODS:
            raise MeasurementError(f"unsupported method {method}")

        endpoint = await self._connect()
        try:
            if method == 'GET':
                total, elapsed = await self._download(endpoint, size)
            else:
                total, elapsed = await self._upload(endpoint, size)
        except ProtocolError as e:
            raise MeasurementError(f"{method} /{size} failed: {e}") from e
        finally:
            await endpoint.close()

        result = build_result(method, self.protocol, total, elapsed)
        logger.info(
            f"{method} /{size} done: bytes={total} elapsed={elapsed:.6f}s "
            f"throughput={result.throughput_bps:.0f}bit/s proto={self.protocol}"
        )
        return result

    async def _connect(self) -> H2Endpoint:
        server_hostname = self.host if self.ssl_context is not None else None
        try:
            reader, writer = await asyncio.open_connection(
                self.host,
                self.port,
                ssl=self.ssl_context,
                server_hostname=server_hostname
            )
        except (ssl.SSLError, ConnectionError, OSError) as e:
            raise MeasurementError(f"cannot connect to {self.host}:{self.port}: {e}") from e

        endpoint = H2Endpoint(reader, writer, self.transport_config, client_side=True)
        try:
            await endpoint.open()
            endpoint.start()
            await endpoint.wait_ready()
        except ProtocolError as e:
            await endpoint.close()
            raise MeasurementError(f"HTTP/2 setup with {self.host}:{self.port} failed: {e}") from e

        logger.debug(f"Connected to {self.host}:{self.port} ({self.protocol})")
        return endpoint

    def _request_headers(self, method: str, size: int):
        headers = [
            (':method', method),
            (':scheme', self.scheme),
            (':authority', f"{self.host}:{self.port}"),
            (':path', f"/{size}"),
        ]
        if method == 'PUT':
            headers.append(('content-length', str(size)))
        return headers

    async def _download(self, endpoint: H2Endpoint, size: int):
        headers = self._request_headers('GET', size)

        start = time.perf_counter()
        stream_id = await endpoint.send_request(headers, end_stream=True)
        response = await endpoint.receive_headers(stream_id)
        status = int(response.get(':status', 0))
        if status != 200:
            endpoint.release(stream_id)
            raise MeasurementError(f"GET /{size} returned status {status}", status=status)

        total = 0
        async for chunk in endpoint.receive_body(stream_id):
            total += len(chunk)
        elapsed = time.perf_counter() - start
        endpoint.release(stream_id)

        if total != size:
            raise MeasurementError(f"GET /{size} delivered {total} bytes", status=status)
        return total, elapsed

    async def _upload(self, endpoint: H2Endpoint, size: int):
        headers = self._request_headers('PUT', size)

        start = time.perf_counter()
        stream_id = await endpoint.send_request(headers)
        sent = await endpoint.send_body(stream_id, TransferGenerator(size))
        response = await endpoint.receive_headers(stream_id)
        elapsed = time.perf_counter() - start
        endpoint.release(stream_id)

        status = int(response.get(':status', 0))
        if status != 204:
            raise MeasurementError(f"PUT /{size} returned status {status}", status=status)
        return sent, elapsed
