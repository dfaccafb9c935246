"""HTTP/1.1 measurement driver using aiohttp, the baseline for the h2 numbers."""

import ssl
import time
from typing import Optional

import aiohttp

from common.constants import CHUNK_SIZE_BYTES, OCTET_STREAM
from common.exceptions import MeasurementError
from common.logging_config import get_logger
from common.transfer import TransferGenerator, chunk_bytes
from common.types import MeasurementResult
from measure.throughput import build_result

logger = get_logger(__name__)

PROTOCOL = "http/1.1"


async def _upload_body(size: int):
    for chunk in TransferGenerator(size):
        yield chunk_bytes(chunk)


class Http1MeasurementDriver:
    """
    Times a single transfer against the HTTP/1.1 server with the same
    timing rules as the HTTP/2 driver.
    """

    def __init__(self, host: str, port: int, ssl_context: Optional[ssl.SSLContext] = None):
        self.host = host
        self.port = port
        self.ssl_context = ssl_context

    @property
    def base_url(self) -> str:
        scheme = "https" if self.ssl_context is not None else "http"
        return f"{scheme}://{self.host}:{self.port}"

    async def measure(self, method: str, size: int) -> MeasurementResult:
        """
        Run one measurement.

        Raises:
            MeasurementError: On connection failure or a non-success status
        """
        method = method.upper()
        if method not in ('GET', 'PUT'):
            raise MeasurementError(f"unsupported method {method}")

        connector = aiohttp.TCPConnector(limit=1, ssl=self.ssl_context if self.ssl_context is not None else False)
        timeout = aiohttp.ClientTimeout(total=None)
        try:
            async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
                await self._warm_up(session)
                if method == 'GET':
                    total, elapsed = await self._download(session, size)
                else:
                    total, elapsed = await self._upload(session, size)
        except aiohttp.ClientError as e:
            raise MeasurementError(f"{method} /{size} failed: {e}") from e

        result = build_result(method, PROTOCOL, total, elapsed)
        logger.info(
            f"{method} /{size} done: bytes={total} elapsed={elapsed:.6f}s "
            f"throughput={result.throughput_bps:.0f}bit/s proto={PROTOCOL}"
        )
        return result

    async def _warm_up(self, session: aiohttp.ClientSession) -> None:
        # Opens the pooled keep-alive connection (and TLS) outside the timed window.
        async with session.get(f"{self.base_url}/1") as resp:
            await resp.read()

    async def _download(self, session: aiohttp.ClientSession, size: int):
        start = time.perf_counter()
        async with session.get(f"{self.base_url}/{size}") as resp:
            if resp.status != 200:
                raise MeasurementError(f"GET /{size} returned status {resp.status}", status=resp.status)
            total = 0
            async for chunk in resp.content.iter_chunked(CHUNK_SIZE_BYTES):
                total += len(chunk)
        elapsed = time.perf_counter() - start

        if total != size:
            raise MeasurementError(f"GET /{size} delivered {total} bytes", status=resp.status)
        return total, elapsed

    async def _upload(self, session: aiohttp.ClientSession, size: int):
        headers = {"Content-Type": OCTET_STREAM, "Content-Length": str(size)}

        start = time.perf_counter()
        async with session.put(f"{self.base_url}/{size}", data=_upload_body(size), headers=headers) as resp:
            await resp.read()
            status = resp.status
        elapsed = time.perf_counter() - start

        if status != 204:
            raise MeasurementError(f"PUT /{size} returned status {status}", status=status)
        return size, elapsed
