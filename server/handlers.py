"""HTTP/2 request handling: downloads from the generator, uploads into the sink."""

import logging
from typing import Dict

import h2.errors

from common.constants import OCTET_STREAM
from common.exceptions import RequestValidationError, ShortTransferError
from common.h2_endpoint import H2Endpoint
from common.transfer import TransferGenerator, TransferSink, validate_transfer_size

logger = logging.getLogger(__name__)


def parse_transfer_size(target: str) -> int:
    """
    Extract the transfer size from a request target such as ``/1073741824``.

    Args:
        target: Request path, optionally followed by a query string

    Returns:
        Positive byte count

    Raises:
        RequestValidationError: If the target is not a single positive integer segment
    """
    path = target.split('?', 1)[0]
    segment = path[1:] if path.startswith('/') else ''
    if not segment or not (segment.isascii() and segment.isdigit()):
        raise RequestValidationError(f"invalid transfer size in target {target!r}")
    return validate_transfer_size(int(segment))


class RequestHandler:
    """
    Serves one request stream: GET downloads ``size`` zero bytes, PUT uploads them.
    """

    def __init__(self, protocol: str = "h2"):
        """
        Args:
            protocol: Protocol label used in logs ('h2' or 'h2c')
        """
        self.protocol = protocol

    async def __call__(self, endpoint: H2Endpoint, stream_id: int, headers: Dict[str, str]) -> None:
        method = headers.get(':method', '')
        target = headers.get(':path', '')

        if method not in ('GET', 'PUT'):
            logger.info(f"Rejected method {method} {target} on stream {stream_id}")
            await endpoint.send_response(
                stream_id, 405, [('allow', 'GET, PUT'), ('content-length', '0')], end_stream=True
            )
            return

        try:
            size = parse_transfer_size(target)
        except RequestValidationError as e:
            logger.info(f"Rejected {method} {target} on stream {stream_id}: {e}")
            await endpoint.send_response(stream_id, 400, [('content-length', '0')], end_stream=True)
            return

        logger.info(f"{method} size={size} proto={self.protocol} stream={stream_id}")
        if method == 'GET':
            await self.handle_download(endpoint, stream_id, size)
        else:
            await self.handle_upload(endpoint, stream_id, size)

    async def handle_download(self, endpoint: H2Endpoint, stream_id: int, size: int) -> None:
        """Respond 200 with exactly ``size`` zero bytes."""
        await endpoint.send_response(
            stream_id,
            200,
            [('content-type', OCTET_STREAM), ('content-length', str(size))]
        )
        sent = await endpoint.send_body(stream_id, TransferGenerator(size))
        logger.debug(f"GET stream={stream_id} sent {sent} bytes")

    async def handle_upload(self, endpoint: H2Endpoint, stream_id: int, size: int) -> None:
        """
        Count ``size`` bytes of request body, then respond 204.

        A body that ends early never gets a success status: the stream is
        reset instead.
        """
        sink = TransferSink(size)
        try:
            received = await sink.drain(endpoint.receive_body(stream_id))
        except ShortTransferError as e:
            logger.warning(f"PUT stream={stream_id} aborted: {e}")
            endpoint.reset_stream(stream_id, h2.errors.ErrorCodes.PROTOCOL_ERROR)
            return

        logger.debug(f"PUT stream={stream_id} received {received} bytes")
        await endpoint.send_response(stream_id, 204, end_stream=True)
