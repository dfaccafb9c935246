"""Synthetic payload generation and consumption for throughput transfers.

All chunks are views into one process-wide zero-filled buffer, so producing
a chunk never allocates or copies payload bytes and the buffer can be shared
by every concurrent transfer without locking.
"""

from typing import AsyncIterable, Iterator

from common.constants import CHUNK_SIZE_BYTES
from common.exceptions import RequestValidationError, ShortTransferError

_ZERO_BUFFER = bytes(CHUNK_SIZE_BYTES)
_ZERO_VIEW = memoryview(_ZERO_BUFFER)


def validate_transfer_size(size: int) -> int:
    """
    Check that a transfer size is usable.

    Args:
        size: Requested byte count

    Returns:
        The same size

    Raises:
        RequestValidationError: If size is zero or negative
    """
    if size <= 0:
        raise RequestValidationError(f"transfer size must be positive, got {size}")
    return size


def next_chunk(remaining: int) -> memoryview:
    """
    Return a read-only zero chunk of ``min(remaining, CHUNK_SIZE_BYTES)`` bytes.

    Args:
        remaining: Bytes still to be produced

    Returns:
        memoryview over the shared zero buffer
    """
    return _ZERO_VIEW[:min(remaining, CHUNK_SIZE_BYTES)]


def chunk_bytes(chunk) -> bytes:
    """bytes for a chunk; full-size chunks return the shared buffer without copying."""
    if len(chunk) == CHUNK_SIZE_BYTES:
        return _ZERO_BUFFER
    return bytes(chunk)


class TransferGenerator:
    """
    Lazy, finite, single-use sequence of chunks summing to ``requested`` bytes.

    Callers pull the next chunk only when the transport can take it, so
    production never runs ahead of what the network absorbs.
    """

    def __init__(self, requested: int):
        self.requested = requested
        self.sent = 0

    def __iter__(self) -> Iterator[memoryview]:
        return self

    def __next__(self) -> memoryview:
        if self.sent >= self.requested:
            raise StopIteration
        chunk = next_chunk(self.requested - self.sent)
        self.sent += len(chunk)
        return chunk

    @property
    def done(self) -> bool:
        return self.sent == self.requested


class TransferSink:
    """
    Counts an inbound byte stream against ``requested`` and discards content.
    """

    def __init__(self, requested: int):
        self.requested = requested
        self.received = 0

    @property
    def complete(self) -> bool:
        return self.received >= self.requested

    def consume(self, chunk) -> bool:
        """
        Account for one received chunk.

        Bytes past ``requested`` inside the same chunk are counted but
        otherwise ignored.

        Returns:
            True once the requested byte count has been reached
        """
        self.received += len(chunk)
        return self.complete

    async def drain(self, chunks: AsyncIterable) -> int:
        """
        Consume chunks until the requested byte count is reached.

        Stops pulling as soon as the count is reached, without waiting for
        the stream to end.

        Args:
            chunks: Async iterable of bytes-like chunks

        Returns:
            Number of bytes received

        Raises:
            ShortTransferError: If the stream ends or fails early
        """
        if self.complete:
            return self.received

        try:
            async for chunk in chunks:
                if self.consume(chunk):
                    return self.received
        except Exception as e:
            raise ShortTransferError(self.requested, self.received) from e

        raise ShortTransferError(self.requested, self.received)
