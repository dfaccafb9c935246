"""Exception taxonomy shared by the server and the measurement client."""

from typing import Optional


class PerfException(Exception):
    """
    Base exception class for all h2perf errors.
    """
    pass


class ConfigurationError(PerfException):
    """
    Raised at startup for unusable TLS material, addresses or transport knobs.
    """
    pass


class HandshakeError(PerfException):
    """
    Raised when the TLS handshake with a single peer fails.
    """
    pass


class ProtocolError(PerfException):
    """
    Raised when the transport fails in the middle of a connection.
    """
    pass


class StreamResetError(ProtocolError):
    """
    Raised when the peer resets a single stream.
    """

    def __init__(self, stream_id: int, error_code: int):
        super().__init__(f"stream {stream_id} reset by peer (error_code={error_code})")
        self.stream_id = stream_id
        self.error_code = error_code


class ConnectionClosedError(ProtocolError):
    """
    Raised when the connection goes away (EOF, socket error or GOAWAY).
    """
    pass


class RequestValidationError(PerfException):
    """
    Raised when a request carries a zero or unparseable transfer size.
    """
    pass


class ShortTransferError(PerfException):
    """
    Raised when an upload ends before the requested number of bytes arrived.
    """

    def __init__(self, requested: int, received: int):
        super().__init__(f"short transfer: expected {requested} bytes, received {received}")
        self.requested = requested
        self.received = received


class MeasurementError(PerfException):
    """
    Raised when a measurement run fails; no throughput figure is produced.
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
