"""Shared data type definitions (TransportConfig, MeasurementResult)."""

import json
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class TransportConfig:
    """
    HTTP/2 tuning applied identically to every connection, client or server.
    """
    stream_window: int
    connection_window: int
    max_frame_size: int


@dataclass(frozen=True)
class MeasurementResult:
    """
    Outcome of one measurement run. Derived, never persisted.
    """
    method: str
    protocol: str
    total_bytes: int
    elapsed_seconds: float
    throughput_bps: float

    @property
    def direction(self) -> str:
        return "download" if self.method == "GET" else "upload"

    def to_json(self) -> str:
        """Serialize to a JSON document."""
        return json.dumps(asdict(self))
