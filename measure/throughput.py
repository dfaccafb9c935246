"""Throughput arithmetic and human-readable formatting."""

from common.exceptions import MeasurementError
from common.types import MeasurementResult


def compute_throughput(total_bytes: int, elapsed_seconds: float) -> float:
    """
    Compute bits per second for a finished transfer.

    Args:
        total_bytes: Bytes moved inside the timed window
        elapsed_seconds: Length of the timed window

    Returns:
        Throughput in bits per second

    Raises:
        MeasurementError: If elapsed_seconds is not positive
    """
    if elapsed_seconds <= 0:
        raise MeasurementError(f"elapsed time must be positive, got {elapsed_seconds}")
    return total_bytes * 8 / elapsed_seconds


def build_result(method: str, protocol: str, total_bytes: int, elapsed_seconds: float) -> MeasurementResult:
    return MeasurementResult(
        method=method,
        protocol=protocol,
        total_bytes=total_bytes,
        elapsed_seconds=elapsed_seconds,
        throughput_bps=compute_throughput(total_bytes, elapsed_seconds),
    )


def format_bit_rate(bits_per_second: float) -> str:
    """
    Format a bit rate with decimal (1000-based) units.

    Args:
        bits_per_second: Rate in bit/s

    Returns:
        Formatted string (e.g., "12.5 Gbit/s", "640 bit/s")
    """
    if bits_per_second < 1000:
        return f"{bits_per_second:.0f} bit/s"

    units = ['kbit/s', 'Mbit/s']
    rate = bits_per_second / 1000.0

    for unit in units:
        if rate < 1000.0:
            return f"{rate:.1f} {unit}"
        rate /= 1000.0

    return f"{rate:.1f} Gbit/s"


def format_summary(result: MeasurementResult) -> str:
    """Render the one-line report, e.g. ``download: bytes=4096 elapsed=1.2ms speed=27.3 Mbit/s``."""
    elapsed_ms = result.elapsed_seconds * 1000
    return (
        f"{result.direction}: bytes={result.total_bytes} "
        f"elapsed={elapsed_ms:.1f}ms speed={format_bit_rate(result.throughput_bps)}"
    )
