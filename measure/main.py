"""Entry point for the measurement driver."""

import argparse
import asyncio
import sys
from typing import List, Optional

from common.exceptions import ConfigurationError, MeasurementError
from common.logging_config import setup_logging
from common.tls import create_client_context
from common.transport import build_transport_config
from measure.config import (
    CA_FILE,
    CONNECTION_WINDOW,
    MAX_FRAME_SIZE,
    METHOD,
    STREAM_WINDOW,
    TARGET_ADDRESS,
    TARGET_PORT,
    TRANSFER_BYTES,
)
from measure.driver import MeasurementDriver
from measure.http1_driver import Http1MeasurementDriver
from measure.throughput import format_summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="h2perf-measure", description="Measure HTTP/2 transfer throughput.")
    parser.add_argument("-A", "--address", default=TARGET_ADDRESS, help="target IP address")
    parser.add_argument("-p", "--port", type=int, default=TARGET_PORT, help="target TCP port")
    parser.add_argument("-n", "--bytes", type=int, default=TRANSFER_BYTES, dest="size", help="number of bytes to transfer")
    parser.add_argument("-X", "--method", default=METHOD, type=str.upper, choices=["GET", "PUT"], help="GET downloads, PUT uploads")
    parser.add_argument("--cert", default=CA_FILE, help="CA certificate to trust")
    parser.add_argument("--no-tls", action="store_true", help="use h2c (HTTP/2 over cleartext)")
    parser.add_argument("--http1", action="store_true", help="measure against the HTTP/1.1 server")
    parser.add_argument("--json", action="store_true", help="also print the result as JSON")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    return parser


def build_driver(args: argparse.Namespace):
    """
    Build the driver selected by the command line.

    Raises:
        ConfigurationError: If the CA file or transport knobs are unusable
    """
    ssl_context = None
    if not args.no_tls:
        alpn = ["http/1.1"] if args.http1 else None
        ssl_context = create_client_context(args.cert, alpn_protocols=alpn)

    if args.http1:
        return Http1MeasurementDriver(args.address, args.port, ssl_context)

    transport_config = build_transport_config(STREAM_WINDOW, CONNECTION_WINDOW, MAX_FRAME_SIZE)
    return MeasurementDriver(args.address, args.port, transport_config, ssl_context)


def main(argv: Optional[List[str]] = None) -> None:
    """Run one measurement and print the result."""
    args = build_parser().parse_args(argv)
    log_level = 'DEBUG' if args.debug else None

    logger = setup_logging('measure', log_level=log_level)
    setup_logging('common', log_level=log_level)

    try:
        driver = build_driver(args)
        result = asyncio.run(driver.measure(args.method, args.size))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except MeasurementError as e:
        logger.error(f"Measurement failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Measurement interrupted")
        sys.exit(130)

    print(format_summary(result))
    if args.json:
        print(result.to_json())


if __name__ == "__main__":
    main()
