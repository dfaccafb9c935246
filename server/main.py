"""Entry point for the throughput server.
Serves HTTP/2 (TLS or cleartext) through the connection acceptor, or the
HTTP/1.1 baseline through uvicorn.
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

import uvicorn

from common.exceptions import ConfigurationError
from common.logging_config import get_logger, setup_logging
from common.tls import create_server_context
from common.transport import build_transport_config
from server.acceptor import ConnectionAcceptor
from server.config import (
    CERT_FILE,
    CONNECTION_WINDOW,
    KEY_FILE,
    MAX_FRAME_SIZE,
    SERVER_ADDRESS,
    SERVER_PORT,
    STREAM_WINDOW,
)
from server.handlers import RequestHandler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="h2perf-serve", description="Serve synthetic HTTP/2 transfers.")
    parser.add_argument("-A", "--address", default=SERVER_ADDRESS, help="listen IP address")
    parser.add_argument("-p", "--port", type=int, default=SERVER_PORT, help="listen TCP port")
    parser.add_argument("--cert", default=CERT_FILE, help="TLS certificate chain file")
    parser.add_argument("--key", default=KEY_FILE, help="TLS private key file")
    parser.add_argument("--no-tls", action="store_true", help="serve h2c (HTTP/2 over cleartext)")
    parser.add_argument("--http1", action="store_true", help="serve the HTTP/1.1 baseline instead")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    return parser


async def serve(acceptor: ConnectionAcceptor, address: str, port: int) -> None:
    """
    Run the acceptor until SIGINT/SIGTERM.

    Args:
        acceptor: Configured ConnectionAcceptor
        address: Listen address
        port: Listen port
    """
    logger = get_logger('server')
    await acceptor.start(address, port)

    stop_event = asyncio.Event()

    if sys.platform != 'win32':
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

    serve_task = asyncio.create_task(acceptor.serve_forever())
    try:
        await stop_event.wait()
        logger.info("Received shutdown signal, shutting down...")
    finally:
        await acceptor.stop()
        serve_task.cancel()
        await asyncio.gather(serve_task, return_exceptions=True)
        logger.info("Server stopped")


def main(argv: Optional[List[str]] = None) -> None:
    """Bootstrap the server."""
    args = build_parser().parse_args(argv)
    log_level = 'DEBUG' if args.debug else None

    logger = setup_logging('server', log_level=log_level)
    setup_logging('common', log_level=log_level)

    try:
        if args.http1:
            ssl_options = {} if args.no_tls else {"ssl_certfile": args.cert, "ssl_keyfile": args.key}
            logger.info(f"Serving http/1.1 at {args.address}:{args.port}")
            uvicorn.run(
                "server.http1_app:app",
                host=args.address,
                port=args.port,
                log_level="debug" if args.debug else "info",
                **ssl_options
            )
            return

        transport_config = build_transport_config(STREAM_WINDOW, CONNECTION_WINDOW, MAX_FRAME_SIZE)
        ssl_context = None if args.no_tls else create_server_context(args.cert, args.key)
        handler = RequestHandler(protocol="h2c" if args.no_tls else "h2")
        acceptor = ConnectionAcceptor(handler, transport_config, ssl_context)
        asyncio.run(serve(acceptor, args.address, args.port))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")


if __name__ == "__main__":
    main()
