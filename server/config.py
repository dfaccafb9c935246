"""Configuration settings for the throughput server."""

import os

from common.constants import (
    DEFAULT_ADDRESS,
    DEFAULT_CERT_FILE,
    DEFAULT_CONNECTION_WINDOW,
    DEFAULT_KEY_FILE,
    DEFAULT_MAX_FRAME_SIZE,
    DEFAULT_PORT,
    DEFAULT_STREAM_WINDOW,
)


SERVER_ADDRESS = os.environ.get("PERF_SERVER_ADDRESS", DEFAULT_ADDRESS)

SERVER_PORT = int(os.environ.get("PERF_SERVER_PORT", str(DEFAULT_PORT)))

CERT_FILE = os.environ.get("PERF_CERT_FILE", DEFAULT_CERT_FILE)

KEY_FILE = os.environ.get("PERF_KEY_FILE", DEFAULT_KEY_FILE)

STREAM_WINDOW = int(os.environ.get("PERF_STREAM_WINDOW", str(DEFAULT_STREAM_WINDOW)))

CONNECTION_WINDOW = int(os.environ.get("PERF_CONNECTION_WINDOW", str(DEFAULT_CONNECTION_WINDOW)))

MAX_FRAME_SIZE = int(os.environ.get("PERF_MAX_FRAME_SIZE", str(DEFAULT_MAX_FRAME_SIZE)))
