"""Configuration settings for the measurement driver."""

import os

from common.constants import (
    DEFAULT_ADDRESS,
    DEFAULT_CERT_FILE,
    DEFAULT_CONNECTION_WINDOW,
    DEFAULT_MAX_FRAME_SIZE,
    DEFAULT_PORT,
    DEFAULT_STREAM_WINDOW,
    DEFAULT_TRANSFER_BYTES,
)


TARGET_ADDRESS = os.environ.get("PERF_TARGET_ADDRESS", DEFAULT_ADDRESS)

TARGET_PORT = int(os.environ.get("PERF_TARGET_PORT", str(DEFAULT_PORT)))

CA_FILE = os.environ.get("PERF_CA_FILE", DEFAULT_CERT_FILE)

TRANSFER_BYTES = int(os.environ.get("PERF_TRANSFER_BYTES", str(DEFAULT_TRANSFER_BYTES)))

METHOD = os.environ.get("PERF_METHOD", "GET").upper()

STREAM_WINDOW = int(os.environ.get("PERF_STREAM_WINDOW", str(DEFAULT_STREAM_WINDOW)))

CONNECTION_WINDOW = int(os.environ.get("PERF_CONNECTION_WINDOW", str(DEFAULT_CONNECTION_WINDOW)))

MAX_FRAME_SIZE = int(os.environ.get("PERF_MAX_FRAME_SIZE", str(DEFAULT_MAX_FRAME_SIZE)))
