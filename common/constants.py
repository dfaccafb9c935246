"""Project-wide constants (chunk size, transport tuning, default endpoints)."""

CHUNK_SIZE_BYTES: int = 1 << 20  # 1 MiB per streamed chunk

READ_BUFFER_SIZE_BYTES: int = 1 << 20

DEFAULT_STREAM_WINDOW: int = 1 << 30  # 1 GiB
DEFAULT_CONNECTION_WINDOW: int = 1 << 30  # 1 GiB
DEFAULT_MAX_FRAME_SIZE: int = (1 << 24) - 1  # protocol maximum

DEFAULT_ADDRESS: str = "127.0.0.1"
DEFAULT_PORT: int = 4443
DEFAULT_TRANSFER_BYTES: int = 1 << 34

DEFAULT_CERT_FILE: str = "cert.pem"
DEFAULT_KEY_FILE: str = "key.pem"

ALPN_H2: str = "h2"
OCTET_STREAM: str = "application/octet-stream"
