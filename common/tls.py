"""TLS context construction for the server and the measurement client."""

import ssl
from typing import List, Optional

from common.constants import ALPN_H2
from common.exceptions import ConfigurationError


def create_server_context(cert_file: str, key_file: str, alpn_protocols: Optional[List[str]] = None) -> ssl.SSLContext:
    """
    Build the server-side TLS context from a certificate chain and key.

    Args:
        cert_file: PEM certificate chain
        key_file: PEM private key
        alpn_protocols: ALPN protocols to advertise (defaults to h2 only)

    Returns:
        Configured SSLContext

    Raises:
        ConfigurationError: If the material cannot be loaded
    """
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    try:
        ctx.load_cert_chain(certfile=cert_file, keyfile=key_file)
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(f"cannot load TLS material {cert_file}/{key_file}: {e}") from e
    ctx.set_alpn_protocols(alpn_protocols or [ALPN_H2])
    return ctx


def create_client_context(ca_file: Optional[str], alpn_protocols: Optional[List[str]] = None) -> ssl.SSLContext:
    """
    Build the client-side TLS context trusting ``ca_file``.

    Args:
        ca_file: PEM CA certificate to trust, or None for the system store
        alpn_protocols: ALPN protocols to offer (defaults to h2 only)

    Raises:
        ConfigurationError: If the CA file cannot be loaded
    """
    try:
        ctx = ssl.create_default_context(cafile=ca_file)
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(f"cannot load CA certificate {ca_file}: {e}") from e
    ctx.set_alpn_protocols(alpn_protocols or [ALPN_H2])
    return ctx
