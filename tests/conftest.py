"""Shared pytest fixtures for all tests."""

import asyncio

import pytest
import pytest_asyncio

from common.h2_endpoint import H2Endpoint
from common.tls import create_server_context
from common.transport import build_transport_config
from server.acceptor import ConnectionAcceptor
from server.gencert import generate_self_signed, write_files
from server.handlers import RequestHandler


@pytest.fixture
def transport_config():
    """
    Transport configuration used by both ends in tests.

    Returns:
        TransportConfig with the default tuned windows
    """
    return build_transport_config()


@pytest_asyncio.fixture
async def h2c_server(transport_config):
    """
    Start a cleartext HTTP/2 server on an ephemeral port.

    Args:
        transport_config: Transport configuration fixture

    Returns:
        Running ConnectionAcceptor (use ``.port``)
    """
    acceptor = ConnectionAcceptor(RequestHandler(protocol="h2c"), transport_config)
    await acceptor.start("127.0.0.1", 0)
    yield acceptor
    await acceptor.stop()


@pytest_asyncio.fixture
async def open_client(transport_config):
    """
    Factory for raw client-side H2Endpoints; every endpoint is closed on teardown.

    Returns:
        Async callable ``open_client(port, ssl_context=None)``
    """
    endpoints = []

    async def _open(port, ssl_context=None):
        reader, writer = await asyncio.open_connection(
            "127.0.0.1",
            port,
            ssl=ssl_context,
            server_hostname="localhost" if ssl_context is not None else None
        )
        endpoint = H2Endpoint(reader, writer, transport_config, client_side=True)
        await endpoint.open()
        endpoint.start()
        await endpoint.wait_ready()
        endpoints.append(endpoint)
        return endpoint

    yield _open

    for endpoint in endpoints:
        await endpoint.close()


@pytest.fixture(scope="session")
def tls_material(tmp_path_factory):
    """
    Generate a throwaway self-signed certificate for localhost/127.0.0.1.

    Returns:
        Tuple of (cert_file, key_file) paths as strings
    """
    directory = tmp_path_factory.mktemp("tls")
    cert_pem, key_pem = generate_self_signed("127.0.0.1", validity_days=1)
    return write_files(str(directory), cert_pem, key_pem)


@pytest_asyncio.fixture
async def h2_tls_server(transport_config, tls_material):
    """
    Start a TLS HTTP/2 server on an ephemeral port.

    Returns:
        Running ConnectionAcceptor (use ``.port``)
    """
    cert_file, key_file = tls_material
    acceptor = ConnectionAcceptor(
        RequestHandler(protocol="h2"),
        transport_config,
        create_server_context(cert_file, key_file)
    )
    await acceptor.start("127.0.0.1", 0)
    yield acceptor
    await acceptor.stop()
