"""End-to-end tests for the HTTP/2 server over cleartext (h2c)."""

import asyncio
import contextlib

import httpx
import pytest

from common.constants import CHUNK_SIZE_BYTES
from common.exceptions import ConnectionClosedError, ProtocolError, StreamResetError
from common.h2_endpoint import H2Endpoint
from common.transfer import TransferGenerator


def _headers(method, path, port, extra=()):
    headers = [
        (':method', method),
        (':scheme', 'http'),
        (':authority', f"127.0.0.1:{port}"),
        (':path', path),
    ]
    headers.extend(extra)
    return headers


async def _get(client, port, path):
    stream_id = await client.send_request(_headers('GET', path, port), end_stream=True)
    response = await client.receive_headers(stream_id)
    body = bytearray()
    async for chunk in client.receive_body(stream_id):
        body.extend(chunk)
    client.release(stream_id)
    return response, bytes(body)


async def _put(client, port, path, size, declared=None):
    extra = [('content-length', str(declared if declared is not None else size))]
    stream_id = await client.send_request(_headers('PUT', path, port, extra))
    await client.send_body(stream_id, TransferGenerator(size))
    response = await client.receive_headers(stream_id)
    client.release(stream_id)
    return response


async def _wait_for_idle(acceptor, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while acceptor._connections and loop.time() < deadline:
        await asyncio.sleep(0.01)


class TestDownload:
    """Test GET /{size}."""

    @pytest.mark.asyncio
    async def test_get_4096(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)

        response, body = await _get(client, h2c_server.port, "/4096")

        assert response[':status'] == '200'
        assert response['content-length'] == '4096'
        assert response['content-type'] == 'application/octet-stream'
        assert body == b"\x00" * 4096

    @pytest.mark.asyncio
    async def test_get_spanning_several_chunks(self, h2c_server, open_client):
        size = 3 * CHUNK_SIZE_BYTES + 17
        client = await open_client(h2c_server.port)

        response, body = await _get(client, h2c_server.port, f"/{size}")

        assert response[':status'] == '200'
        assert len(body) == size
        assert body.count(0) == size

    @pytest.mark.asyncio
    async def test_get_zero_is_rejected(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)

        response, body = await _get(client, h2c_server.port, "/0")

        assert response[':status'] == '400'
        assert body == b""

    @pytest.mark.asyncio
    async def test_get_non_numeric_is_rejected(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)

        response, body = await _get(client, h2c_server.port, "/lots")

        assert response[':status'] == '400'
        assert body == b""

    @pytest.mark.asyncio
    async def test_concurrent_streams_on_one_connection(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)
        sizes = [1, 4096, CHUNK_SIZE_BYTES + 1, 2 * CHUNK_SIZE_BYTES]

        results = await asyncio.gather(*(_get(client, h2c_server.port, f"/{size}") for size in sizes))

        for size, (response, body) in zip(sizes, results):
            assert response[':status'] == '200'
            assert len(body) == size


class TestUpload:
    """Test PUT /{size}."""

    @pytest.mark.asyncio
    async def test_put_4096(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)

        response = await _put(client, h2c_server.port, "/4096", 4096)

        assert response[':status'] == '204'

    @pytest.mark.asyncio
    async def test_put_spanning_several_chunks(self, h2c_server, open_client):
        size = 2 * CHUNK_SIZE_BYTES + 1
        client = await open_client(h2c_server.port)

        response = await _put(client, h2c_server.port, f"/{size}", size)

        assert response[':status'] == '204'

    @pytest.mark.asyncio
    async def test_put_zero_is_rejected(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)

        response = await _put(client, h2c_server.port, "/0", 0)

        assert response[':status'] == '400'

    @pytest.mark.asyncio
    async def test_short_upload_with_declared_length_fails(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)

        with pytest.raises(ProtocolError):
            await _put(client, h2c_server.port, "/4096", 2048, declared=4096)

    @pytest.mark.asyncio
    async def test_short_upload_without_declared_length_is_reset(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)
        stream_id = await client.send_request(_headers('PUT', "/4096", h2c_server.port))
        await client.send_body(stream_id, TransferGenerator(2048))

        with pytest.raises(StreamResetError):
            await client.receive_headers(stream_id)

    @pytest.mark.asyncio
    async def test_dropped_upload_never_succeeds(self, h2c_server, open_client, monkeypatch):
        statuses = []
        original = H2Endpoint.send_response

        async def recording_send_response(self, stream_id, status, headers=(), end_stream=False):
            statuses.append(status)
            await original(self, stream_id, status, headers, end_stream)

        monkeypatch.setattr(H2Endpoint, "send_response", recording_send_response)

        client = await open_client(h2c_server.port)
        stream_id = await client.send_request(
            _headers('PUT', "/4096", h2c_server.port, [('content-length', '4096')])
        )
        await client.send_data(stream_id, bytes(2048))
        await client.close()
        await _wait_for_idle(h2c_server)

        assert 204 not in statuses

        survivor = await open_client(h2c_server.port)
        response, body = await _get(survivor, h2c_server.port, "/4096")
        assert response[':status'] == '200'
        assert len(body) == 4096


class TestConnectionBehaviour:
    """Test per-connection error isolation."""

    @pytest.mark.asyncio
    async def test_connection_usable_after_client_error(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)

        rejected, _ = await _get(client, h2c_server.port, "/0")
        accepted, body = await _get(client, h2c_server.port, "/16")

        assert rejected[':status'] == '400'
        assert accepted[':status'] == '200'
        assert body == bytes(16)

    @pytest.mark.asyncio
    async def test_unsupported_method(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)
        stream_id = await client.send_request(_headers('POST', "/16", h2c_server.port), end_stream=True)

        response = await client.receive_headers(stream_id)

        assert response[':status'] == '405'
        assert response['allow'] == 'GET, PUT'

    @pytest.mark.asyncio
    async def test_protocol_violation_only_affects_one_connection(self, h2c_server, open_client):
        reader, writer = await asyncio.open_connection("127.0.0.1", h2c_server.port)
        writer.write(b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")
        await writer.drain()
        with contextlib.suppress(ConnectionError):
            await reader.read()
        writer.close()

        client = await open_client(h2c_server.port)
        response, body = await _get(client, h2c_server.port, "/32")
        assert response[':status'] == '200'
        assert body == bytes(32)

    @pytest.mark.asyncio
    async def test_requests_fail_after_local_close(self, h2c_server, open_client):
        client = await open_client(h2c_server.port)
        await client.close()

        assert client.closed
        with pytest.raises(ConnectionClosedError):
            await client.send_request(_headers('GET', "/16", h2c_server.port), end_stream=True)


class TestInterop:
    """Test against an independent HTTP/2 client."""

    @pytest.mark.asyncio
    async def test_httpx_download_and_upload(self, h2c_server):
        base_url = f"http://127.0.0.1:{h2c_server.port}"
        async with httpx.AsyncClient(http1=False, http2=True, base_url=base_url) as client:
            download = await client.get("/4096")
            upload = await client.put("/4096", content=bytes(4096))
            rejected = await client.get("/0")

        assert download.http_version == "HTTP/2"
        assert download.status_code == 200
        assert download.content == bytes(4096)
        assert upload.status_code == 204
        assert rejected.status_code == 400
