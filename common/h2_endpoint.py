"""HTTP/2 connection driver binding an h2 state machine to asyncio streams.

h2 owns framing, HPACK, stream states and flow-control accounting. This
module only moves bytes between h2 and the socket, turns h2 events into
per-stream queues, and suspends senders while the peer's window is closed.
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

import h2.config
import h2.connection
import h2.errors
import h2.events
import h2.exceptions

from common.constants import READ_BUFFER_SIZE_BYTES
from common.exceptions import ConnectionClosedError, ProtocolError, StreamResetError
from common.transport import apply_transport_config
from common.types import TransportConfig

logger = logging.getLogger(__name__)

Headers = List[Tuple[str, str]]
RequestCallback = Callable[['H2Endpoint', int, Dict[str, str]], Awaitable[None]]


class _StreamState:
    """Per-stream bookkeeping, owned by the task driving that stream."""

    def __init__(self, stream_id: int, headers: Optional[Dict[str, str]] = None):
        self.stream_id = stream_id
        self.headers = headers
        self.headers_received = asyncio.Event()
        if headers is not None:
            self.headers_received.set()
        self.data: asyncio.Queue = asyncio.Queue()
        self.window_open = asyncio.Event()
        self.error: Optional[ProtocolError] = None

    def set_headers(self, headers: Dict[str, str]) -> None:
        self.headers = headers
        self.headers_received.set()

    def end(self) -> None:
        self.data.put_nowait(None)

    def fail(self, error: ProtocolError) -> None:
        if self.error is None:
            self.error = error
        self.headers_received.set()
        self.window_open.set()
        self.data.put_nowait(None)


class H2Endpoint:
    """
    One HTTP/2 connection, client or server side.

    Server side: pass ``request_callback``; ``run()`` spawns one task per
    request stream and awaits the callback there.
    Client side: call ``open()``, ``start()`` and then issue requests.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        config: TransportConfig,
        client_side: bool,
        request_callback: Optional[RequestCallback] = None
    ):
        self.reader = reader
        self.writer = writer
        self.config = config
        self.client_side = client_side
        self.request_callback = request_callback
        self.conn = h2.connection.H2Connection(
            config=h2.config.H2Configuration(client_side=client_side, header_encoding='utf-8')
        )
        self.peer = writer.get_extra_info('peername')
        self._streams: Dict[int, _StreamState] = {}
        self._request_tasks: Set[asyncio.Task] = set()
        self._settings_received = asyncio.Event()
        self._reader_task: Optional[asyncio.Task] = None
        self._error: Optional[ProtocolError] = None

    @property
    def closed(self) -> bool:
        return self._error is not None

    async def open(self) -> None:
        """Send the connection preface and our tuned SETTINGS."""
        self.conn.initiate_connection()
        apply_transport_config(self.conn, self.config)
        await self._flush()

    def start(self) -> None:
        """Run the read loop in the background (client side)."""
        self._reader_task = asyncio.create_task(self.run())

    async def wait_ready(self) -> None:
        """
        Wait until the peer's SETTINGS have been received.

        Raises:
            ProtocolError: If the connection failed first
        """
        await self._settings_received.wait()
        self._raise_if_closed()

    async def run(self) -> None:
        """
        Read loop: feed socket bytes to h2 and dispatch the resulting events.

        Returns when the connection ends. Failures are logged here and
        delivered to every open stream; they never propagate to the caller.
        """
        error: ProtocolError = ConnectionClosedError("connection closed by peer")
        try:
            while self._error is None:
                data = await self.reader.read(READ_BUFFER_SIZE_BYTES)
                if not data:
                    break
                try:
                    events = self.conn.receive_data(data)
                except h2.exceptions.ProtocolError as e:
                    self._transmit()
                    error = ProtocolError(f"protocol error from {self.peer}: {e}")
                    logger.warning(str(error))
                    break
                for event in events:
                    self._dispatch(event)
                self._transmit()
        except (ConnectionError, OSError) as e:
            error = ConnectionClosedError(f"connection to {self.peer} failed: {e}")
            logger.warning(str(error))
        finally:
            self._shutdown(error)

        if self._request_tasks:
            await asyncio.gather(*self._request_tasks, return_exceptions=True)

    async def close(self) -> None:
        """Send GOAWAY, stop the read loop and close the socket."""
        if self._error is None:
            try:
                self.conn.close_connection()
                self._transmit()
            except h2.exceptions.ProtocolError as e:
                logger.debug(f"GOAWAY not sent to {self.peer}: {e}")
            self._fail_all(ConnectionClosedError("connection closed locally"))
        if self._reader_task is not None:
            self._reader_task.cancel()
            await asyncio.gather(self._reader_task, return_exceptions=True)
        self._shutdown(self._error)
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error while closing connection to {self.peer}: {e}")

    async def send_request(self, headers: Headers, end_stream: bool = False) -> int:
        """
        Open a new stream with the given request headers.

        Returns:
            The new stream ID
        """
        self._raise_if_closed()
        stream_id = self.conn.get_next_available_stream_id()
        self._streams[stream_id] = _StreamState(stream_id)
        self._call(self.conn.send_headers, stream_id, headers, end_stream=end_stream)
        await self._flush()
        return stream_id

    async def send_response(
        self,
        stream_id: int,
        status: int,
        headers: Headers = (),
        end_stream: bool = False
    ) -> None:
        response_headers = [(':status', str(status))]
        response_headers.extend(headers)
        self._raise_if_failed(self._streams[stream_id])
        self._call(self.conn.send_headers, stream_id, response_headers, end_stream=end_stream)
        await self._flush()

    async def send_body(self, stream_id: int, chunks: Iterable) -> int:
        """
        Send every chunk of ``chunks`` and then end the stream.

        The next chunk is pulled only after the previous one has been fully
        handed to the socket.

        Returns:
            Number of bytes sent
        """
        sent = 0
        for chunk in chunks:
            await self.send_data(stream_id, chunk)
            sent += len(chunk)
        await self.end_stream(stream_id)
        return sent

    async def send_data(self, stream_id: int, data) -> None:
        """
        Send ``data`` on a stream, suspending while the flow-control window is
        exhausted or the socket buffer is full.

        Raises:
            ProtocolError: If the stream or connection fails meanwhile
        """
        stream = self._streams[stream_id]
        view = memoryview(data)
        while view:
            self._raise_if_failed(stream)
            window = self._call(self.conn.local_flow_control_window, stream_id)
            if window <= 0:
                stream.window_open.clear()
                await stream.window_open.wait()
                continue
            size = min(window, len(view), self.conn.max_outbound_frame_size)
            self._call(self.conn.send_data, stream_id, view[:size])
            view = view[size:]
            await self._flush()

    async def end_stream(self, stream_id: int) -> None:
        self._raise_if_failed(self._streams[stream_id])
        self._call(self.conn.end_stream, stream_id)
        await self._flush()

    def reset_stream(self, stream_id: int, error_code: int = h2.errors.ErrorCodes.CANCEL) -> None:
        """Abort a stream with RST_STREAM; a no-op if it is already gone."""
        if self._error is not None:
            return
        try:
            self.conn.reset_stream(stream_id, error_code)
        except h2.exceptions.StreamClosedError:
            logger.debug(f"Stream {stream_id} already closed, not resetting")
            return
        self._transmit()

    async def receive_headers(self, stream_id: int) -> Dict[str, str]:
        """
        Wait for the headers of a stream (response headers on the client).

        Raises:
            ProtocolError: If the stream or connection fails first
        """
        stream = self._streams[stream_id]
        await stream.headers_received.wait()
        if stream.headers is None:
            self._raise_if_failed(stream)
        return stream.headers

    async def receive_body(self, stream_id: int) -> AsyncIterator[bytes]:
        """
        Yield DATA payloads of a stream in order until it ends.

        Flow-control credit is returned as each payload is taken.

        Raises:
            ProtocolError: If the stream is reset or the connection fails
        """
        stream = self._streams[stream_id]
        while True:
            item = await stream.data.get()
            if item is None:
                self._raise_if_failed(stream)
                return
            data, flow_controlled_length = item
            self._acknowledge(stream_id, flow_controlled_length)
            yield data

    def release(self, stream_id: int) -> None:
        """
        Forget a stream; DATA still queued or arriving later is acknowledged
        so the connection window stays open.
        """
        stream = self._streams.pop(stream_id, None)
        if stream is None:
            return
        while not stream.data.empty():
            item = stream.data.get_nowait()
            if item is not None:
                self._acknowledge(stream_id, item[1])

    def _dispatch(self, event: h2.events.Event) -> None:
        if isinstance(event, h2.events.RequestReceived):
            self._on_request(event)
        elif isinstance(event, h2.events.ResponseReceived):
            stream = self._streams.get(event.stream_id)
            if stream is not None:
                stream.set_headers(dict(event.headers))
        elif isinstance(event, h2.events.DataReceived):
            stream = self._streams.get(event.stream_id)
            if stream is None:
                self._acknowledge(event.stream_id, event.flow_controlled_length)
            elif event.data or event.flow_controlled_length:
                stream.data.put_nowait((event.data, event.flow_controlled_length))
        elif isinstance(event, h2.events.StreamEnded):
            stream = self._streams.get(event.stream_id)
            if stream is not None:
                stream.end()
        elif isinstance(event, h2.events.StreamReset):
            stream = self._streams.get(event.stream_id)
            if stream is not None:
                stream.fail(StreamResetError(event.stream_id, int(event.error_code)))
        elif isinstance(event, h2.events.WindowUpdated):
            if event.stream_id:
                stream = self._streams.get(event.stream_id)
                if stream is not None:
                    stream.window_open.set()
            else:
                self._wake_senders()
        elif isinstance(event, h2.events.RemoteSettingsChanged):
            self._settings_received.set()
            self._wake_senders()
        elif isinstance(event, h2.events.ConnectionTerminated):
            error = ConnectionClosedError(
                f"peer {self.peer} sent GOAWAY (error_code={event.error_code!r})"
            )
            logger.info(str(error))
            self._fail_all(error)

    def _on_request(self, event: h2.events.RequestReceived) -> None:
        headers = dict(event.headers)
        self._streams[event.stream_id] = _StreamState(event.stream_id, headers)
        if self.request_callback is None:
            self.reset_stream(event.stream_id, h2.errors.ErrorCodes.REFUSED_STREAM)
            self.release(event.stream_id)
            return
        task = asyncio.create_task(self._serve_stream(event.stream_id, headers))
        self._request_tasks.add(task)
        task.add_done_callback(self._request_tasks.discard)

    async def _serve_stream(self, stream_id: int, headers: Dict[str, str]) -> None:
        try:
            await self.request_callback(self, stream_id, headers)
        except ProtocolError as e:
            logger.info(f"Stream {stream_id} from {self.peer} aborted: {e}")
        except Exception as e:
            logger.error(f"Handler failed on stream {stream_id} from {self.peer}: {e}", exc_info=True)
            self.reset_stream(stream_id, h2.errors.ErrorCodes.INTERNAL_ERROR)
        finally:
            self.release(stream_id)

    def _acknowledge(self, stream_id: int, flow_controlled_length: int) -> None:
        if self._error is not None or not flow_controlled_length:
            return
        self.conn.acknowledge_received_data(flow_controlled_length, stream_id)
        self._transmit()

    def _wake_senders(self) -> None:
        for stream in self._streams.values():
            stream.window_open.set()

    def _fail_all(self, error: ProtocolError) -> None:
        if self._error is None:
            self._error = error
        self._settings_received.set()
        for stream in self._streams.values():
            stream.fail(error)

    def _shutdown(self, error: ProtocolError) -> None:
        self._fail_all(error)
        for task in self._request_tasks:
            task.cancel()
        self.writer.close()

    def _call(self, method, *args, **kwargs):
        """Invoke an h2 operation, mapping its failures onto our taxonomy."""
        try:
            return method(*args, **kwargs)
        except h2.exceptions.StreamClosedError as e:
            raise StreamResetError(e.stream_id, int(h2.errors.ErrorCodes.STREAM_CLOSED)) from e
        except h2.exceptions.ProtocolError as e:
            self._raise_if_closed()
            raise ProtocolError(str(e)) from e

    def _raise_if_closed(self) -> None:
        if self._error is not None:
            raise self._error

    def _raise_if_failed(self, stream: _StreamState) -> None:
        if stream.error is not None:
            raise stream.error
        self._raise_if_closed()

    def _transmit(self) -> None:
        data = self.conn.data_to_send()
        if data and not self.writer.is_closing():
            self.writer.write(data)

    async def _flush(self) -> None:
        self._transmit()
        try:
            await self.writer.drain()
        except (ConnectionError, OSError) as e:
            error = ConnectionClosedError(f"connection to {self.peer} lost: {e}")
            self._fail_all(error)
            raise error from e
