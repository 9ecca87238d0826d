"""
Transport - Listener and Dialer

The sender listens on a well-known port and hands every incoming
connection to the admission filter; the first admitted connection ends
the listening phase. The receiver dials the sender, sleeping between
attempts, until it connects or its retry policy is exhausted.

A refused connection and an unreachable host are treated the same: both
are transient and retried.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple

from ..config import RetryPolicy
from ..errors import DialError, TransferIOError
from .admission import AdmissionFilter, peer_host
from .protocol import encode_admission

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PeerConnection:
    """
    One TCP connection between sender and receiver.

    All socket errors are raised as TransferIOError so callers deal with a
    single error kind once the connection exists.
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self._closed = False

    @property
    def remote_address(self) -> Tuple[str, int]:
        """Get remote peer address."""
        return self.writer.get_extra_info('peername')

    @property
    def remote_host(self) -> str:
        return peer_host(self.remote_address)

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, data: bytes):
        """Write bytes and wait for the transport buffer to drain."""
        if self._closed:
            raise TransferIOError("Connection closed")
        try:
            self.writer.write(data)
            await self.writer.drain()
        except (ConnectionError, OSError) as e:
            raise TransferIOError(f"Send to {self.remote_host} failed: {e}") from e

    async def receive_exactly(self, n: int) -> bytes:
        """Read exactly n bytes or fail."""
        try:
            return await self.reader.readexactly(n)
        except asyncio.IncompleteReadError as e:
            raise TransferIOError(
                f"Connection closed after {len(e.partial)} of {n} bytes"
            ) from e
        except (ConnectionError, OSError) as e:
            raise TransferIOError(f"Receive failed: {e}") from e

    async def receive_up_to(self, n: int) -> bytes:
        """
        Read until n bytes have arrived or the peer closes its side.

        Returns fewer than n bytes only at end of stream.
        """
        data = bytearray()
        try:
            while len(data) < n:
                part = await self.reader.read(n - len(data))
                if not part:
                    break
                data.extend(part)
        except (ConnectionError, OSError) as e:
            raise TransferIOError(f"Receive failed: {e}") from e
        return bytes(data)

    async def finish_sending(self):
        """Signal end of stream to the peer."""
        if self.writer.can_write_eof():
            try:
                self.writer.write_eof()
            except (ConnectionError, OSError) as e:
                raise TransferIOError(f"Closing stream failed: {e}") from e

    async def close(self):
        """Close the connection."""
        if not self._closed:
            self._closed = True
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug(f"Error while closing connection: {e}")


class Listener:
    """
    TCP listener for the sending side.

    Admits exactly one connection per session. Connections that do not
    pass the admission filter, or that arrive after one was admitted,
    receive the rejection byte and are closed.
    """

    def __init__(self, admission: AdmissionFilter,
                 host: str = '0.0.0.0', port: int = 1234):
        self.admission = admission
        self.host = host
        self.requested_port = port
        self.server: Optional[asyncio.AbstractServer] = None
        self._admitted: Optional[asyncio.Future] = None
        self.rejected_count = 0

    @property
    def port(self) -> int:
        """The bound port (differs from the requested one when that was 0)."""
        if self.server is None:
            return self.requested_port
        return self.server.sockets[0].getsockname()[1]

    @property
    def is_listening(self) -> bool:
        return self.server is not None and self.server.is_serving()

    async def start(self):
        """Bind and start accepting connections."""
        self._admitted = asyncio.get_running_loop().create_future()
        try:
            self.server = await asyncio.start_server(
                self._handle_connection,
                self.host,
                self.requested_port
            )
        except OSError as e:
            raise TransferIOError(
                f"Cannot listen on {self.host}:{self.requested_port}: {e}"
            ) from e
        logger.info(f"Server hosted on port {self.port}")

    async def accept(self) -> PeerConnection:
        """Wait for the admitted connection, then stop listening."""
        if self.server is None:
            await self.start()
        try:
            return await self._admitted
        finally:
            self.close()

    def close(self):
        """Stop accepting new connections."""
        if self.server is not None and self.server.is_serving():
            self.server.close()

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """Admit or reject one incoming connection."""
        conn = PeerConnection(reader, writer)
        host = conn.remote_host

        if self._admitted.done() or not self.admission.admits(conn.remote_address):
            await self._reject(conn)
            return

        try:
            await conn.send(encode_admission(True))
        except TransferIOError as e:
            logger.warning(f"Lost connection from {host} while admitting it: {e}")
            await conn.close()
            return

        logger.info(f"Connection established with {host}")
        self._admitted.set_result(conn)

    async def _reject(self, conn: PeerConnection):
        """Send the rejection byte and drop the connection."""
        host = conn.remote_host
        self.rejected_count += 1
        try:
            await conn.send(encode_admission(False))
        except TransferIOError as e:
            logger.debug(f"Could not send rejection to {host}: {e}")
        finally:
            await conn.close()
        logger.info(f"Rejected connection from {host}")


class Dialer:
    """
    Connects the receiving side to the sender.

    Retries every policy.interval seconds until connected or until
    policy.max_attempts is reached (never, by default).
    """

    def __init__(self, host: str, port: int = 1234,
                 policy: RetryPolicy = None,
                 connect_timeout: Optional[float] = 10.0,
                 sleep: Sleep = asyncio.sleep):
        self.host = host
        self.port = port
        self.policy = policy or RetryPolicy()
        self.connect_timeout = connect_timeout
        self._sleep = sleep
        self.attempts = 0

    async def _open(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        connect = asyncio.open_connection(self.host, self.port)
        if self.connect_timeout is None:
            return await connect
        return await asyncio.wait_for(connect, timeout=self.connect_timeout)

    async def dial(self) -> PeerConnection:
        """Keep trying to connect."""
        logger.info("Trying to connect")
        last_error: Optional[BaseException] = None

        for attempt in self.policy.attempts():
            self.attempts = attempt
            try:
                reader, writer = await self._open()
            except (OSError, asyncio.TimeoutError) as e:
                last_error = e
                logger.debug(f"Attempt {attempt} error: \"{e}\"")
                if self.policy.max_attempts is not None and attempt >= self.policy.max_attempts:
                    break
                await self._sleep(self.policy.interval)
                continue

            logger.debug(f"Connected after {attempt} attempts")
            return PeerConnection(reader, writer)

        raise DialError(
            f"Could not connect to {self.host}:{self.port} "
            f"after {self.attempts} attempts: {last_error}"
        )
