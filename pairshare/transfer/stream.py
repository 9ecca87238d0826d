"""
Chunk Stream Engine

Runs the data phase once the handshake is done. Completion is defined by
the chunk count announced in the handshake, not by end of stream: the
sender writes exactly that many chunks, the receiver performs exactly
that many read-and-append cycles.

Chunks have no framing on the wire. Every chunk but the last is full
size, so the receiver reads those exactly; the last one is read until it
is full or the sender closes the connection.
"""

import logging
from pathlib import Path

from ..errors import TransferIOError
from ..file.chunker import CHUNK_SIZE, FileChunker
from ..session import TransferSession
from .transport import PeerConnection

logger = logging.getLogger(__name__)


async def send_chunks(conn: PeerConnection, source: Path, file_size: int,
                      session: TransferSession, progress,
                      chunk_size: int = CHUNK_SIZE):
    """
    Stream session.chunk_count chunks of source to the peer.

    Args:
        conn: Admitted connection
        source: File to read
        file_size: Size announced in the handshake
        session: Updated after every chunk
        progress: Called with (completed, total)
        chunk_size: Must match the receiver's
    """
    chunker = FileChunker(chunk_size)
    progress(session.chunks_transferred, session.chunk_count)

    try:
        async for _, chunk_data in chunker.chunk_file(source, file_size):
            await conn.send(chunk_data)
            session.record_chunk(len(chunk_data))
            progress(session.chunks_transferred, session.chunk_count)
    except OSError as e:
        raise TransferIOError(f"Reading {source} failed: {e}") from e

    await conn.finish_sending()
    logger.debug(f"Sent {session.chunks_transferred} chunks, {session.bytes_transferred:,} bytes")


async def receive_chunks(conn: PeerConnection, destination,
                         session: TransferSession, progress,
                         chunk_size: int = CHUNK_SIZE):
    """
    Read session.chunk_count chunks from the peer and append them.

    Args:
        conn: Connection positioned right after the handshake
        destination: Open binary aiofiles file
        session: Updated after every chunk
        progress: Called with (completed, total)
        chunk_size: Must match the sender's
    """
    progress(session.chunks_transferred, session.chunk_count)

    for chunk_index in range(session.chunk_count):
        if chunk_index < session.chunk_count - 1:
            chunk_data = await conn.receive_exactly(chunk_size)
        else:
            chunk_data = await conn.receive_up_to(chunk_size)
            if not chunk_data:
                raise TransferIOError(
                    f"Connection closed before chunk {chunk_index + 1} of {session.chunk_count}"
                )

        try:
            await destination.write(chunk_data)
        except OSError as e:
            raise TransferIOError(f"Writing {session.path} failed: {e}") from e

        session.record_chunk(len(chunk_data))
        progress(session.chunks_transferred, session.chunk_count)

    logger.debug(f"Received {session.chunks_transferred} chunks, {session.bytes_transferred:,} bytes")
