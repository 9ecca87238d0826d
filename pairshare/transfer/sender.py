"""
File Sender

Sending side of a session:
1. Listen on the configured port
2. Reject every connection not coming from the expected address
3. Send the handshake (filename, permission bits, chunk count)
4. Stream the file in chunks, then close
"""

import logging
import os
import stat
from pathlib import Path
from typing import Tuple

from ..config import Config
from ..errors import TransferIOError
from ..file.chunker import FileChunker
from ..progress import ProgressFactory, null_progress_factory
from ..session import Role, TransferSession
from .admission import AdmissionFilter
from .protocol import Handshake, display_name
from .stream import send_chunks
from .transport import Listener

logger = logging.getLogger(__name__)


def describe_file(path: Path, chunk_size: int) -> Tuple[Handshake, int]:
    """
    Build the handshake for a file.

    Returns:
        (handshake, file_size) tuple
    """
    try:
        info = os.stat(path)
    except OSError as e:
        raise TransferIOError(f"Cannot stat {path}: {e}") from e

    if not stat.S_ISREG(info.st_mode):
        raise TransferIOError(f"{path} is not a regular file")

    handshake = Handshake(
        filename=Path(path).name,
        permissions=stat.S_IMODE(info.st_mode),
        chunk_count=FileChunker(chunk_size).get_chunk_count(info.st_size),
    )
    return handshake, info.st_size


class FileSender:
    """
    Sends one file to the one peer allowed to connect.

    Usage:
        sender = FileSender(config, '192.168.1.20', Path('notes.txt'))
        session = await sender.run()
    """

    def __init__(self, config: Config, expected_address: str, path: Path,
                 progress_factory: ProgressFactory = null_progress_factory):
        self.config = config
        self.path = Path(path)
        self.progress_factory = progress_factory
        self.listener = Listener(
            AdmissionFilter(expected_address),
            host=config.host,
            port=config.port,
        )
        self.session = TransferSession(
            role=Role.SENDER,
            peer_address=expected_address,
            path=self.path,
            filename=self.path.name,
        )

    @property
    def port(self) -> int:
        return self.listener.port

    async def start(self):
        """Start listening without waiting for the peer."""
        if self.listener.server is None:
            await self.listener.start()

    async def run(self) -> TransferSession:
        """Run the whole session and return it once the last chunk is sent."""
        await self.start()
        conn = await self.listener.accept()

        try:
            handshake, file_size = describe_file(self.path, self.config.chunk_size)
            self.session.permissions = handshake.permissions
            self.session.chunk_count = handshake.chunk_count
            logger.debug(f"filename: {display_name(handshake.filename)}")
            logger.debug(f"perm: {handshake.permissions:#o}")
            logger.debug(f"chunk-count: {handshake.chunk_count}")

            await conn.send(handshake.to_bytes())
            logger.info("Filename sent")
            logger.info("Permissions sent")
            logger.info("Chunk count sent")

            progress = self.progress_factory(Role.SENDER, display_name(handshake.filename))
            try:
                await send_chunks(
                    conn, self.path, file_size, self.session, progress,
                    chunk_size=self.config.chunk_size,
                )
            finally:
                close = getattr(progress, 'close', None)
                if close is not None:
                    close()

            self.session.finish()
            return self.session
        finally:
            await conn.close()
