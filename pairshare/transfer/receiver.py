"""
File Receiver

Receiving side of a session:
1. Dial the sender until it answers
2. Read the admission byte (0 ends the session, 1 continues)
3. Read the handshake
4. Pick a name that does not exist yet and create it exclusively
5. Append exactly chunk_count chunks
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..config import Config
from ..errors import ConnectionRejected, TransferIOError
from ..file.destination import open_destination, resolve_destination
from ..progress import ProgressFactory, null_progress_factory
from ..session import Role, TransferSession
from .protocol import Handshake, display_name, read_admission
from .stream import receive_chunks
from .transport import Dialer, Sleep

logger = logging.getLogger(__name__)


class FileReceiver:
    """
    Receives one file from a sender.

    Usage:
        receiver = FileReceiver(config, '192.168.1.10')
        session = await receiver.run()
        print(session.path)
    """

    def __init__(self, config: Config, address: str,
                 progress_factory: ProgressFactory = null_progress_factory,
                 download_dir: Optional[Path] = None,
                 sleep: Sleep = asyncio.sleep):
        self.config = config
        self.address = address
        self.progress_factory = progress_factory
        self.download_dir = Path(download_dir if download_dir is not None
                                 else config.download_dir)
        self.dialer = Dialer(
            address,
            port=config.port,
            policy=config.retry_policy(),
            connect_timeout=config.connect_timeout,
            sleep=sleep,
        )
        self.session = TransferSession(role=Role.RECEIVER, peer_address=address)

    async def run(self) -> TransferSession:
        """
        Run the whole session.

        Returns:
            The finished session; session.path is where the file was written

        Raises:
            ConnectionRejected: the sender did not admit this address
        """
        conn = await self.dialer.dial()

        try:
            if not await read_admission(conn):
                raise ConnectionRejected(
                    f"Connection rejected by {self.address}, perhaps your "
                    f"address was mistyped on the other end?"
                )
            logger.info("Connection accepted!")

            handshake = await Handshake.from_connection(conn)
            logger.info(f"Receiving \"{display_name(handshake.filename)}\"")

            try:
                self.download_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise TransferIOError(f"Cannot create {self.download_dir}: {e}") from e

            destination = resolve_destination(
                handshake.filename,
                self.download_dir,
                max_probes=self.config.max_name_probes,
            )
            self.session.path = destination
            self.session.filename = handshake.filename
            self.session.permissions = handshake.permissions
            self.session.chunk_count = handshake.chunk_count

            progress = self.progress_factory(Role.RECEIVER, display_name(handshake.filename))
            f = await open_destination(destination, handshake.permissions)
            try:
                await receive_chunks(
                    conn, f, self.session, progress,
                    chunk_size=self.config.chunk_size,
                )
            finally:
                await f.close()
                close = getattr(progress, 'close', None)
                if close is not None:
                    close()

            self.session.finish()
            logger.debug(f"Saved to {destination}")
            return self.session
        finally:
            await conn.close()
