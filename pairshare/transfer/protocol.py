"""
Transfer Protocol

Design Decision: Handshake Framing
==================================

Options Considered:
1. Bare filename, one read captures it
   - What the first version of the tool did
   - Breaks as soon as TCP splits or coalesces the first segments

2. Delimiter-terminated filename
   - Needs escaping, filenames can contain almost anything

3. Length-prefixed filename
   - One extra fixed-width field
   - Reader always knows how much to consume

Decision: Length-Prefixed Filename + Fixed-Width Integers
- 4-byte big-endian length, then the raw filename bytes (at most 1024)
- 4-byte big-endian permission bits, passed through untouched
- 8-byte big-endian chunk count

Session Layout (sender -> receiver only):
```
+-----------+-------------+-----------+------------+--------------+---------+
| Admit (1B)| NameLen (4B)| Name      | Perms (4B) | Chunks (8B)  | Chunks  |
+-----------+-------------+-----------+------------+--------------+---------+
```
Admit is 0 (rejected, connection closes) or 1 (accepted). Chunks follow
with no per-chunk framing.
"""

import logging
import os
import struct
from dataclasses import dataclass

from ..errors import ProtocolError

logger = logging.getLogger(__name__)

ADMISSION_REJECTED = 0
ADMISSION_ACCEPTED = 1

MAX_FILENAME_BYTES = 1024

NAME_LENGTH = struct.Struct('>I')
PERMISSIONS = struct.Struct('>I')
CHUNK_COUNT = struct.Struct('>Q')

MAX_PERMISSIONS = 0xFFFFFFFF
MAX_CHUNK_COUNT = 0xFFFFFFFFFFFFFFFF

# Padding a peer may leave after the name
_NAME_PADDING = ' \t\r\n\x00\x0b\x0c'


def encode_admission(accepted: bool) -> bytes:
    """Single admission byte."""
    return bytes([ADMISSION_ACCEPTED if accepted else ADMISSION_REJECTED])


async def read_admission(conn) -> bool:
    """
    Read the admission byte.

    Returns:
        True if accepted, False if rejected

    Raises:
        ProtocolError: the byte is neither 0 nor 1
    """
    raw = await conn.receive_exactly(1)
    value = raw[0]
    logger.debug(f"accepted/rejected: {value}")

    if value == ADMISSION_ACCEPTED:
        return True
    if value == ADMISSION_REJECTED:
        return False
    raise ProtocolError(
        f"Admission value was {value}, expected {ADMISSION_REJECTED} "
        f"or {ADMISSION_ACCEPTED}"
    )


def display_name(name: str) -> str:
    """Printable form of a filename that may hold undecodable bytes."""
    return name.encode('utf-8', 'surrogateescape').decode('utf-8', 'replace')


def clean_filename(raw: str) -> str:
    """Trim padding and drop any directory component."""
    name = raw.rstrip(_NAME_PADDING)
    # Never let a peer choose the directory
    name = os.path.basename(name.replace('\\', '/'))
    if name in ('', '.', '..'):
        raise ProtocolError(f"Unusable filename {raw!r}")
    return name


@dataclass
class Handshake:
    """The header sent once per session, right after admission."""
    filename: str
    permissions: int
    chunk_count: int

    def __post_init__(self):
        if not 0 <= self.permissions <= MAX_PERMISSIONS:
            raise ProtocolError(f"Permission bits out of range: {self.permissions}")
        if not 0 <= self.chunk_count <= MAX_CHUNK_COUNT:
            raise ProtocolError(f"Chunk count out of range: {self.chunk_count}")

    def to_bytes(self) -> bytes:
        """Serialize the handshake."""
        # Names are bytes on disk; undecodable ones round-trip through surrogates
        name_bytes = os.fsencode(self.filename)
        if not name_bytes:
            raise ProtocolError("Filename is empty")
        if len(name_bytes) > MAX_FILENAME_BYTES:
            raise ProtocolError(
                f"Filename is {len(name_bytes)} bytes, limit is {MAX_FILENAME_BYTES}"
            )

        return (
            NAME_LENGTH.pack(len(name_bytes)) +
            name_bytes +
            PERMISSIONS.pack(self.permissions) +
            CHUNK_COUNT.pack(self.chunk_count)
        )

    @classmethod
    async def from_connection(cls, conn) -> 'Handshake':
        """Read a handshake from a connection, field by field."""
        name_length = NAME_LENGTH.unpack(await conn.receive_exactly(NAME_LENGTH.size))[0]
        if name_length == 0 or name_length > MAX_FILENAME_BYTES:
            raise ProtocolError(f"Invalid filename length: {name_length}")

        name_bytes = await conn.receive_exactly(name_length)
        filename = clean_filename(os.fsdecode(name_bytes))
        logger.debug(f"received filename: {display_name(filename)}")

        permissions = PERMISSIONS.unpack(await conn.receive_exactly(PERMISSIONS.size))[0]
        logger.debug(f"received perm: {permissions:#o}")

        chunk_count = CHUNK_COUNT.unpack(await conn.receive_exactly(CHUNK_COUNT.size))[0]
        logger.debug(f"received chunk-count: {chunk_count}")

        return cls(filename=filename, permissions=permissions, chunk_count=chunk_count)
