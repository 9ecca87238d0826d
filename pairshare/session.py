"""
Transfer Session

One file moving in one direction, from connection to final chunk. The
session is created by the sender or receiver, updated by the stream
engine after every chunk, and returned to the caller when it ends.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class Role(Enum):
    """Which end of the transfer this process is."""
    SENDER = 'sender'
    RECEIVER = 'receiver'


@dataclass
class TransferSession:
    """State of a single transfer."""
    role: Role
    peer_address: str
    path: Optional[Path] = None  # source for the sender, destination for the receiver
    filename: str = ''
    permissions: int = 0
    chunk_count: int = 0
    chunks_transferred: int = 0
    bytes_transferred: int = 0
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        return self.finished_at is not None and self.chunks_transferred == self.chunk_count

    @property
    def elapsed_seconds(self) -> float:
        """Time since the session started (or its total duration once finished)."""
        end = self.finished_at if self.finished_at is not None else time.time()
        return max(0.0, end - self.started_at)

    def record_chunk(self, size: int):
        """Count one more transferred chunk."""
        if self.chunks_transferred >= self.chunk_count:
            raise ValueError(
                f"chunk {self.chunks_transferred + 1} exceeds announced count {self.chunk_count}"
            )
        self.chunks_transferred += 1
        self.bytes_transferred += size

    def finish(self):
        self.finished_at = time.time()

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'role': self.role.value,
            'peer_address': self.peer_address,
            'path': str(self.path) if self.path else None,
            'filename': self.filename,
            'permissions': self.permissions,
            'chunk_count': self.chunk_count,
            'chunks_transferred': self.chunks_transferred,
            'bytes_transferred': self.bytes_transferred,
            'elapsed_seconds': self.elapsed_seconds,
            'complete': self.is_complete,
        }
