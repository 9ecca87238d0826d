"""
File Chunker

Design Decision: Chunk Size
===========================

Both peers must agree on the chunk size, since chunks carry no framing
and the receiver only knows how many to expect.

Decision: 1KB (1,024 bytes)
- Matches what deployed peers already expect
- Progress updates stay fine-grained even for small files
- Overridable through Config for in-process sessions and tests

Chunking Strategy: Fixed-Size, Sequential
- Chunk i covers bytes [i * size, min((i + 1) * size, file_size))
- Only the last chunk may be shorter
- Read strictly in order, one chunk in flight
"""

from pathlib import Path
from typing import AsyncIterator, Tuple
import aiofiles

from ..errors import SourceChangedError

# Chunk size: 1KB
CHUNK_SIZE = 1024


class FileChunker:
    """Splits files into fixed-size chunks for streaming."""

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"chunk size must be positive: {chunk_size}")
        self.chunk_size = chunk_size

    def get_chunk_count(self, file_size: int) -> int:
        """Calculate number of chunks for a file of given size."""
        return (file_size + self.chunk_size - 1) // self.chunk_size

    def get_chunk_bounds(self, chunk_index: int, file_size: int) -> Tuple[int, int]:
        """
        Get byte range for a specific chunk.

        Returns:
            (start_offset, length) tuple
        """
        start = chunk_index * self.chunk_size
        length = min(self.chunk_size, file_size - start)
        return start, length

    async def chunk_file(self, file_path: Path,
                         file_size: int) -> AsyncIterator[Tuple[int, bytes]]:
        """
        Split a file into chunks.

        file_size is the size announced to the peer. Reading stops after
        that many bytes even if the file has grown since.

        Yields:
            (chunk_index, chunk_data) tuples

        Raises:
            SourceChangedError: the file ended before file_size bytes
        """
        chunk_count = self.get_chunk_count(file_size)

        async with aiofiles.open(file_path, 'rb') as f:
            for chunk_index in range(chunk_count):
                _, length = self.get_chunk_bounds(chunk_index, file_size)
                chunk_data = await f.read(length)

                if len(chunk_data) != length:
                    raise SourceChangedError(
                        f"{file_path} shrank during transfer: chunk {chunk_index} "
                        f"has {len(chunk_data)} of {length} bytes"
                    )

                yield chunk_index, chunk_data
