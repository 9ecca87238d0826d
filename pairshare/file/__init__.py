"""
File Module - Chunking and Destination Naming

This module handles file operations for the transfer tool.
"""

from .chunker import FileChunker, CHUNK_SIZE
from .destination import create_destination, open_destination, resolve_destination

__all__ = [
    'FileChunker',
    'CHUNK_SIZE',
    'create_destination',
    'open_destination',
    'resolve_destination',
]
