"""
Destination Naming

The receiver never overwrites. If the incoming name is taken, a counter
is inserted before the extension:

    a.txt   -> a(1).txt -> a(2).txt -> ...
    report  -> report(1)

The extension starts at the last '.', so archive.tar.gz becomes
archive.tar(1).gz. A name can still be taken between the probe and the
exclusive create; that race surfaces as an error instead of an overwrite.
"""

import itertools
import logging
import os
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

from ..errors import NamingError, TransferIOError

logger = logging.getLogger(__name__)


def split_extension(filename: str) -> Tuple[str, str]:
    """Split at the last '.', keeping the dot with the extension."""
    index = filename.rfind('.')
    if index == -1:
        return filename, ''
    return filename[:index], filename[index:]


def _exists(path: Path) -> bool:
    # Dangling symlinks count as taken
    return os.path.lexists(path)


def resolve_destination(filename: str, directory: Path = Path('.'),
                        max_probes: Optional[int] = None) -> Path:
    """
    Pick a name in directory that does not exist yet.

    Args:
        filename: Name sent by the peer
        directory: Where the file will be written
        max_probes: Numbered names to try before giving up (None: no limit)

    Raises:
        NamingError: every probed name was taken
    """
    directory = Path(directory)
    candidate = directory / filename
    if not _exists(candidate):
        return candidate

    stem, extension = split_extension(filename)
    numbers = itertools.count(1) if max_probes is None else range(1, max_probes + 1)

    for number in numbers:
        candidate = directory / f"{stem}({number}){extension}"
        if not _exists(candidate):
            logger.debug(f"{filename} exists, using {candidate.name}")
            return candidate

    raise NamingError(
        f"No free name for {filename} in {directory} after {max_probes} probes"
    )


def create_destination(path: Path, permissions: int):
    """
    Open path for writing, failing if it already exists.

    The file gets exactly the given permission bits, independent of the
    process umask.

    Returns:
        An aiofiles context manager yielding the open binary file
    """
    mode = permissions & 0o7777

    def opener(file: str, flags: int) -> int:
        fd = os.open(file, flags, mode)
        if hasattr(os, 'fchmod'):
            try:
                os.fchmod(fd, mode)
            except OSError:
                os.close(fd)
                raise
        return fd

    return aiofiles.open(path, 'xb', opener=opener)


async def open_destination(path: Path, permissions: int):
    """Like create_destination, but awaited, with errors as TransferIOError."""
    try:
        return await create_destination(path, permissions)
    except FileExistsError as e:
        raise TransferIOError(f"{path} was created by someone else first") from e
    except OSError as e:
        raise TransferIOError(f"Cannot create {path}: {e}") from e
