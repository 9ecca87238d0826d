"""
pairshare - Peer-to-Peer Single File Transfer

One side sends (listens, admits a pre-agreed IP, streams a file), the
other receives (dials until connected, writes the file under a name that
does not collide with anything already on disk).
"""

from .config import Config, RetryPolicy, load_config
from .session import Role, TransferSession
from .transfer import FileReceiver, FileSender

__version__ = '0.1.0'

__all__ = [
    'Config',
    'RetryPolicy',
    'load_config',
    'Role',
    'TransferSession',
    'FileReceiver',
    'FileSender',
]
