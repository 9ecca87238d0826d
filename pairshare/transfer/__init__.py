"""
Transfer Module - Sending and Receiving

Handles the TCP session between the two peers: admission, handshake and
the chunk stream.
"""

from .admission import AdmissionFilter
from .protocol import Handshake, display_name, encode_admission, read_admission
from .transport import Dialer, Listener, PeerConnection
from .sender import FileSender
from .receiver import FileReceiver

__all__ = [
    'AdmissionFilter',
    'Handshake',
    'display_name',
    'encode_admission',
    'read_admission',
    'Dialer',
    'Listener',
    'PeerConnection',
    'FileSender',
    'FileReceiver',
]
