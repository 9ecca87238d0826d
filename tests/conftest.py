"""Shared helpers for the transfer tests."""

import asyncio
import dataclasses
from typing import List, Tuple

import pytest

from pairshare.config import Config
from pairshare.transfer.transport import PeerConnection


class RecordingProgress:
    """Progress reporter that remembers every update."""

    def __init__(self):
        self.calls: List[Tuple[int, int]] = []

    def __call__(self, completed: int, total: int) -> None:
        self.calls.append((completed, total))

    def factory(self, role, filename):
        return self


def connection_from_bytes(data: bytes, eof: bool = True) -> PeerConnection:
    """A read-only PeerConnection over canned bytes. Needs a running loop."""
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return PeerConnection(reader, None)


def receiver_config(sender_config: Config, port: int, **overrides) -> Config:
    """Receiver settings pointing at a sender bound to port."""
    return dataclasses.replace(sender_config, port=port, **overrides)


@pytest.fixture
def config(tmp_path) -> Config:
    """Loopback settings with an ephemeral port and fast, bounded redial."""
    return Config(
        host='127.0.0.1',
        port=0,
        retry_interval=0.01,
        max_dial_attempts=500,
        connect_timeout=2.0,
        download_dir=tmp_path / 'downloads',
        show_progress=False,
    )


@pytest.fixture
def recorder() -> RecordingProgress:
    return RecordingProgress()
