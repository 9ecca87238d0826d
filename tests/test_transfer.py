"""
End-to-end sessions over loopback.

Each test binds the sender to an ephemeral port and points the receiver
at it, so tests never touch the well-known port.
"""

import asyncio
import math
import os
import socket
import stat
import sys

import pytest

from pairshare.config import RetryPolicy
from pairshare.errors import ConnectionRejected, DialError, TransferIOError
from pairshare.session import Role
from pairshare.transfer import (
    AdmissionFilter, Dialer, FileReceiver, FileSender, Handshake, Listener,
)
from pairshare.transfer.transport import PeerConnection

from conftest import RecordingProgress, receiver_config


async def run_session(config, source, expected_address='127.0.0.1',
                      sender_progress=None, receiver_progress=None):
    """Run one sender and one receiver to completion."""
    sender_kwargs = {}
    if sender_progress is not None:
        sender_kwargs['progress_factory'] = sender_progress.factory
    receiver_kwargs = {}
    if receiver_progress is not None:
        receiver_kwargs['progress_factory'] = receiver_progress.factory

    sender = FileSender(config, expected_address, source, **sender_kwargs)
    await sender.start()
    sender_task = asyncio.create_task(sender.run())

    receiver = FileReceiver(receiver_config(config, sender.port), '127.0.0.1',
                            **receiver_kwargs)
    received = await asyncio.wait_for(receiver.run(), timeout=10)
    sent = await asyncio.wait_for(sender_task, timeout=10)
    return sent, received


def write_source(tmp_path, name, data, mode=0o644):
    path = tmp_path / name
    path.write_bytes(data)
    os.chmod(path, mode)
    return path


def unused_port() -> int:
    with socket.socket() as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestRoundTrip:

    @pytest.mark.asyncio
    @pytest.mark.parametrize('size', [1, 1000, 1024, 2048, 5000, 100_000])
    async def test_content_and_chunk_count(self, config, tmp_path, size):
        data = os.urandom(size)
        source = write_source(tmp_path, 'payload.bin', data)

        sent, received = await run_session(config, source)

        expected_chunks = math.ceil(size / 1024)
        assert sent.chunk_count == expected_chunks
        assert received.chunk_count == expected_chunks
        assert received.chunks_transferred == expected_chunks
        assert received.path == config.download_dir / 'payload.bin'
        assert received.path.read_bytes() == data
        assert os.path.getsize(received.path) == size
        assert sent.is_complete and received.is_complete

    @pytest.mark.asyncio
    async def test_empty_file(self, config, tmp_path):
        source = write_source(tmp_path, 'empty.txt', b'')

        sent, received = await run_session(config, source)

        assert sent.chunk_count == 0
        assert received.path.read_bytes() == b''

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == 'win32', reason='POSIX permission bits')
    async def test_permission_bits_preserved(self, config, tmp_path):
        source = write_source(tmp_path, 'run.sh', b'#!/bin/sh\necho hi\n', mode=0o750)

        sent, received = await run_session(config, source)

        assert sent.permissions == 0o750
        assert received.permissions == 0o750
        assert stat.S_IMODE(os.stat(received.path).st_mode) == 0o750

    @pytest.mark.asyncio
    async def test_custom_chunk_size(self, config, tmp_path):
        config.chunk_size = 4096
        data = os.urandom(10_000)
        source = write_source(tmp_path, 'big.bin', data)

        sent, received = await run_session(config, source)

        assert sent.chunk_count == 3
        assert received.path.read_bytes() == data

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_completes(self, config, tmp_path):
        source = write_source(tmp_path, 'p.bin', os.urandom(4500))
        sender_progress = RecordingProgress()
        receiver_progress = RecordingProgress()

        await run_session(config, source, sender_progress=sender_progress,
                          receiver_progress=receiver_progress)

        for progress in (sender_progress, receiver_progress):
            completed = [c for c, _ in progress.calls]
            assert completed == sorted(completed)
            assert progress.calls[0] == (0, 5)
            assert progress.calls[-1] == (5, 5)
            assert len(progress.calls) == 6

    @pytest.mark.asyncio
    async def test_receiving_twice_never_overwrites(self, config, tmp_path):
        data = b'same content'
        source = write_source(tmp_path, 'a.txt', data)

        _, first = await run_session(config, source)
        _, second = await run_session(config, source)

        assert first.path.name == 'a.txt'
        assert second.path.name == 'a(1).txt'
        assert first.path.read_bytes() == second.path.read_bytes() == data

    @pytest.mark.asyncio
    async def test_existing_collisions(self, config, tmp_path):
        config.download_dir.mkdir(parents=True)
        (config.download_dir / 'a.txt').write_bytes(b'old')
        (config.download_dir / 'a(1).txt').write_bytes(b'older')
        source = write_source(tmp_path, 'a.txt', b'new')

        _, received = await run_session(config, source)

        assert received.path.name == 'a(2).txt'
        assert (config.download_dir / 'a.txt').read_bytes() == b'old'

    @pytest.mark.asyncio
    @pytest.mark.skipif(not sys.platform.startswith('linux'),
                        reason='needs a filesystem that stores arbitrary name bytes')
    async def test_undecodable_filename(self, config, tmp_path):
        data = os.urandom(1500)
        source = write_source(tmp_path, os.fsdecode(b'\xff.bin'), data)

        sent, received = await run_session(config, source)

        assert os.fsencode(received.path.name) == b'\xff.bin'
        assert os.listdir(os.fsencode(config.download_dir)) == [b'\xff.bin']
        assert received.path.read_bytes() == data
        assert sent.is_complete


class TestAdmission:

    @pytest.mark.asyncio
    async def test_wrong_address_rejected(self, config, tmp_path):
        source = write_source(tmp_path, 'secret.txt', b'secret')
        sender = FileSender(config, '10.9.8.7', source)
        await sender.start()
        sender_task = asyncio.create_task(sender.run())

        receiver = FileReceiver(receiver_config(config, sender.port), '127.0.0.1')
        with pytest.raises(ConnectionRejected):
            await asyncio.wait_for(receiver.run(), timeout=10)

        # Rejection does not end the sender
        assert sender.listener.rejected_count == 1
        assert sender.listener.is_listening
        assert not sender_task.done()
        assert not config.download_dir.exists() or not any(config.download_dir.iterdir())

        sender_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await sender_task
        assert not sender.listener.is_listening

    @pytest.mark.asyncio
    async def test_rejected_peer_gets_only_zero_byte(self, config, tmp_path):
        source = write_source(tmp_path, 'secret.txt', b'secret')
        sender = FileSender(config, '10.9.8.7', source)
        await sender.start()
        sender_task = asyncio.create_task(sender.run())

        reader, writer = await asyncio.open_connection('127.0.0.1', sender.port)
        everything = await asyncio.wait_for(reader.read(), timeout=10)
        writer.close()

        assert everything == b'\x00'

        sender_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await sender_task

    @pytest.mark.asyncio
    @pytest.mark.skipif(not sys.platform.startswith('linux'),
                        reason='needs the whole 127.0.0.0/8 routed to loopback')
    async def test_reject_then_admit(self, config, tmp_path):
        data = os.urandom(3000)
        source = write_source(tmp_path, 'doc.bin', data)
        sender = FileSender(config, '127.0.0.2', source)
        await sender.start()
        sender_task = asyncio.create_task(sender.run())

        # From 127.0.0.1: rejected
        reader, writer = await asyncio.open_connection('127.0.0.1', sender.port)
        assert await asyncio.wait_for(reader.read(), timeout=10) == b'\x00'
        writer.close()

        # From 127.0.0.2: admitted and served
        reader, writer = await asyncio.open_connection(
            '127.0.0.1', sender.port, local_addr=('127.0.0.2', 0))
        conn = PeerConnection(reader, writer)
        assert await conn.receive_exactly(1) == b'\x01'
        handshake = await Handshake.from_connection(conn)
        body = await asyncio.wait_for(reader.read(), timeout=10)
        await conn.close()

        session = await asyncio.wait_for(sender_task, timeout=10)

        assert handshake.filename == 'doc.bin'
        assert handshake.chunk_count == 3
        assert body == data
        assert sender.listener.rejected_count == 1
        assert session.peer_address == '127.0.0.2'
        assert session.role is Role.SENDER

    @pytest.mark.asyncio
    async def test_second_connection_from_admitted_address_rejected(self):
        listener = Listener(AdmissionFilter('127.0.0.1'), host='127.0.0.1', port=0)
        await listener.start()

        first_reader, first_writer = await asyncio.open_connection('127.0.0.1', listener.port)
        assert await asyncio.wait_for(first_reader.readexactly(1), timeout=10) == b'\x01'

        second_reader, second_writer = await asyncio.open_connection('127.0.0.1', listener.port)
        everything = await asyncio.wait_for(second_reader.read(), timeout=10)
        second_writer.close()

        assert everything == b'\x00'
        assert listener.rejected_count == 1

        admitted = await asyncio.wait_for(listener.accept(), timeout=10)
        assert admitted.remote_host == '127.0.0.1'
        assert not listener.is_listening
        await admitted.close()
        first_writer.close()


class TestFailures:

    @pytest.mark.asyncio
    async def test_sender_closes_early(self, config, tmp_path):
        # A fake sender that announces 3 chunks but sends one
        async def fake_sender(reader, writer):
            writer.write(b'\x01' + Handshake('cut.bin', 0o644, 3).to_bytes() + b'x' * 1024)
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(fake_sender, '127.0.0.1', 0)
        port = server.sockets[0].getsockname()[1]
        try:
            receiver = FileReceiver(receiver_config(config, port), '127.0.0.1')
            with pytest.raises(TransferIOError):
                await asyncio.wait_for(receiver.run(), timeout=10)
        finally:
            server.close()

        assert receiver.session.chunks_transferred == 1

    @pytest.mark.asyncio
    async def test_source_removed_before_admission(self, config, tmp_path):
        source = write_source(tmp_path, 'gone.txt', b'data')
        sender = FileSender(config, '127.0.0.1', source)
        await sender.start()
        sender_task = asyncio.create_task(sender.run())
        source.unlink()

        reader, writer = await asyncio.open_connection('127.0.0.1', sender.port)
        try:
            with pytest.raises(TransferIOError):
                await asyncio.wait_for(sender_task, timeout=10)
        finally:
            writer.close()


class TestDialer:

    @pytest.mark.asyncio
    async def test_bounded_policy_gives_up(self):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        dialer = Dialer('127.0.0.1', unused_port(),
                        policy=RetryPolicy(interval=0.25, max_attempts=3),
                        sleep=fake_sleep)

        with pytest.raises(DialError):
            await dialer.dial()

        assert dialer.attempts == 3
        # No sleep after the final attempt
        assert sleeps == [0.25, 0.25]

    @pytest.mark.asyncio
    async def test_retries_until_sender_appears(self, config, tmp_path):
        port = unused_port()
        config.port = port
        source = write_source(tmp_path, 'late.txt', b'worth the wait')

        receiver = FileReceiver(config, '127.0.0.1')
        receive_task = asyncio.create_task(receiver.run())
        await asyncio.sleep(0.1)

        sender = FileSender(config, '127.0.0.1', source)
        await sender.start()
        sent = await asyncio.wait_for(sender.run(), timeout=10)
        received = await asyncio.wait_for(receive_task, timeout=10)

        assert receiver.dialer.attempts > 1
        assert received.path.read_bytes() == b'worth the wait'
        assert sent.bytes_transferred == len(b'worth the wait')
