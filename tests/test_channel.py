import pytest
import tempfile
import os
import threading
import time
from cmdqueue.channel import SubmissionChannel
from cmdqueue.exceptions import (
    ChannelError,
    MalformedSubmissionError,
    MessageTooLargeError,
    ReceiverGoneError,
    SetupError,
)


@pytest.fixture
def runtime_dir():
    with tempfile.TemporaryDirectory() as path:
        yield path


@pytest.fixture
def channel(runtime_dir):
    channel = SubmissionChannel(os.path.join(runtime_dir, 'test.fifo'), frame_size=64)
    yield channel
    channel.close()
    channel.remove()


def test_encode_frame_pads_to_frame_size(channel):
    frame = channel.encode_frame('echo hello')

    assert len(frame) == 64
    assert frame.startswith(b'echo hello\0')
    assert channel.decode_frame(frame) == 'echo hello'


def test_command_at_limit_is_accepted(channel):
    command = 'x' * 63

    assert channel.decode_frame(channel.encode_frame(command)) == command


def test_oversized_command_rejected(channel):
    with pytest.raises(MessageTooLargeError, match="limit is 63 bytes"):
        channel.encode_frame('x' * 64)


def test_multibyte_command_measured_in_bytes(channel):
    with pytest.raises(MessageTooLargeError):
        channel.encode_frame('é' * 32)


def test_empty_command_rejected(channel):
    with pytest.raises(MalformedSubmissionError):
        channel.encode_frame('')


def test_nul_in_command_rejected(channel):
    with pytest.raises(MalformedSubmissionError, match="NUL"):
        channel.encode_frame('echo a\0b')


def test_decode_rejects_empty_and_invalid_frames(channel):
    with pytest.raises(MalformedSubmissionError):
        channel.decode_frame(b'\0' * 64)

    with pytest.raises(MalformedSubmissionError, match="UTF-8"):
        channel.decode_frame(b'\xff\xfe'.ljust(64, b'\0'))


def test_send_and_read_round_trip(channel):
    channel.create()

    channel.send('echo one', timeout=1)
    channel.send('echo two', timeout=1)

    frames = channel.read_frames()
    assert [channel.decode_frame(f) for f in frames] == ['echo one', 'echo two']
    assert channel.read_frames() == []


def test_partial_frame_is_buffered(channel):
    channel.create()
    frame = channel.encode_frame('echo split')

    fd = os.open(channel.path, os.O_WRONLY)
    try:
        os.write(fd, frame[:20])
        assert channel.read_frames() == []

        os.write(fd, frame[20:])
        frames = channel.read_frames()
    finally:
        os.close(fd)

    assert [channel.decode_frame(f) for f in frames] == ['echo split']


def test_send_without_reader_fails(channel):
    os.mkfifo(channel.path, 0o600)

    with pytest.raises(ChannelError, match="has no reader"):
        channel.send('echo lost', timeout=0.1)


def test_send_without_channel_fails(channel):
    with pytest.raises(ChannelError, match="does not exist"):
        channel.send('echo lost', timeout=0.1)


def test_send_to_regular_file_fails(channel):
    with open(channel.path, 'w') as f:
        f.write('not a pipe')

    with pytest.raises(ChannelError, match="not a named pipe"):
        channel.send('echo lost', timeout=0.1)


def test_oversized_command_not_written(channel):
    channel.create()

    with pytest.raises(MessageTooLargeError):
        channel.send('x' * 100, timeout=0.1)

    assert channel.read_frames() == []


def test_create_replaces_stale_path(channel):
    with open(channel.path, 'w') as f:
        f.write('stale')

    channel.create()

    assert channel.exists()


def test_create_fails_when_path_is_directory(channel):
    os.mkdir(channel.path)

    with pytest.raises(SetupError):
        channel.create()

    os.rmdir(channel.path)


def test_read_requires_open_channel(channel):
    with pytest.raises(ChannelError):
        channel.read_frames()


def test_remove_is_idempotent(channel):
    channel.create()
    channel.close()

    channel.remove()
    channel.remove()

    assert not os.path.exists(channel.path)


def test_send_stops_waiting_when_receiver_gone(channel):
    os.mkfifo(channel.path, 0o600)
    started = time.monotonic()

    with pytest.raises(ReceiverGoneError):
        channel.send('echo lost', timeout=5, abort_if=lambda: True)

    assert time.monotonic() - started < 1


def test_remove_own_leaves_replacement_pipe(channel):
    channel.create()
    channel.close()
    os.unlink(channel.path)
    os.mkfifo(channel.path, 0o600)

    channel.remove_own()

    assert channel.exists()


def test_remove_own_unlinks_created_pipe(channel):
    channel.create()

    channel.remove_own()

    assert not os.path.exists(channel.path)
    assert channel.is_open


def test_read_remaining_collects_writes_after_unlink(channel):
    channel.create()
    channel.send('echo early', timeout=0.1)
    writer = os.open(channel.path, os.O_WRONLY | os.O_NONBLOCK)
    channel.remove_own()

    def write_late():
        time.sleep(0.05)
        os.write(writer, channel.encode_frame('echo late'))
        os.close(writer)

    thread = threading.Thread(target=write_late)
    thread.start()
    frames = channel.read_remaining(timeout=2)
    thread.join()

    assert [channel.decode_frame(frame) for frame in frames] == ['echo early', 'echo late']


def test_read_remaining_gives_up_on_idle_writer(channel):
    channel.create()
    writer = os.open(channel.path, os.O_WRONLY | os.O_NONBLOCK)

    try:
        channel.remove_own()
        assert channel.read_remaining(timeout=0.1) == []
    finally:
        os.close(writer)
