import errno
import os
import stat
import time
from typing import Callable, List, Optional, Tuple
from .exceptions import (
    ChannelError,
    MalformedSubmissionError,
    MessageTooLargeError,
    ReceiverGoneError,
    SetupError,
)
from .logging_utils import setup_logging


FRAMES_PER_READ = 64


class SubmissionChannel:
    """Named pipe carrying fixed-size, NUL-padded command frames.

    Each submission is exactly one frame of ``frame_size`` bytes, written with
    a single ``write`` call. Frames never exceed PIPE_BUF, so writes from
    concurrent submitters do not interleave.
    """

    def __init__(self, path: str, frame_size: int = 1024):
        self.path = path
        self.frame_size = frame_size
        self.logger = setup_logging()
        self._fd: Optional[int] = None
        self._buffer = bytearray()
        self._identity: Optional[Tuple[int, int]] = None

    @property
    def max_command_bytes(self) -> int:
        return self.frame_size - 1

    def encode_frame(self, command: str) -> bytes:
        if not command:
            raise MalformedSubmissionError("Command must not be empty")
        if '\0' in command:
            raise MalformedSubmissionError("Command must not contain NUL characters")

        payload = command.encode('utf-8')
        if len(payload) > self.max_command_bytes:
            raise MessageTooLargeError(
                f"Command is {len(payload)} bytes, the limit is {self.max_command_bytes} bytes"
            )
        return payload.ljust(self.frame_size, b'\0')

    def decode_frame(self, frame: bytes) -> str:
        payload = frame.split(b'\0', 1)[0]
        if not payload:
            raise MalformedSubmissionError("Received an empty submission")
        try:
            return payload.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedSubmissionError(f"Submission is not valid UTF-8: {e}")

    @property
    def is_open(self) -> bool:
        return self._fd is not None

    def exists(self) -> bool:
        try:
            return stat.S_ISFIFO(os.stat(self.path).st_mode)
        except FileNotFoundError:
            return False

    def create(self):
        try:
            os.makedirs(os.path.dirname(self.path) or '.', mode=0o700, exist_ok=True)
            if os.path.lexists(self.path):
                os.unlink(self.path)
            os.mkfifo(self.path, 0o600)
            created = os.stat(self.path)
        except OSError as e:
            raise SetupError(f"Could not create submission channel {self.path}: {e}")

        self._identity = (created.st_dev, created.st_ino)

        try:
            self._fd = os.open(self.path, os.O_RDONLY | os.O_NONBLOCK)
        except OSError as e:
            self.remove_own()
            raise SetupError(f"Could not open submission channel {self.path}: {e}")

        self.logger.debug(f"Opened submission channel {self.path}")

    def _read_available(self) -> Optional[bytes]:
        """Read whatever is pending.

        Returns ``None`` while a writer holds the pipe open with nothing
        pending, and ``b''`` once no writer has it open.
        """
        if self._fd is None:
            raise ChannelError("Submission channel is not open for reading")

        try:
            return os.read(self._fd, self.frame_size * FRAMES_PER_READ)
        except BlockingIOError:
            return None
        except OSError as e:
            raise ChannelError(f"Could not read from submission channel: {e}")

    def _take_frames(self) -> List[bytes]:
        frames = []
        while len(self._buffer) >= self.frame_size:
            frames.append(bytes(self._buffer[:self.frame_size]))
            del self._buffer[:self.frame_size]
        return frames

    def read_frames(self) -> List[bytes]:
        data = self._read_available()
        if data:
            self._buffer.extend(data)
        return self._take_frames()

    def read_remaining(self, timeout: float = 5.0) -> List[bytes]:
        """Collect every frame still in the pipe after the path is unlinked.

        Once the path is gone no new writer can open the pipe, so reading
        until end-of-file picks up submitters that opened it just before.
        """
        deadline = time.monotonic() + timeout

        while True:
            data = self._read_available()
            if data:
                self._buffer.extend(data)
                continue
            if data == b'':
                break
            if time.monotonic() >= deadline:
                self.logger.warning(
                    f"A submitter still holds {self.path} open, "
                    f"closing it after {timeout} seconds"
                )
                break
            time.sleep(0.01)

        frames = self._take_frames()
        if self._buffer:
            self.logger.warning(f"Discarding {len(self._buffer)} bytes of an incomplete submission")
            self._buffer.clear()
        return frames

    def send(self, command: str, timeout: float = 5.0,
             abort_if: Optional[Callable[[], bool]] = None):
        frame = self.encode_frame(command)
        fd = self._open_for_writing(timeout, abort_if)

        try:
            if not stat.S_ISFIFO(os.fstat(fd).st_mode):
                raise ChannelError(f"{self.path} is not a named pipe")
            os.set_blocking(fd, True)
            written = os.write(fd, frame)
        except OSError as e:
            raise ChannelError(f"Could not write to submission channel: {e}")
        finally:
            os.close(fd)

        if written != len(frame):
            raise ChannelError(f"Short write to submission channel ({written} of {len(frame)} bytes)")

    def _open_for_writing(self, timeout: float,
                          abort_if: Optional[Callable[[], bool]] = None) -> int:
        deadline = time.monotonic() + timeout

        while True:
            try:
                return os.open(self.path, os.O_WRONLY | os.O_NONBLOCK)
            except FileNotFoundError:
                reason = "does not exist"
            except OSError as e:
                if e.errno != errno.ENXIO:
                    raise ChannelError(f"Could not open submission channel {self.path}: {e}")
                reason = "has no reader"

            if abort_if is not None and abort_if():
                raise ReceiverGoneError(f"Submission channel {self.path} {reason} and its owner is gone")
            if time.monotonic() >= deadline:
                raise ChannelError(f"Submission channel {self.path} {reason}")
            time.sleep(0.05)

    def close(self):
        if self._fd is not None:
            try:
                os.close(self._fd)
            except OSError:
                pass
            self._fd = None
        self._buffer.clear()

    def remove(self):
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass

    def remove_own(self):
        """Unlink the path only while it is still the pipe this object created."""
        if self._identity is None:
            return
        try:
            current = os.stat(self.path)
        except FileNotFoundError:
            return
        if (current.st_dev, current.st_ino) != self._identity:
            return
        self.remove()
