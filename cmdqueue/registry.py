import os
import time
from pathlib import Path
from typing import Optional
from .logging_utils import setup_logging


class OwnershipRegistry:
    """PID marker recording which process owns the shared queue."""

    def __init__(self, pid_path: str):
        self.pid_file = Path(pid_path)
        self.logger = setup_logging()

    def claim(self, pid: Optional[int] = None) -> bool:
        pid = os.getpid() if pid is None else pid
        self.pid_file.parent.mkdir(parents=True, exist_ok=True)

        try:
            fd = os.open(self.pid_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError:
            return False

        with os.fdopen(fd, 'w') as f:
            f.write(f"{pid}\n")
        self.logger.debug(f"Claimed ownership marker {self.pid_file} for PID {pid}")
        return True

    def read_pid(self) -> Optional[int]:
        try:
            with open(self.pid_file, 'r') as f:
                content = f.read().strip()
        except FileNotFoundError:
            return None

        try:
            return int(content)
        except ValueError:
            return None

    def exists(self) -> bool:
        return self.pid_file.exists()

    def wait_for_pid(self, grace_seconds: float, poll_seconds: float = 0.05) -> Optional[int]:
        # A claimant may have created the marker but not written its PID yet
        deadline = time.monotonic() + grace_seconds
        while True:
            pid = self.read_pid()
            if pid is not None or not self.exists():
                return pid
            if time.monotonic() >= deadline:
                return None
            time.sleep(poll_seconds)

    @staticmethod
    def is_alive(pid: int) -> bool:
        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def purge_stale(self, stale_pid: Optional[int]) -> bool:
        if self.read_pid() != stale_pid:
            return False
        try:
            self.pid_file.unlink()
        except FileNotFoundError:
            return False
        self.logger.info(f"Removed stale ownership marker for PID {stale_pid}")
        return True

    def release(self, pid: Optional[int] = None):
        pid = os.getpid() if pid is None else pid
        if self.read_pid() != pid:
            return
        try:
            self.pid_file.unlink()
        except FileNotFoundError:
            pass
