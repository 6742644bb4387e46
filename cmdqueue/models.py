import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SlotState(Enum):
    RUNNING = "running"
    FINISHED = "finished"


class DaemonState(Enum):
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class Job:
    seq: int
    command: str
    submitted_at: datetime = field(default_factory=_utcnow)


@dataclass
class WorkerSlot:
    index: int
    job: Job
    state: SlotState = SlotState.RUNNING
    started_at: datetime = field(default_factory=_utcnow)
    succeeded: Optional[bool] = None


@dataclass(frozen=True)
class OwnerRecord:
    pid: int
    channel_path: str
    pid_path: str


@dataclass
class Config:
    runtime_dir: str = "/dev/shm"
    scope: str = "user"
    consumers: int = 3
    queue_capacity: int = 256
    tick_seconds: float = 1.0
    max_message_bytes: int = 1024
    submit_timeout_seconds: float = 5.0
    startup_grace_seconds: float = 1.0
    shell: str = "/bin/sh"
    log_dir: Optional[str] = None

    @property
    def artifact_stem(self) -> str:
        if self.scope == "machine":
            return "cmdqueue"
        return f"cmdqueue-{os.geteuid()}"

    @property
    def channel_path(self) -> str:
        return os.path.join(self.runtime_dir, f"{self.artifact_stem}.fifo")

    @property
    def pid_path(self) -> str:
        return os.path.join(self.runtime_dir, f"{self.artifact_stem}.pid")
