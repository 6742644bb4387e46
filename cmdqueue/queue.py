import threading
from collections import deque
from typing import Deque, List, Optional
from .exceptions import QueueFullError, ShuttingDownError
from .models import Job, SlotState, WorkerSlot


class QueueState:
    """Shared context of the intake listener and the scheduler.

    ``lock`` guards the pending queue, the slot table and the free-list. The
    slot table has exactly ``consumer_limit`` entries; released indices go on
    top of the free-list so the next dispatch reuses them.
    """

    def __init__(self, consumer_limit: int, capacity: int, persistent: bool = False):
        if consumer_limit < 1:
            raise ValueError("consumer_limit must be at least 1")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")

        self.consumer_limit = consumer_limit
        self.capacity = capacity
        self.persistent = persistent

        self.lock = threading.Lock()
        self.shutdown = threading.Event()
        self.wakeup = threading.Event()
        self.termination_signal: Optional[int] = None

        self._pending: Deque[Job] = deque()
        self._slots: List[Optional[WorkerSlot]] = [None] * consumer_limit
        self._free: List[int] = list(reversed(range(consumer_limit)))
        self._next_seq = 1

    @property
    def queued_count(self) -> int:
        return len(self._pending)

    @property
    def working_count(self) -> int:
        return self.consumer_limit - len(self._free)

    @property
    def termination_requested(self) -> bool:
        return self.termination_signal is not None

    def enqueue(self, command: str) -> Job:
        with self.lock:
            if self.shutdown.is_set():
                raise ShuttingDownError(f"Queue is shutting down, dropped \"{command}\"")
            if len(self._pending) >= self.capacity:
                raise QueueFullError(
                    f"Queue is full ({self.capacity} jobs), dropped \"{command}\""
                )

            job = Job(seq=self._next_seq, command=command)
            self._next_seq += 1
            self._pending.append(job)

        self.wakeup.set()
        return job

    # The methods below expect the caller to hold ``lock``.

    def can_dispatch(self) -> bool:
        return bool(self._free) and bool(self._pending)

    def start_next(self) -> WorkerSlot:
        job = self._pending.popleft()
        index = self._free.pop()
        slot = WorkerSlot(index=index, job=job)
        self._slots[index] = slot
        return slot

    def finished_slots(self) -> List[WorkerSlot]:
        return [
            slot for slot in self._slots
            if slot is not None and slot.state is SlotState.FINISHED
        ]

    def reclaim(self, slot: WorkerSlot):
        self._slots[slot.index] = None
        self._free.append(slot.index)

    def discard_pending(self) -> List[Job]:
        dropped = list(self._pending)
        self._pending.clear()
        return dropped

    def snapshot(self) -> List[Job]:
        return list(self._pending)

    def mark_finished(self, slot: WorkerSlot, succeeded: bool):
        with self.lock:
            slot.succeeded = succeeded
            slot.state = SlotState.FINISHED
        self.wakeup.set()

    def begin_shutdown(self):
        with self.lock:
            self.shutdown.set()
        self.wakeup.set()

    def reopen(self):
        """Accept submissions again after a drain found late arrivals."""
        with self.lock:
            self.shutdown.clear()

    def request_termination(self, signum: int):
        # Called from a signal handler: plain attribute write, no locks
        self.termination_signal = signum
