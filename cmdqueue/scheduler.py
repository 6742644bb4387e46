from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional
from .launcher import ProcessLauncher
from .logging_utils import setup_logging
from .models import DaemonState, WorkerSlot
from .queue import QueueState


class Scheduler:
    """Dispatches queued jobs to at most ``consumer_limit`` workers.

    Each tick dispatches while a slot is free and work is queued, then reaps
    every finished slot, all under the queue lock. Logging and job execution
    happen after the lock is released.
    """

    def __init__(self, state: QueueState, launcher: ProcessLauncher, tick_seconds: float = 1.0):
        self.state = state
        self.launcher = launcher
        self.tick_seconds = tick_seconds
        self.status = DaemonState.RUNNING
        self.logger = setup_logging()
        self._executor = ThreadPoolExecutor(
            max_workers=state.consumer_limit,
            thread_name_prefix="cmdqueue-worker"
        )

    def tick(self) -> int:
        with self.state.lock:
            started = self._dispatch()
            reaped = self._reap()
            working = self.state.working_count
            queued = self.state.queued_count

        for slot in started:
            self.logger.info(f"Executing command \"{slot.job.command}\" from queue")
            self._executor.submit(self._execute, slot)
        for slot in reaped:
            self.logger.info(f"Cleaning command \"{slot.job.command}\" from queue")

        if started or reaped:
            self.logger.debug(
                f"WK: {working}, OC: {queued}, LIMIT: {self.state.consumer_limit}"
            )
        if reaped:
            # freed slots can take queued work without waiting a full tick
            self.state.wakeup.set()
        return len(started)

    def _dispatch(self) -> List[WorkerSlot]:
        started = []
        while self.state.can_dispatch() and not self.state.termination_requested:
            started.append(self.state.start_next())
        return started

    def _reap(self) -> List[WorkerSlot]:
        reaped = []
        for slot in self.state.finished_slots():
            self.state.reclaim(slot)
            reaped.append(slot)
        return reaped

    def _execute(self, slot: WorkerSlot):
        self.logger.info(f"Worker {slot.index}: {slot.job.command}")
        succeeded = False

        try:
            succeeded = self.launcher.launch(slot.job.command)
        except Exception as e:
            self.logger.warning(f"Worker {slot.index} could not run job {slot.job.seq}: {e}")
        finally:
            self.state.mark_finished(slot, succeeded)

        self.logger.info(f"Worker {slot.index}: Finished")

    def try_drain(self) -> bool:
        with self.state.lock:
            if self.state.persistent:
                return False
            if self.state.queued_count > 0 or self.state.working_count > 0:
                return False
            self.state.shutdown.set()
        return True

    def run(self, on_drain: Optional[Callable[[], int]] = None) -> DaemonState:
        """Run until the queue drains or termination is requested.

        ``on_drain`` is called once the queue is idle and closed. A truthy
        return means it queued more work and the loop resumes.
        """
        self.logger.info(
            f"Scheduler running with {self.state.consumer_limit} consumers"
            f"{' (persistent)' if self.state.persistent else ''}"
        )

        try:
            while True:
                if self.state.termination_requested:
                    self.status = DaemonState.DRAINING
                    self._stop_dispatching()
                    break

                self.tick()
                if self.try_drain():
                    self.status = DaemonState.DRAINING
                    if on_drain is not None and on_drain():
                        self.logger.info("Late submissions queued, resuming")
                        self.status = DaemonState.RUNNING
                        continue
                    break

                self.state.wakeup.wait(self.tick_seconds)
                self.state.wakeup.clear()
        finally:
            # running jobs are never killed, they finish in the background
            self._executor.shutdown(wait=False)
            self.status = DaemonState.TERMINATED

        self.logger.info("Queue finished")
        return self.status

    def _stop_dispatching(self):
        with self.state.lock:
            dropped = self.state.discard_pending()
            running = self.state.working_count
        self.state.begin_shutdown()

        self.logger.info(
            f"Received signal {self.state.termination_signal}, "
            f"{running} running jobs left to finish, {len(dropped)} queued jobs dropped"
        )
