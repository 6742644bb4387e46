from typing import Optional
from .exceptions import ReceiverGoneError
from .intake import IntakeListener
from .launcher import ProcessLauncher
from .lifecycle import LifecycleManager
from .logging_utils import setup_logging
from .models import Config, DaemonState, OwnerRecord
from .queue import QueueState
from .scheduler import Scheduler


HANDOFF_ATTEMPTS = 3


class QueueDaemon:
    """Entry point shared by every invocation.

    The first invocation becomes the owner and runs the queue; later ones
    forward their command to it and return immediately.
    """

    def __init__(self, config: Config, launcher: Optional[ProcessLauncher] = None):
        self.config = config
        self.launcher = launcher or ProcessLauncher(shell=config.shell)
        self.lifecycle = LifecycleManager(config)
        self.logger = setup_logging()
        self.owner: Optional[OwnerRecord] = None
        self.forwarded_to: Optional[int] = None
        self.state: Optional[QueueState] = None
        self.scheduler: Optional[Scheduler] = None
        self.intake: Optional[IntakeListener] = None

    def run(self, command: Optional[str], persistent: bool = False,
            install_signals: bool = True) -> int:
        for attempt in range(HANDOFF_ATTEMPTS):
            is_owner, owner_pid = self.lifecycle.acquire()
            if is_owner:
                return self.serve(command, persistent, install_signals)

            try:
                return self.forward(command, owner_pid)
            except ReceiverGoneError as e:
                if attempt == HANDOFF_ATTEMPTS - 1:
                    raise
                self.logger.info(f"{e}, looking for the queue again")

    def forward(self, command: Optional[str], owner_pid: int) -> int:
        if not command:
            self.logger.info(f"Queue already running at [{owner_pid}], nothing to send")
            return 0

        self.lifecycle.channel.send(
            command,
            timeout=self.config.submit_timeout_seconds,
            abort_if=lambda: self._owner_gone(owner_pid)
        )
        self.forwarded_to = owner_pid
        self.logger.debug(f"Sent command \"{command}\" to running queue at [{owner_pid}]")
        return 0

    def _owner_gone(self, owner_pid: int) -> bool:
        registry = self.lifecycle.registry
        return registry.read_pid() != owner_pid or not registry.is_alive(owner_pid)

    def serve(self, command: Optional[str], persistent: bool = False,
              install_signals: bool = True) -> int:
        self.state = QueueState(
            consumer_limit=self.config.consumers,
            capacity=self.config.queue_capacity,
            persistent=persistent
        )

        # On failure setup() has already released the marker
        self.lifecycle.setup()
        self.owner = self.lifecycle.owner_record()
        self.logger.info(
            f"Queue owner {self.owner.pid} accepting commands on {self.owner.channel_path}"
        )

        try:
            if install_signals:
                self.lifecycle.install_signal_handlers(self.state)

            if command:
                self.state.enqueue(command)

            self.intake = IntakeListener(self.state, self.lifecycle.channel, self.config.tick_seconds)
            self.scheduler = Scheduler(self.state, self.launcher, self.config.tick_seconds)

            self.intake.start()
            self.scheduler.run(on_drain=self._close_intake)
        finally:
            self.state.begin_shutdown()
            self._stop_intake()
            self.lifecycle.teardown()

        if self.state.termination_signal is not None:
            return 128 + self.state.termination_signal
        return 0

    def _close_intake(self) -> int:
        """Withdraw the channel, then queue anything written before it went away.

        Returns the number of jobs queued; the scheduler keeps running while
        it is non-zero.
        """
        self._stop_intake()
        if not self.lifecycle.channel.is_open:
            return 0

        self.lifecycle.withdraw()
        self.state.reopen()
        try:
            recovered = self.intake.collect_remaining(self.config.submit_timeout_seconds)
        finally:
            self.lifecycle.channel.close()

        if not recovered:
            self.state.begin_shutdown()
        return recovered

    def _stop_intake(self):
        if self.intake is not None and self.intake.is_alive():
            self.intake.join()

    @property
    def status(self) -> Optional[DaemonState]:
        return self.scheduler.status if self.scheduler else None
