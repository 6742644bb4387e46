import os
import signal
import threading
from typing import Optional, Tuple
from .channel import SubmissionChannel
from .exceptions import OwnershipError, SetupError
from .logging_utils import setup_logging
from .models import Config, OwnerRecord
from .queue import QueueState
from .registry import OwnershipRegistry


CLAIM_ATTEMPTS = 5


class LifecycleManager:
    """Creates and removes the ownership marker and the submission channel."""

    def __init__(self, config: Config):
        self.config = config
        self.registry = OwnershipRegistry(config.pid_path)
        self.channel = SubmissionChannel(config.channel_path, config.max_message_bytes)
        self.logger = setup_logging()
        self.pid = os.getpid()
        self.is_owner = False
        self._previous_handler = None

    def acquire(self) -> Tuple[bool, int]:
        """Become the owner, or locate the live one.

        Returns ``(True, own_pid)`` after claiming the marker and
        ``(False, owner_pid)`` when another live process owns the queue.
        Markers of dead owners are purged. Their channel is left for the
        next owner's ``setup()`` to replace, so a racing claimant never has
        its fresh pipe unlinked.
        """
        for _ in range(CLAIM_ATTEMPTS):
            if self.registry.claim(self.pid):
                self.is_owner = True
                return True, self.pid

            owner_pid = self.registry.wait_for_pid(self.config.startup_grace_seconds)
            if owner_pid is None and not self.registry.exists():
                # marker vanished between the claim and the read
                continue
            if owner_pid is not None and self.registry.is_alive(owner_pid):
                return False, owner_pid

            self.logger.info(f"Found dead queue at [{owner_pid}]. Removing...")
            self.registry.purge_stale(owner_pid)

        raise OwnershipError(f"Could not claim ownership marker {self.config.pid_path}")

    def setup(self):
        if not self.is_owner:
            raise SetupError("Only the owner can open the submission channel")

        try:
            self.channel.create()
        except SetupError:
            self.registry.release(self.pid)
            self.is_owner = False
            raise

        self.logger.debug(
            f"Queue owner {self.pid} listening on {self.channel.path}"
        )

    def owner_record(self) -> OwnerRecord:
        return OwnerRecord(
            pid=self.pid,
            channel_path=self.channel.path,
            pid_path=str(self.registry.pid_file)
        )

    def withdraw(self):
        """Stop advertising this queue while keeping the channel open for reading.

        New submitters can no longer reach it and the next invocation becomes
        a new owner.
        """
        if not self.is_owner:
            return
        self.is_owner = False
        self.channel.remove_own()
        self.registry.release(self.pid)

    def teardown(self):
        self.withdraw()
        self.channel.close()
        self.restore_signal_handlers()

    def remove_artifacts(self):
        # May run from a signal handler at any point: no locks, and nothing
        # a successor created is touched
        self.withdraw()

    def install_signal_handlers(self, state: QueueState) -> bool:
        if threading.current_thread() is not threading.main_thread():
            self.logger.debug("Not on the main thread, SIGTERM cleanup handler not installed")
            return False

        def _signal_handler(signum, frame):
            self.remove_artifacts()
            state.request_termination(signum)

        self._previous_handler = signal.signal(signal.SIGTERM, _signal_handler)
        return True

    def restore_signal_handlers(self):
        if self._previous_handler is None:
            return
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGTERM, self._previous_handler)
        self._previous_handler = None
