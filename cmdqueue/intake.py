import logging
import threading
from .channel import SubmissionChannel
from .exceptions import ChannelError, MalformedSubmissionError, QueueFullError, ShuttingDownError
from .logging_utils import setup_logging
from .queue import QueueState


class IntakeListener(threading.Thread):
    """Polls the submission channel and appends what arrives to the queue.

    Submitters have already returned by the time a frame is read, so a full
    queue or a malformed frame can only be logged and dropped here.
    """

    def __init__(self, state: QueueState, channel: SubmissionChannel, tick_seconds: float = 1.0):
        super().__init__(name="cmdqueue-intake", daemon=True)
        self.state = state
        self.channel = channel
        self.tick_seconds = tick_seconds
        self.logger = setup_logging()
        self.accepted = 0
        self.dropped = 0

    def run(self):
        self.logger.debug("Intake listener started")

        while not self.state.shutdown.is_set():
            self.poll_once()
            self.state.shutdown.wait(self.tick_seconds)

        self.logger.debug(
            f"Intake listener stopped ({self.accepted} accepted, {self.dropped} dropped)"
        )

    def poll_once(self) -> int:
        try:
            frames = self.channel.read_frames()
        except ChannelError as e:
            self.logger.error(f"Intake listener could not read submissions: {e}")
            return 0
        return self.accept_frames(frames)

    def collect_remaining(self, timeout: float = 5.0) -> int:
        """Queue what submitters wrote before the channel path was withdrawn.

        Call only once the listener thread has stopped and the queue has been
        reopened.
        """
        try:
            frames = self.channel.read_remaining(timeout)
        except ChannelError as e:
            self.logger.error(f"Could not read late submissions: {e}")
            return 0

        if frames:
            self.logger.info(f"Found {len(frames)} submissions written while the queue was draining")
        return self.accept_frames(frames)

    def accept_frames(self, frames) -> int:
        accepted = 0
        for frame in frames:
            if self._accept(frame):
                accepted += 1
        return accepted

    def _accept(self, frame: bytes) -> bool:
        try:
            command = self.channel.decode_frame(frame)
        except MalformedSubmissionError as e:
            self.dropped += 1
            self.logger.warning(f"Rejected submission: {e}")
            return False

        self.logger.info(f"Received command \"{command}\" from other queue call")

        try:
            job = self.state.enqueue(command)
        except (QueueFullError, ShuttingDownError) as e:
            self.dropped += 1
            self.logger.warning(str(e))
            return False

        self.accepted += 1
        self.logger.debug(f"Queued job {job.seq}: {job.command}")
        if self.logger.isEnabledFor(logging.DEBUG):
            with self.state.lock:
                pending = self.state.snapshot()
            for position, queued in enumerate(pending):
                self.logger.debug(f"QUEUE {position}: {queued.command}")
        return True
