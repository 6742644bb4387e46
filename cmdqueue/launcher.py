import subprocess
import time
from typing import Mapping, Optional
from .logging_utils import setup_logging


class ProcessLauncher:
    """Runs one command line to completion through a shell.

    Output is not captured; the command inherits the daemon's stdout and
    stderr. Only success or failure is reported back.
    """

    def __init__(self, shell: str = "/bin/sh", env: Optional[Mapping[str, str]] = None):
        self.shell = shell
        self.env = env
        self.logger = setup_logging()

    def launch(self, command: str) -> bool:
        start_time = time.monotonic()

        try:
            result = subprocess.run(
                command,
                shell=True,
                executable=self.shell,
                env=self.env
            )
        except OSError as e:
            self.logger.warning(f"Could not launch command \"{command}\": {e}")
            return False

        duration = time.monotonic() - start_time
        if result.returncode == 0:
            self.logger.debug(f"Command \"{command}\" succeeded in {duration:.2f}s")
            return True

        self.logger.debug(
            f"Command \"{command}\" exited with code {result.returncode} after {duration:.2f}s"
        )
        return False
