import pytest
import threading
import time


class BlockingLauncher:
    """Launcher whose commands run until the test releases them."""

    def __init__(self, auto_release=False):
        self.auto_release = auto_release
        self.started = []
        self.finished = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()
        self._gates = {}

    def _gate(self, command):
        with self._lock:
            return self._gates.setdefault(command, threading.Event())

    def launch(self, command):
        gate = self._gate(command)
        with self._lock:
            self.started.append(command)
            self.active += 1
            self.max_active = max(self.max_active, self.active)

        if not self.auto_release:
            gate.wait(10)

        with self._lock:
            self.active -= 1
            self.finished.append(command)
        return command != 'fail'

    def release(self, command):
        self._gate(command).set()

    def release_all(self):
        self.auto_release = True
        with self._lock:
            gates = list(self._gates.values())
        for gate in gates:
            gate.set()


def _wait_for(predicate, timeout=5.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def launcher():
    launcher = BlockingLauncher()
    yield launcher
    launcher.release_all()


@pytest.fixture
def wait_for():
    return _wait_for


@pytest.fixture
def auto_launcher():
    return BlockingLauncher(auto_release=True)
