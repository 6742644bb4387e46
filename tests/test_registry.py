import pytest
import tempfile
import os
import subprocess
import time
from cmdqueue.registry import OwnershipRegistry


@pytest.fixture
def registry():
    with tempfile.TemporaryDirectory() as path:
        yield OwnershipRegistry(os.path.join(path, 'cmdqueue.pid'))


@pytest.fixture
def dead_pid():
    process = subprocess.Popen(['true'])
    process.wait()
    return process.pid


def test_claim_writes_pid(registry):
    assert registry.claim() is True
    assert registry.read_pid() == os.getpid()

    mode = os.stat(registry.pid_file).st_mode & 0o777
    assert mode == 0o600


def test_second_claim_fails(registry):
    assert registry.claim(1234) is True
    assert registry.claim(5678) is False
    assert registry.read_pid() == 1234


def test_read_pid_missing_or_garbage(registry):
    assert registry.read_pid() is None

    registry.pid_file.write_text('not-a-pid')
    assert registry.read_pid() is None


def test_current_process_is_alive():
    assert OwnershipRegistry.is_alive(os.getpid()) is True


def test_reaped_process_is_dead(dead_pid):
    assert OwnershipRegistry.is_alive(dead_pid) is False


def test_invalid_pid_is_dead():
    assert OwnershipRegistry.is_alive(0) is False
    assert OwnershipRegistry.is_alive(-1) is False


def test_purge_stale_only_matching_pid(registry, dead_pid):
    registry.claim(dead_pid)

    assert registry.purge_stale(dead_pid + 1) is False
    assert registry.exists()

    assert registry.purge_stale(dead_pid) is True
    assert not registry.exists()


def test_release_only_own_marker(registry):
    registry.claim(os.getpid() + 1)

    registry.release()
    assert registry.exists()

    registry.release(os.getpid() + 1)
    assert not registry.exists()


def test_release_missing_marker_is_noop(registry):
    registry.release()
    registry.release()

    assert not registry.exists()


def test_wait_for_pid_gives_up_on_empty_marker(registry):
    registry.pid_file.write_text('')

    start = time.monotonic()
    assert registry.wait_for_pid(0.2, poll_seconds=0.02) is None
    assert time.monotonic() - start >= 0.2


def test_wait_for_pid_returns_written_pid(registry):
    registry.claim(4321)

    assert registry.wait_for_pid(1.0) == 4321
