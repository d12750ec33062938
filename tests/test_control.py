import threading
import time
from pathlib import Path

import pytest

from dupsweep.exceptions import InvalidStateTransitionError, ScanCancelledError
from dupsweep.models import FileEntry, ScanState
from dupsweep.scanning.control import ActivityCounter, PauseGate, ScanController, ScanMetrics, ScanStateMachine
from dupsweep.scanning.parallel import ParallelExecutor
from dupsweep.scanning.storage import ParallelOptions, StorageType


class FixedClassifier:
    def __init__(self, storage_type):
        self.storage_type = storage_type
        self.calls = 0

    def classify(self, path):
        self.calls += 1
        return self.storage_type


def test_state_machine_happy_path():
    m = ScanStateMachine()
    assert m.state == ScanState.IDLE
    m.transition(ScanState.SCANNING)
    m.transition(ScanState.PAUSED)
    m.transition(ScanState.SCANNING)
    m.transition(ScanState.COMPLETED)
    assert m.state == ScanState.COMPLETED


def test_state_machine_idle_can_fault():
    m = ScanStateMachine()
    m.transition(ScanState.FAULTED)
    assert m.state == ScanState.FAULTED


@pytest.mark.parametrize("path, target", [
    ([], ScanState.PAUSED),
    ([], ScanState.COMPLETED),
    ([ScanState.SCANNING, ScanState.COMPLETED], ScanState.SCANNING),
    ([ScanState.SCANNING, ScanState.CANCELLED], ScanState.FAULTED),
])
def test_state_machine_rejects_invalid(path, target):
    m = ScanStateMachine()
    for state in path:
        m.transition(state)
    with pytest.raises(InvalidStateTransitionError):
        m.transition(target)
    assert not m.try_transition(target)


def test_pause_gate_releases_all_waiters():
    gate = PauseGate(poll_interval=0.01)
    gate.close()
    released = []

    def waiter():
        gate.wait()
        released.append(1)

    threads = [threading.Thread(target=waiter) for _ in range(3)]
    for t in threads:
        t.start()
    time.sleep(0.1)
    assert released == []

    gate.open()
    for t in threads:
        t.join(timeout=2)
    assert len(released) == 3


def test_checkpoint_raises_when_cancelled_while_paused():
    controller = ScanController(poll_interval=0.01)
    controller.machine.transition(ScanState.SCANNING)
    controller.pause()
    errors = []

    def worker():
        try:
            controller.checkpoint()
        except ScanCancelledError as e:
            errors.append(e)

    t = threading.Thread(target=worker)
    t.start()
    time.sleep(0.05)
    controller.cancel()
    t.join(timeout=2)

    assert len(errors) == 1


def test_pause_and_resume_only_from_valid_states():
    controller = ScanController()
    assert controller.pause() is False
    controller.machine.transition(ScanState.SCANNING)
    assert controller.pause() is True
    assert controller.is_paused
    assert not controller.gate.is_open
    assert controller.resume() is True
    assert controller.gate.is_open
    assert controller.resume() is False


def test_cancel_ignored_after_completion():
    controller = ScanController()
    controller.machine.transition(ScanState.SCANNING)
    controller.machine.transition(ScanState.COMPLETED)
    controller.cancel()
    assert not controller.is_cancelled


def test_activity_counter_peak():
    counter = ActivityCounter()
    with counter:
        with counter:
            assert counter.active == 2
        assert counter.active == 1
    assert counter.active == 0
    assert counter.peak == 2
    counter.reset_peak()
    assert counter.peak == 0


def test_metrics_threadsafe_increments():
    metrics = ScanMetrics()

    def bump():
        for _ in range(1000):
            metrics.increment("quick_hashed")

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert metrics.snapshot()["quick_hashed"] == 4000


def _entries(root, n):
    return [FileEntry(path=Path(root) / f"f{i}.jpg", size=1, root=Path(root)) for i in range(n)]


def test_hdd_root_never_exceeds_low_parallelism():
    counter = ActivityCounter()
    executor = ParallelExecutor(classifier=FixedClassifier(StorageType.HDD), options=ParallelOptions(ssd=16))

    def body(entry):
        with counter:
            time.sleep(0.01)
        return True

    executor.for_each(_entries("/hdd", 20), body, ScanController())

    assert 1 <= counter.peak <= 2


def test_cap_limits_workers():
    executor = ParallelExecutor(classifier=FixedClassifier(StorageType.SSD), options=ParallelOptions(ssd=16))
    assert executor.parallelism_for(Path("/ssd")) == 16
    assert executor.parallelism_for(Path("/ssd"), cap=3) == 3
    assert executor.parallelism_for(None) == 4


def test_roots_classified_once():
    classifier = FixedClassifier(StorageType.SSD)
    executor = ParallelExecutor(classifier=classifier)
    done = []
    executor.for_each(_entries("/a", 3) + _entries("/b", 3), lambda e: 1, ScanController(),
                      on_done=lambda e, r: done.append(e))

    assert len(done) == 6
    assert classifier.calls == 2


def test_for_each_stops_on_cancel():
    controller = ScanController()
    executor = ParallelExecutor(classifier=FixedClassifier(StorageType.HDD))
    processed = []

    def body(entry):
        processed.append(entry)
        if len(processed) == 2:
            controller.cancel()
        time.sleep(0.01)

    with pytest.raises(ScanCancelledError):
        executor.for_each(_entries("/hdd", 50), body, controller)
    assert len(processed) < 50
