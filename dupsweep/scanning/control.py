"""
Cooperative pause/cancel coordination shared by every scan worker.

A scan owns one ScanController: a cancellation token, a pause gate and the
state machine. Workers call ``checkpoint()`` between files; it raises
ScanCancelledError once the token fires and blocks while the gate is closed.
"""
import logging
import threading
from typing import Dict, Optional

from .. import config
from ..exceptions import InvalidStateTransitionError, ScanCancelledError
from ..models import ScanState

_TRANSITIONS = {
    ScanState.IDLE: {ScanState.SCANNING, ScanState.FAULTED},
    ScanState.SCANNING: {ScanState.PAUSED, ScanState.COMPLETED, ScanState.CANCELLED, ScanState.FAULTED},
    ScanState.PAUSED: {ScanState.SCANNING, ScanState.CANCELLED, ScanState.FAULTED},
    ScanState.COMPLETED: set(),
    ScanState.CANCELLED: set(),
    ScanState.FAULTED: set(),
}

TERMINAL_STATES = {ScanState.COMPLETED, ScanState.CANCELLED, ScanState.FAULTED}


class CancellationToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise ScanCancelledError("Scan cancelled.")


class PauseGate:
    """Reusable blocking gate. Open by default; closing it parks all waiters."""

    def __init__(self, poll_interval: float = config.PAUSE_POLL_INTERVAL):
        self._cond = threading.Condition()
        self._open = True
        self._poll_interval = poll_interval

    @property
    def is_open(self) -> bool:
        with self._cond:
            return self._open

    def close(self):
        with self._cond:
            self._open = False

    def open(self):
        with self._cond:
            self._open = True
            self._cond.notify_all()

    def wait(self, token: Optional[CancellationToken] = None):
        """Blocks until the gate opens. Wakes periodically to observe cancellation."""
        with self._cond:
            while not self._open:
                if token is not None:
                    token.raise_if_cancelled()
                self._cond.wait(timeout=self._poll_interval)


class ScanStateMachine:
    def __init__(self):
        self._lock = threading.Lock()
        self._state = ScanState.IDLE

    @property
    def state(self) -> ScanState:
        with self._lock:
            return self._state

    def transition(self, target: ScanState) -> ScanState:
        with self._lock:
            if target not in _TRANSITIONS[self._state]:
                raise InvalidStateTransitionError(f"Cannot move from {self._state.value} to {target.value}")
            logging.debug(f"Scan state {self._state.value} -> {target.value}")
            self._state = target
            return target

    def try_transition(self, target: ScanState) -> bool:
        try:
            self.transition(target)
            return True
        except InvalidStateTransitionError:
            return False


class ActivityCounter:
    """Tracks how many operations are in flight and the highest level seen."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active = 0
        self._peak = 0

    def __enter__(self):
        with self._lock:
            self._active += 1
            if self._active > self._peak:
                self._peak = self._active
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        with self._lock:
            self._active -= 1

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    @property
    def peak(self) -> int:
        with self._lock:
            return self._peak

    def reset_peak(self):
        with self._lock:
            self._peak = self._active


class ScanMetrics:
    """Atomic progress counters. The only mutable state shared across workers."""

    FIELDS = ("discovered", "resolutions_read", "quick_hashed", "full_hashed", "fingerprinted", "failures")

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in self.FIELDS}

    def increment(self, name: str, amount: int = 1) -> int:
        with self._lock:
            self._counts[name] += amount
            return self._counts[name]

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)


class ScanController:
    """Bundles the per-scan token, gate, state machine and counters."""

    def __init__(self, poll_interval: float = config.PAUSE_POLL_INTERVAL):
        self.token = CancellationToken()
        self.gate = PauseGate(poll_interval)
        self.machine = ScanStateMachine()
        self.metrics = ScanMetrics()

    @property
    def state(self) -> ScanState:
        return self.machine.state

    @property
    def is_paused(self) -> bool:
        return self.machine.state == ScanState.PAUSED

    @property
    def is_cancelled(self) -> bool:
        return self.token.is_cancelled

    def checkpoint(self):
        self.token.raise_if_cancelled()
        self.gate.wait(self.token)
        self.token.raise_if_cancelled()

    def pause(self) -> bool:
        if self.machine.try_transition(ScanState.PAUSED):
            self.gate.close()
            logging.info("Scan paused.")
            return True
        return False

    def resume(self) -> bool:
        if self.machine.try_transition(ScanState.SCANNING):
            self.gate.open()
            logging.info("Scan resumed.")
            return True
        return False

    def cancel(self):
        if self.machine.state in TERMINAL_STATES:
            return
        self.token.cancel()
        logging.info("Scan cancellation requested.")

    def release(self):
        """Opens the gate so no worker stays parked after the scan ends."""
        self.gate.open()
