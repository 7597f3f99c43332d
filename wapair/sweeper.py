"""Background maintenance: expired-record sweep and primary availability probe."""

import threading
import time
from typing import Optional

from .lifecycle import PairingLifecycle
from .logging_config import get_logger

log = get_logger("sweeper")


class Sweeper:
    """Daemon thread that sweeps on a fixed interval and re-probes the primary backend."""

    def __init__(self, lifecycle: PairingLifecycle, interval_s: float = 60.0, probe_interval_s: float = 0.0) -> None:
        self.lifecycle = lifecycle
        self.interval_s = max(1.0, float(interval_s or 60.0))
        self.probe_interval_s = max(0.0, float(probe_interval_s or 0.0))
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_probe = 0.0

    def run_once(self, now: Optional[float] = None) -> int:
        """One maintenance tick; never raises."""
        current = float(time.time() if now is None else now)
        store = self.lifecycle.store
        # a primary marked down after a timeout is rechecked on every tick
        recovering = getattr(store, "primary", None) is not None and not store.primary_available
        due = self.probe_interval_s > 0 and (current - self._last_probe) >= self.probe_interval_s
        if recovering or due:
            self._last_probe = current
            try:
                store.probe_primary()
            except Exception:
                log.exception("Primary backend probe crashed")
        return self.lifecycle.sweep()

    def _loop(self) -> None:
        log.info("Pairing sweeper started (every %.0fs)", self.interval_s)
        while not self._stop.wait(self.interval_s):
            self.run_once()
        log.info("Pairing sweeper stopped")

    def start(self) -> None:
        """Manage lifecycle transition to start the sweeper thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._last_probe = time.time()
        self._thread = threading.Thread(target=self._loop, name="wapair-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        t = self._thread
        if t is not None and t.is_alive():
            t.join(timeout=timeout)
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
