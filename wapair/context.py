from __future__ import annotations

import time
from typing import Optional

from . import config
from .backends.base import PairingBackend
from .backends.memory import MemoryBackend
from .lifecycle import PairingLifecycle
from .logging_config import log
from .settings import PairingSettings
from .signals import ConnectionSignalAdapter
from .store import PairingStore
from .sweeper import Sweeper


def build_primary(url: str, timeout_s: float) -> Optional[PairingBackend]:
    """Create the database backend for `url`; None when unset or unusable."""
    if not url:
        return None
    try:
        from .backends.sql import SqlBackend

        return SqlBackend(url, timeout_s=timeout_s)
    except Exception:
        log.exception("Database backend could not be created; using memory storage only")
        return None


def build_store() -> PairingStore:
    return PairingStore(
        primary=build_primary(config.DATABASE_URL, config.DB_TIMEOUT_S),
        fallback=MemoryBackend(max_records=config.FALLBACK_MAX_RECORDS),
        timeout_s=config.DB_TIMEOUT_S,
    )


settings = PairingSettings.from_config(config)
store = build_store()
lifecycle = PairingLifecycle(store, settings)
signal_adapter = ConnectionSignalAdapter(lifecycle)
sweeper = Sweeper(lifecycle, interval_s=config.SWEEP_INTERVAL_S, probe_interval_s=config.DB_PROBE_INTERVAL_S)

started_at = time.time()


def start_background() -> None:
    """Probe the database once and start the periodic sweeper."""
    if store.primary is not None:
        if store.probe_primary():
            log.info("Database connected")
        else:
            log.warning("Database not reachable; using in-memory mode")
    sweeper.start()


def shutdown() -> None:
    sweeper.stop()
    store.close()
