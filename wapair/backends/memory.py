"""In-process fallback backend; always available, lost on restart."""

import threading
from typing import Dict, List, Optional

from ..logging_config import get_logger
from ..models import PairingRecord
from .base import PairingBackend

log = get_logger("backends")


class MemoryBackend(PairingBackend):
    """Thread-safe record map with a bounded size."""

    name = "memory"

    def __init__(self, max_records: int = 8192) -> None:
        """Initialize MemoryBackend state."""
        self._lock = threading.RLock()
        self._records: Dict[str, PairingRecord] = {}
        self._max_records = max(1, int(max_records or 8192))

    def _trim_locked(self, now: float) -> None:
        """Drop expired records past the size cap first, then the oldest ones."""
        if len(self._records) <= self._max_records:
            return
        expired = [k for k, v in self._records.items() if float(now) > float(v.expires_at)]
        for k in expired:
            self._records.pop(k, None)
        if len(self._records) <= self._max_records:
            return
        keys = sorted(self._records.keys(), key=lambda x: float(self._records[x].created_at))
        evicted = keys[: max(0, len(self._records) - self._max_records)]
        for k in evicted:
            self._records.pop(k, None)
        # evicted codes are still live and will now answer not-found
        log.warning(
            "Memory backend full (%d records); evicted %d live pairing record(s)",
            self._max_records,
            len(evicted),
        )

    def insert_unique(self, record: PairingRecord, now: float) -> bool:
        with self._lock:
            existing = self._records.get(record.code)
            if existing is not None and float(now) <= float(existing.expires_at):
                return False
            self._records[record.code] = record.copy()
            self._trim_locked(now)
            return True

    def find(self, code: str) -> Optional[PairingRecord]:
        with self._lock:
            item = self._records.get(code)
            return item.copy() if item is not None else None

    def find_by_session(self, session_id: str) -> Optional[PairingRecord]:
        with self._lock:
            for item in self._records.values():
                if item.session_id == session_id:
                    return item.copy()
        return None

    def replace(self, record: PairingRecord) -> bool:
        with self._lock:
            if record.code not in self._records:
                return False
            self._records[record.code] = record.copy()
            return True

    def delete(self, code: str) -> bool:
        with self._lock:
            return self._records.pop(code, None) is not None

    def records(self) -> List[PairingRecord]:
        with self._lock:
            return [r.copy() for r in self._records.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
