"""Primary-with-fallback persistence for pairing records.

The primary backend is optional and may be unreachable. Every primary call
runs on a small worker pool with a timeout; a timeout or driver error is
logged and the same call is serviced by the in-process fallback instead.
Callers never see `BackendUnavailable`.

A worker thread cannot be interrupted, so a timed-out call may still finish
later. A timeout therefore marks the primary unavailable until the next
successful probe, and an insert that commits after its timeout is deleted
again so the fallback copy stays the only one.

Uniqueness is checked on whichever single backend services the insert.
Records written to the fallback during a primary outage are not copied
back when the primary recovers, but `find` still reaches them.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any, Callable, List, Optional, Tuple

from .backends.base import PairingBackend
from .backends.memory import MemoryBackend
from .errors import BackendUnavailable, InsertOutcome
from .logging_config import get_logger
from .models import PairingRecord

log = get_logger("store")

Mutation = Callable[[PairingRecord], bool]


class PairingStore:
    def __init__(
        self,
        primary: Optional[PairingBackend] = None,
        fallback: Optional[PairingBackend] = None,
        *,
        timeout_s: float = 5.0,
        clock: Callable[[], float] = time.time,
        lock_stripes: int = 64,
    ) -> None:
        """Initialize PairingStore state and collaborator references."""
        self.primary = primary
        self.fallback = fallback if fallback is not None else MemoryBackend()
        self._timeout_s = max(0.01, float(timeout_s))
        self._clock = clock
        self._available = False
        self._state_lock = threading.Lock()
        self._stripes = [threading.Lock() for _ in range(max(1, int(lock_stripes)))]
        self._executor: Optional[ThreadPoolExecutor] = None
        if primary is not None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="wapair-db")

    # availability

    @property
    def primary_available(self) -> bool:
        with self._state_lock:
            return self.primary is not None and self._available

    @property
    def backend_name(self) -> str:
        """Name of the backend that currently services requests first."""
        if self.primary_available:
            return str(getattr(self.primary, "name", "database"))
        return str(getattr(self.fallback, "name", "memory"))

    def set_primary_available(self, available: bool) -> None:
        with self._state_lock:
            before = self._available
            self._available = bool(available) and self.primary is not None
            after = self._available
        if before != after:
            if after:
                log.info("Primary backend is available")
            else:
                log.warning("Primary backend marked unavailable; serving from memory")

    def probe_primary(self) -> bool:
        """Run the connectivity probe and refresh the availability flag."""
        if self.primary is None:
            return False
        try:
            ok = bool(self._call_primary("ping", self.primary.ping))
        except BackendUnavailable as e:
            log.warning("Primary backend probe failed: %s", e)
            ok = False
        self.set_primary_available(ok)
        return ok

    # primary call plumbing

    def _lock_for(self, code: str) -> threading.Lock:
        return self._stripes[hash(code) % len(self._stripes)]

    def _call_primary(
        self,
        op: str,
        fn: Callable[..., Any],
        *args: Any,
        on_late: Optional[Callable[[Future], None]] = None,
    ) -> Any:
        """Run one primary call with a timeout; every failure becomes `BackendUnavailable`.

        A timeout marks the primary unavailable. When the call is already
        running it cannot be stopped, so `on_late` is attached to it instead.
        """
        if self._executor is None:
            raise BackendUnavailable("no primary backend configured")
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self._timeout_s)
        except FuturesTimeout as e:
            if not future.cancel() and on_late is not None:
                future.add_done_callback(on_late)
            self.set_primary_available(False)
            raise BackendUnavailable(f"primary {op} timed out after {self._timeout_s:.2f}s") from e
        except BackendUnavailable:
            raise
        except Exception as e:
            raise BackendUnavailable(f"primary {op} failed: {type(e).__name__}: {e}") from e

    def _with_primary(
        self, op: str, fn_name: str, *args: Any, on_late: Optional[Callable[[Future], None]] = None
    ) -> Tuple[bool, Any]:
        """Return `(serviced, value)`; `serviced` is False when the fallback must take over."""
        if not self.primary_available:
            return False, None
        try:
            return True, self._call_primary(op, getattr(self.primary, fn_name), *args, on_late=on_late)
        except BackendUnavailable as e:
            log.warning("Primary backend %s degraded to memory: %s", op, e)
            return False, None

    def _discard_late_insert(self, record: PairingRecord) -> Callable[[Future], None]:
        """Done-callback removing `record` from the primary if its timed-out insert committed anyway."""

        def _discard(future: Future) -> None:
            if future.cancelled() or future.exception() is not None or not future.result():
                return
            try:
                current = self.primary.find(record.code)
                if current is not None and current.session_id == record.session_id:
                    self.primary.delete(record.code)
                    log.warning("Discarded late primary insert for session %s", record.session_id)
            except Exception:
                log.exception("Failed to discard late primary insert for session %s", record.session_id)

        return _discard

    # operations

    def try_insert_unique(self, record: PairingRecord, now: Optional[float] = None) -> InsertOutcome:
        now = float(self._clock() if now is None else now)
        with self._lock_for(record.code):
            serviced, inserted = self._with_primary(
                "insert", "insert_unique", record, now, on_late=self._discard_late_insert(record)
            )
            if not serviced:
                inserted = self.fallback.insert_unique(record, now)
        return InsertOutcome.INSERTED if inserted else InsertOutcome.CONFLICT

    def find(self, code: str) -> Optional[PairingRecord]:
        serviced, rec = self._with_primary("find", "find", code)
        if serviced and rec is not None:
            return rec
        return self.fallback.find(code)

    def find_by_session(self, session_id: str) -> Optional[PairingRecord]:
        serviced, rec = self._with_primary("find_by_session", "find_by_session", session_id)
        if serviced and rec is not None:
            return rec
        return self.fallback.find_by_session(session_id)

    def update(self, code: str, mutation: Mutation) -> Optional[PairingRecord]:
        """Apply `mutation` to the stored record and persist it when it reports a change."""
        with self._lock_for(code):
            serviced, rec = self._with_primary("find", "find", code)
            if serviced and rec is not None:
                if mutation(rec):
                    written, replaced = self._with_primary("replace", "replace", rec)
                    if not written:
                        log.warning("Update of %s not persisted: primary backend unavailable", code)
                    elif not replaced:
                        return None
                return rec

            rec = self.fallback.find(code)
            if rec is None:
                return None
            if mutation(rec) and not self.fallback.replace(rec):
                return None
            return rec

    def delete(self, code: str) -> bool:
        with self._lock_for(code):
            _serviced, removed = self._with_primary("delete", "delete", code)
            removed_fallback = self.fallback.delete(code)
        return bool(removed) or removed_fallback

    def records(self) -> List[PairingRecord]:
        """Snapshot of the records held by every reachable backend."""
        out: List[PairingRecord] = []
        serviced, rows = self._with_primary("records", "records")
        seen = set()
        if serviced:
            for r in rows or []:
                seen.add(r.code)
                out.append(r)
        for r in self.fallback.records():
            if r.code not in seen:
                out.append(r)
        return out

    def count(self) -> int:
        return len(self.records())

    def sweep_expired(self, now: Optional[float] = None) -> int:
        """Delete expired records from each reachable backend; returns how many were removed."""
        now = float(self._clock() if now is None else now)
        removed = 0

        serviced, rows = self._with_primary("records", "records")
        if serviced:
            for r in rows or []:
                if now <= float(r.expires_at):
                    continue
                with self._lock_for(r.code):
                    ok, current = self._with_primary("find", "find", r.code)
                    if not ok or current is None or now <= float(current.expires_at):
                        continue
                    ok, deleted = self._with_primary("delete", "delete", r.code)
                    if ok and deleted:
                        removed += 1

        for r in self.fallback.records():
            if now <= float(r.expires_at):
                continue
            with self._lock_for(r.code):
                current = self.fallback.find(r.code)
                if current is None or now <= float(current.expires_at):
                    continue
                if self.fallback.delete(r.code):
                    removed += 1
        return removed

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
        for backend in (self.primary, self.fallback):
            if backend is None:
                continue
            try:
                backend.close()
            except Exception:
                log.exception("Failed to close %s backend", getattr(backend, "name", "?"))
