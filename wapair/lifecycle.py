"""Pairing code lifecycle: issuance, status checks, verification and connection signals.

States::

    pending -> qr_ready -> linked -> disconnected
    pending -> linked
    pending | qr_ready -> expired

Nothing leaves `expired` or `disconnected`. A record whose TTL has passed is
reported as expired whatever its stored status says; pending and qr_ready
records are marked `expired` on read and stay in the store until the sweep
removes them, so repeated reads keep answering "expired".
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .codes import CodeGenerator, is_valid_code, normalize_code
from .errors import CodeGenerationError, InsertOutcome, PairingResult
from .expiry import ExpiryPolicy
from .logging_config import log
from .models import PairingRecord, PairingStatus, new_session_id
from .phone import normalize_phone
from .settings import PairingSettings
from .store import PairingStore


class ConnectionSignal(str, Enum):
    QR = "qr"
    OPEN = "open"
    CLOSE = "close"


class CloseReason(str, Enum):
    LOGGED_OUT = "logged_out"
    TRANSIENT = "transient"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    QR_READY = "qr_ready"
    ONLINE = "online"
    LOGGED_OUT = "logged_out"


@dataclass(frozen=True)
class SignalContext:
    """Signal details; `code` or `session_id` narrows the signal to one record."""

    payload: Optional[str] = None
    reason: CloseReason = CloseReason.TRANSIENT
    code: Optional[str] = None
    session_id: Optional[str] = None


_LINKABLE = (PairingStatus.PENDING, PairingStatus.QR_READY)


def _mask_phone(phone: Optional[str]) -> str:
    if not phone:
        return "anonymous"
    return phone[:4] + "*" * max(0, len(phone) - 7) + phone[-3:]


class PairingLifecycle:
    def __init__(
        self,
        store: PairingStore,
        settings: Optional[PairingSettings] = None,
        *,
        generator: Optional[CodeGenerator] = None,
        expiry: Optional[ExpiryPolicy] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize PairingLifecycle state and collaborator references."""
        self.store = store
        self.settings = settings or PairingSettings()
        self.generator = generator or CodeGenerator(max_resamples=self.settings.max_resamples)
        self.expiry = expiry or ExpiryPolicy(self.settings.ttl_s)
        self._clock = clock
        self._conn_lock = threading.Lock()
        self._conn_state = ConnectionState.DISCONNECTED
        self._current_qr: Optional[str] = None
        self._conn_updated_at = float(clock())
        self._last_code: Optional[str] = None

    def now(self) -> float:
        return float(self._clock())

    # connection state

    @property
    def connection_state(self) -> ConnectionState:
        with self._conn_lock:
            return self._conn_state

    @property
    def last_code(self) -> Optional[str]:
        return self._last_code

    def is_connection_open(self) -> bool:
        return self.connection_state is ConnectionState.ONLINE

    def is_ready(self) -> bool:
        """True once the client either shows a login QR or is already online."""
        return self.connection_state in (ConnectionState.QR_READY, ConnectionState.ONLINE)

    def _set_connection(self, state: ConnectionState, qr: Optional[str] = None) -> None:
        with self._conn_lock:
            self._conn_state = state
            self._current_qr = qr
            self._conn_updated_at = self.now()

    def mark_connecting(self) -> None:
        self._set_connection(ConnectionState.CONNECTING)

    def connection_snapshot(self) -> Dict[str, Any]:
        with self._conn_lock:
            return {
                "state": self._conn_state.value,
                "has_qr": bool(self._current_qr),
                "qr": self._current_qr,
                "updated_at": self._conn_updated_at,
            }

    # helpers

    def _valid_code(self, raw: Optional[str]) -> Optional[str]:
        code = normalize_code(raw)
        if not is_valid_code(code, self.settings.code_format, self.settings.code_length):
            return None
        return code

    def _is_dead(self, record: PairingRecord, now: float) -> bool:
        return record.status is PairingStatus.EXPIRED or self.expiry.is_expired(record, now)

    @staticmethod
    def _mark_expired(now: float) -> Callable[[PairingRecord], bool]:
        def mutate(r: PairingRecord) -> bool:
            if r.status in _LINKABLE:
                return r.transition(PairingStatus.EXPIRED, now)
            return False

        return mutate

    def _resolve_expired(self, record: PairingRecord, now: float) -> PairingResult:
        updated = self.store.update(record.code, self._mark_expired(now))
        return PairingResult.expired(updated or record)

    # operations

    def generate(self, phone_number: Optional[str] = None) -> PairingResult:
        """Issue a new pending code, retrying on collisions up to `max_attempts` times."""
        phone = None
        if phone_number is not None and str(phone_number).strip():
            phone = normalize_phone(phone_number, self.settings.country_code)
            if phone is None:
                return PairingResult.invalid("invalid_phone_number")

        attempts = int(self.settings.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                candidate = self.generator.generate(self.settings.code_format, self.settings.code_length)
            except CodeGenerationError as e:
                log.error("Pairing code generation failed: %s", e)
                return PairingResult.exhausted("code_generation_failed")

            now = self.now()
            record = PairingRecord(
                code=candidate,
                session_id=new_session_id(self.settings.session_prefix, now),
                phone_number=phone,
                status=PairingStatus.PENDING,
                created_at=now,
                expires_at=self.expiry.compute_expiry(now),
            )
            if self.store.try_insert_unique(record, now=now) is InsertOutcome.INSERTED:
                self._last_code = candidate
                log.info(
                    "Issued pairing code %s for %s via %s (attempt %d)",
                    candidate,
                    _mask_phone(phone),
                    self.store.backend_name,
                    attempt,
                )
                return PairingResult.found(record)
            log.debug("Pairing code collision on %s (attempt %d)", candidate, attempt)

        log.warning("Pairing code space exhausted after %d attempts", attempts)
        return PairingResult.exhausted()

    def check_status(self, code: Optional[str]) -> PairingResult:
        valid = self._valid_code(code)
        if valid is None:
            return PairingResult.invalid("invalid_code")
        record = self.store.find(valid)
        if record is None:
            return PairingResult.not_found()
        now = self.now()
        if self._is_dead(record, now):
            return self._resolve_expired(record, now)
        return PairingResult.found(record)

    def lookup_session(self, session_id: Optional[str]) -> PairingResult:
        sid = str(session_id or "").strip()
        if not sid:
            return PairingResult.invalid("invalid_session_id")
        record = self.store.find_by_session(sid)
        if record is None:
            return PairingResult.not_found()
        now = self.now()
        if self._is_dead(record, now):
            return self._resolve_expired(record, now)
        return PairingResult.found(record)

    def verify(self, code: Optional[str]) -> PairingResult:
        """Count a verification attempt; links the record when the client connection is already open."""
        valid = self._valid_code(code)
        if valid is None:
            return PairingResult.invalid("invalid_code")
        now = self.now()
        link = self.is_connection_open()

        def mutate(r: PairingRecord) -> bool:
            r.attempts += 1
            if self._is_dead(r, now):
                if r.status in _LINKABLE:
                    r.transition(PairingStatus.EXPIRED, now)
            elif link and r.status in _LINKABLE:
                r.transition(PairingStatus.LINKED, now)
            return True

        record = self.store.update(valid, mutate)
        if record is None:
            return PairingResult.not_found()
        if self._is_dead(record, now):
            return PairingResult.expired(record)
        if record.status is PairingStatus.LINKED:
            log.info("Pairing code %s linked on verification", valid)
        return PairingResult.found(record)

    def _targets(self, context: SignalContext) -> List[PairingRecord]:
        if context.code:
            rec = self.store.find(normalize_code(context.code))
            return [rec] if rec is not None else []
        if context.session_id:
            rec = self.store.find_by_session(context.session_id)
            return [rec] if rec is not None else []
        return self.store.records()

    def _apply(self, targets: List[PairingRecord], mutate: Callable[[PairingRecord], bool]) -> int:
        changed = 0
        for r in targets:
            before = r.status
            updated = self.store.update(r.code, mutate)
            if updated is not None and updated.status is not before:
                changed += 1
        return changed

    def on_connection_signal(self, signal: Any, context: Optional[SignalContext] = None) -> int:
        """Apply a client signal; returns how many records changed status."""
        signal = ConnectionSignal(signal)
        context = context or SignalContext()
        now = self.now()

        if signal is ConnectionSignal.QR:
            payload = context.payload
            self._set_connection(ConnectionState.QR_READY, qr=payload)

            def attach_qr(r: PairingRecord) -> bool:
                if self.expiry.is_expired(r, now) or r.status not in _LINKABLE:
                    return False
                moved = r.transition(PairingStatus.QR_READY, now) if r.status is PairingStatus.PENDING else False
                if r.aux_data.get("qr") != payload:
                    r.aux_data["qr"] = payload
                    return True
                return moved

            targets = [r for r in self._targets(context) if r.status in _LINKABLE]
            changed = self._apply(targets, attach_qr)
            log.info("WhatsApp QR issued; %d pairing record(s) now qr_ready", changed)
            return changed

        if signal is ConnectionSignal.OPEN:
            self._set_connection(ConnectionState.ONLINE)

            def link(r: PairingRecord) -> bool:
                if self.expiry.is_expired(r, now) or r.status not in _LINKABLE:
                    return False
                return r.transition(PairingStatus.LINKED, now)

            targets = [r for r in self._targets(context) if r.status in _LINKABLE]
            changed = self._apply(targets, link)
            log.info("WhatsApp connection open; linked %d pairing record(s)", changed)
            return changed

        reason = CloseReason(context.reason)
        if reason is CloseReason.LOGGED_OUT:
            self._set_connection(ConnectionState.LOGGED_OUT)
        else:
            self._set_connection(ConnectionState.CONNECTING)

        def disconnect(r: PairingRecord) -> bool:
            if not r.transition(PairingStatus.DISCONNECTED, now):
                return False
            r.aux_data["disconnect_reason"] = reason.value
            return True

        targets = [r for r in self._targets(context) if r.status is PairingStatus.LINKED]
        changed = self._apply(targets, disconnect)
        log.info("WhatsApp connection closed (%s); disconnected %d record(s)", reason.value, changed)
        return changed

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove expired records; failures are logged and reported as zero removals."""
        try:
            removed = self.store.sweep_expired(self.now() if now is None else float(now))
        except Exception:
            log.exception("Pairing sweep failed")
            return 0
        if removed:
            log.info("Swept %d expired pairing record(s)", removed)
        return removed
