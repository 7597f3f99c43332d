"""Boundary between a WhatsApp client's event callbacks and the pairing lifecycle."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .lifecycle import CloseReason, ConnectionSignal, PairingLifecycle, SignalContext
from .logging_config import log

# Baileys `DisconnectReason.loggedOut`
LOGGED_OUT_STATUS_CODE = 401

_SIGNAL_ALIASES = {
    "qr": ConnectionSignal.QR,
    "open": ConnectionSignal.OPEN,
    "connected": ConnectionSignal.OPEN,
    "online": ConnectionSignal.OPEN,
    "close": ConnectionSignal.CLOSE,
    "closed": ConnectionSignal.CLOSE,
    "disconnected": ConnectionSignal.CLOSE,
}


def _status_code(update: Dict[str, Any]) -> Optional[int]:
    """Extract `lastDisconnect.error.output.statusCode` from a connection update."""
    try:
        last = update.get("lastDisconnect") or {}
        err = last.get("error") or {}
        output = err.get("output") or {}
        code = output.get("statusCode", err.get("statusCode"))
        return int(code) if code is not None else None
    except (AttributeError, TypeError, ValueError):
        return None


def close_reason_from(value: Any) -> CloseReason:
    if isinstance(value, CloseReason):
        return value
    s = str(value or "").strip().lower().replace("-", "_")
    if s in ("logged_out", "loggedout", "logout"):
        return CloseReason.LOGGED_OUT
    return CloseReason.TRANSIENT


class ConnectionSignalAdapter:
    """Forward client events to the lifecycle; never lets a failure reach the client callback."""

    def __init__(self, lifecycle: PairingLifecycle) -> None:
        self.lifecycle = lifecycle

    def _forward(self, signal: ConnectionSignal, context: SignalContext) -> int:
        try:
            return self.lifecycle.on_connection_signal(signal, context)
        except Exception:
            log.exception("Failed to apply %s signal", signal.value)
            return 0

    def on_qr(self, payload: str, code: Optional[str] = None, session_id: Optional[str] = None) -> int:
        return self._forward(ConnectionSignal.QR, SignalContext(payload=payload, code=code, session_id=session_id))

    def on_open(self, code: Optional[str] = None, session_id: Optional[str] = None) -> int:
        return self._forward(ConnectionSignal.OPEN, SignalContext(code=code, session_id=session_id))

    def on_close(self, reason: Any = CloseReason.TRANSIENT, code: Optional[str] = None, session_id: Optional[str] = None) -> int:
        ctx = SignalContext(reason=close_reason_from(reason), code=code, session_id=session_id)
        return self._forward(ConnectionSignal.CLOSE, ctx)

    def on_connecting(self) -> None:
        self.lifecycle.mark_connecting()

    def dispatch(self, name: str, **kwargs: Any) -> int:
        """Route a named signal (`qr`, `open`/`connected`, `close`/`disconnected`)."""
        key = str(name or "").strip().lower()
        if key == "connecting":
            self.on_connecting()
            return 0
        signal = _SIGNAL_ALIASES.get(key)
        if signal is None:
            raise ValueError(f"unknown connection signal: {name!r}")
        code = kwargs.get("code")
        session_id = kwargs.get("session_id")
        if signal is ConnectionSignal.QR:
            payload = kwargs.get("payload", kwargs.get("qr"))
            if not payload:
                raise ValueError("qr signal requires a payload")
            return self.on_qr(str(payload), code=code, session_id=session_id)
        if signal is ConnectionSignal.OPEN:
            return self.on_open(code=code, session_id=session_id)
        return self.on_close(kwargs.get("reason"), code=code, session_id=session_id)

    def handle_update(self, update: Dict[str, Any]) -> int:
        """Translate a Baileys-style `connection.update` payload; returns records changed."""
        if not isinstance(update, dict):
            return 0
        changed = 0
        qr = update.get("qr")
        if qr:
            changed += self.on_qr(str(qr))
        connection = str(update.get("connection") or "").strip().lower()
        if connection == "open":
            changed += self.on_open()
        elif connection == "close":
            status = _status_code(update)
            reason = CloseReason.LOGGED_OUT if status == LOGGED_OUT_STATUS_CODE else CloseReason.TRANSIENT
            log.info("WhatsApp connection closed with status %s", status)
            changed += self.on_close(reason)
        elif connection == "connecting":
            self.on_connecting()
        return changed
