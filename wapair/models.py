"""Pairing record data model and status state machine."""

from __future__ import annotations

import copy
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class PairingStatus(str, Enum):
    PENDING = "pending"
    QR_READY = "qr_ready"
    LINKED = "linked"
    EXPIRED = "expired"
    DISCONNECTED = "disconnected"

    @classmethod
    def parse(cls, raw: Any) -> "PairingStatus":
        """Parse a stored status value; `active` is accepted as `linked`."""
        if isinstance(raw, cls):
            return raw
        value = str(raw or "").strip().lower()
        if value == "active":
            return cls.LINKED
        return cls(value)


ALLOWED_TRANSITIONS: Dict[PairingStatus, frozenset] = {
    PairingStatus.PENDING: frozenset({PairingStatus.QR_READY, PairingStatus.LINKED, PairingStatus.EXPIRED}),
    PairingStatus.QR_READY: frozenset({PairingStatus.LINKED, PairingStatus.EXPIRED}),
    PairingStatus.LINKED: frozenset({PairingStatus.DISCONNECTED}),
    PairingStatus.EXPIRED: frozenset(),
    PairingStatus.DISCONNECTED: frozenset(),
}


def can_transition(current: PairingStatus, target: PairingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def new_session_id(prefix: str, now: Optional[float] = None) -> str:
    """Build `<prefix>_<epoch ms>_<6 upper hex>` correlation ids."""
    ts_ms = int(float(time.time() if now is None else now) * 1000)
    return f"{prefix}_{ts_ms}_{secrets.token_hex(3).upper()}"


@dataclass
class PairingRecord:
    code: str
    session_id: str
    created_at: float
    expires_at: float
    phone_number: Optional[str] = None
    status: PairingStatus = PairingStatus.PENDING
    linked_at: Optional[float] = None
    attempts: int = 0
    aux_data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.status = PairingStatus.parse(self.status)
        if float(self.expires_at) <= float(self.created_at):
            raise ValueError("expires_at must be later than created_at")

    def transition(self, target: PairingStatus, now: float) -> bool:
        """Move to `target` when the state machine allows it; return whether it moved."""
        target = PairingStatus.parse(target)
        if not can_transition(self.status, target):
            return False
        self.status = target
        if target is PairingStatus.LINKED and self.linked_at is None:
            self.linked_at = float(now)
        return True

    def copy(self) -> "PairingRecord":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "session_id": self.session_id,
            "phone_number": self.phone_number,
            "status": self.status.value,
            "created_at": float(self.created_at),
            "expires_at": float(self.expires_at),
            "linked_at": None if self.linked_at is None else float(self.linked_at),
            "attempts": int(self.attempts),
            "aux_data": dict(self.aux_data or {}),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PairingRecord":
        linked_at = data.get("linked_at")
        return cls(
            code=str(data["code"]),
            session_id=str(data.get("session_id") or ""),
            phone_number=data.get("phone_number"),
            status=PairingStatus.parse(data.get("status") or PairingStatus.PENDING.value),
            created_at=float(data["created_at"]),
            expires_at=float(data["expires_at"]),
            linked_at=None if linked_at is None else float(linked_at),
            attempts=int(data.get("attempts") or 0),
            aux_data=dict(data.get("aux_data") or {}),
        )
