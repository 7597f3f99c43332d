"""Response shaping shared by the pairing routers."""

from typing import Any, Dict, NoReturn, Optional

from fastapi import HTTPException

from ..errors import Outcome, PairingResult
from ..models import PairingRecord


_STATUS_BY_OUTCOME = {
    Outcome.INVALID_INPUT: 400,
    Outcome.NOT_FOUND: 404,
    Outcome.EXPIRED: 410,
    Outcome.GENERATION_EXHAUSTED: 503,
}


def raise_for(result: PairingResult) -> NoReturn:
    """Map a non-OK lifecycle result to an HTTP error."""
    status = _STATUS_BY_OUTCOME.get(result.outcome, 500)
    raise HTTPException(status, detail=result.detail or result.outcome.value)


def record_payload(record: PairingRecord, now: float, *, include_aux: bool = False) -> Dict[str, Any]:
    """Render a record with the camelCase keys the web clients expect."""
    out: Dict[str, Any] = {
        "pairingCode": record.code,
        "sessionId": record.session_id,
        "phoneNumber": record.phone_number,
        "status": record.status.value,
        "createdAt": float(record.created_at),
        "expiresAt": float(record.expires_at),
        "expiresInS": int(max(0.0, float(record.expires_at) - float(now))),
        "linkedAt": record.linked_at,
        "attempts": int(record.attempts),
    }
    if include_aux:
        aux = dict(record.aux_data or {})
        out["hasQR"] = bool(aux.get("qr"))
        reason: Optional[str] = aux.get("disconnect_reason")
        if reason:
            out["disconnectReason"] = reason
    return out


def expires_in_text(ttl_s: float) -> str:
    minutes = int(round(float(ttl_s) / 60.0))
    if minutes >= 1:
        return f"{minutes} minute" + ("" if minutes == 1 else "s")
    return f"{int(ttl_s)} seconds"
