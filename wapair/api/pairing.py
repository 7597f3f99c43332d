"""Pairing code issuance, status and verification endpoints."""

from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from .. import config, context
from ..lifecycle import ConnectionSignal, ConnectionState, SignalContext
from ..logging_config import log
from ..qr import render_qr
from .payloads import expires_in_text, raise_for, record_payload


router = APIRouter()


class PhoneRequest(BaseModel):
    # web form sends `phoneNumber`; API clients may send `phone_number`
    phoneNumber: Optional[str] = None
    phone_number: Optional[str] = None

    def phone(self) -> str:
        return str(self.phoneNumber or self.phone_number or "").strip()


def _issue(phone: str):
    """Generate a code for `phone` or raise the matching HTTP error."""
    if not phone:
        raise HTTPException(400, detail="invalid_phone_number")
    result = context.lifecycle.generate(phone)
    if not result.ok:
        raise_for(result)
    return result.record


@router.post("/api/generate")
def generate_code(req: PhoneRequest):
    """Issue a pairing code plus a QR image that encodes it."""
    lc = context.lifecycle
    if bool(getattr(config, "REQUIRE_CONNECTION", False)) and not lc.is_ready():
        raise HTTPException(503, detail="whatsapp_not_ready")
    record = _issue(req.phone())
    qr_image = render_qr(f"{config.QR_TEXT_PREFIX}{record.code}")
    return {
        "success": True,
        **record_payload(record, lc.now()),
        "qrCode": qr_image,
        "expiresIn": expires_in_text(lc.settings.ttl_s),
        "database": context.store.backend_name,
    }


@router.post("/api/qr")
def get_login_qr(req: PhoneRequest):
    """Return the WhatsApp login QR (when one is pending) together with a fresh pairing code."""
    lc = context.lifecycle
    snap = lc.connection_snapshot()
    state = snap.get("state")
    if state == ConnectionState.QR_READY.value and snap.get("qr"):
        record = _issue(req.phone())
        lc.on_connection_signal(ConnectionSignal.QR, SignalContext(payload=snap["qr"], code=record.code))
        refreshed = lc.check_status(record.code)
        if refreshed.ok and refreshed.record is not None:
            record = refreshed.record
        qr_image = render_qr(snap["qr"])
        if qr_image is None:
            log.warning("Login QR could not be rendered; returning pairing code only")
        message = "QR code ready for scanning"
    elif state == ConnectionState.ONLINE.value:
        record = _issue(req.phone())
        qr_image = None
        message = "Client is online. Use the pairing code to link."
    else:
        raise HTTPException(503, detail="qr_not_ready")
    return {
        "success": True,
        **record_payload(record, lc.now()),
        "qrImage": qr_image,
        "message": message,
    }


@router.get("/api/check/{code}")
def check_code(code: str):
    """Report whether a code is live, without counting it as a verification attempt."""
    lc = context.lifecycle
    result = lc.check_status(code)
    if not result.ok:
        raise_for(result)
    return {"valid": True, **record_payload(result.record, lc.now(), include_aux=True)}


@router.post("/api/verify/{code}")
def verify_code(code: str):
    lc = context.lifecycle
    result = lc.verify(code)
    if not result.ok:
        raise_for(result)
    return {"valid": True, **record_payload(result.record, lc.now(), include_aux=True)}


@router.get("/api/session/{session_id}")
def get_session(session_id: str):
    lc = context.lifecycle
    result = lc.lookup_session(session_id)
    if not result.ok:
        raise_for(result)
    return record_payload(result.record, lc.now(), include_aux=True)
