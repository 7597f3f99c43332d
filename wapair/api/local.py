"""Loopback-only webhook for a WhatsApp client running as a sidecar process."""

import ipaddress
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from .. import context
from ..logging_config import log


router = APIRouter()


class ConnectionEventRequest(BaseModel):
    # either a named event or a raw `connection.update` object
    event: Optional[str] = None
    qr: Optional[str] = None
    reason: Optional[str] = None
    code: Optional[str] = None
    sessionId: Optional[str] = None
    update: Optional[Dict[str, Any]] = None


def _is_loopback_host(host: str) -> bool:
    """Return True when the host is localhost/loopback, including IPv4-mapped IPv6."""
    value = str(host or "").strip()
    if not value:
        return False
    if value.lower() == "localhost":
        return True
    try:
        ip = ipaddress.ip_address(value)
    except ValueError:
        return False
    if ip.is_loopback:
        return True
    mapped = getattr(ip, "ipv4_mapped", None)
    return bool(mapped and mapped.is_loopback)


def _require_localhost(request: Request) -> None:
    """Allow access only from localhost or loopback addresses."""
    host = str(getattr(getattr(request, "client", None), "host", "") or "").strip()
    if not _is_loopback_host(host):
        raise HTTPException(403)


@router.post("/api/local/connection")
def connection_event(req: ConnectionEventRequest, request: Request):
    _require_localhost(request)
    adapter = context.signal_adapter
    if req.update is not None:
        changed = adapter.handle_update(req.update)
    elif req.event:
        try:
            changed = adapter.dispatch(
                req.event,
                payload=req.qr,
                reason=req.reason,
                code=req.code,
                session_id=req.sessionId,
            )
        except ValueError as e:
            log.warning("Rejected connection event %r: %s", req.event, e)
            raise HTTPException(400, detail="invalid_event")
    else:
        raise HTTPException(400, detail="event_required")

    snap = context.lifecycle.connection_snapshot()
    return {"status": "ok", "changed": int(changed), "bot": snap["state"], "hasQR": bool(snap["has_qr"])}
