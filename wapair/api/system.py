"""Service status, health and info endpoints."""

import os
import time

import psutil
from fastapi import APIRouter

from .. import config, context


router = APIRouter()


def _safe_stat(read_fn, fallback: float) -> float:
    """Read a runtime metric and return fallback on errors."""
    try:
        return float(read_fn())
    except Exception:
        return float(fallback)


def _safe_process_rss() -> int:
    """Read current process RSS memory and return 0 if unavailable."""
    try:
        return int(psutil.Process(os.getpid()).memory_info().rss)
    except Exception:
        return 0


def _uptime_s(now: float) -> int:
    started = _safe_stat(lambda: psutil.Process(os.getpid()).create_time(), context.started_at)
    return int(max(0.0, now - started))


@router.get("/api/status")
def bot_status():
    lc = context.lifecycle
    snap = lc.connection_snapshot()
    return {
        "bot": snap["state"],
        "hasQR": bool(snap["has_qr"]),
        "pairingCodes": context.store.count(),
        "lastCode": lc.last_code,
        "database": context.store.backend_name,
        "version": config.VERSION,
        "timestamp": time.time(),
    }


@router.get("/health")
def health():
    now = time.time()
    settings = context.lifecycle.settings
    return {
        "status": "healthy",
        "version": config.VERSION,
        "codeLength": int(settings.code_length),
        "codeFormat": settings.code_format,
        "database": context.store.backend_name,
        "bot": context.lifecycle.connection_state.value,
        "uptimeS": _uptime_s(now),
        "memoryRss": _safe_process_rss(),
        "timestamp": now,
    }


@router.get("/info")
def service_info():
    """Static service details shown by status pages."""
    return {
        "service": config.SERVICE_NAME,
        "version": config.VERSION,
        "contact": config.CONTACT,
        "email": config.CONTACT_EMAIL,
        "website": config.WEBSITE,
        "codeFormat": context.lifecycle.settings.code_format,
        "codeLength": int(context.lifecycle.settings.code_length),
        "codeTtlS": int(context.lifecycle.settings.ttl_s),
    }
