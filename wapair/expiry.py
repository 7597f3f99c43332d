"""Expiry arithmetic for pairing records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import PairingRecord

DEFAULT_TTL_S = 600


class ExpiryPolicy:
    """Fixed TTL applied uniformly to every record."""

    def __init__(self, ttl_s: float = DEFAULT_TTL_S) -> None:
        if float(ttl_s) <= 0:
            raise ValueError("ttl_s must be positive")
        self.ttl_s = float(ttl_s)

    def compute_expiry(self, created_at: float, ttl_s: Optional[float] = None) -> float:
        ttl = self.ttl_s if ttl_s is None else float(ttl_s)
        if ttl <= 0:
            raise ValueError("ttl_s must be positive")
        return float(created_at) + ttl

    @staticmethod
    def is_expired(record: "PairingRecord", now: float) -> bool:
        return float(now) > float(record.expires_at)

    @staticmethod
    def remaining_s(record: "PairingRecord", now: float) -> int:
        """Return remaining lifetime in whole seconds, never negative."""
        return int(max(0.0, float(record.expires_at) - float(now)))
