"""Pairing record storage backends."""

from .base import PairingBackend
from .memory import MemoryBackend
from .sql import SqlBackend

__all__ = ["PairingBackend", "MemoryBackend", "SqlBackend"]
