"""Error taxonomy and typed results returned by the pairing lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import PairingRecord


class PairingError(Exception):
    """Base class for pairing failures raised inside the core."""


class BackendUnavailable(PairingError):
    """Primary backend timed out, lost connectivity or failed in its driver."""


class CodeGenerationError(PairingError):
    """Alphanumeric rejection sampling hit its attempt cap."""


class Outcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INVALID_INPUT = "invalid_input"
    GENERATION_EXHAUSTED = "generation_exhausted"


class InsertOutcome(str, Enum):
    INSERTED = "inserted"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class PairingResult:
    """Outcome of a lifecycle call plus the record it concerns, when there is one."""

    outcome: Outcome
    record: Optional["PairingRecord"] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK

    @classmethod
    def found(cls, record: "PairingRecord") -> "PairingResult":
        return cls(Outcome.OK, record)

    @classmethod
    def not_found(cls, detail: str = "not_found") -> "PairingResult":
        return cls(Outcome.NOT_FOUND, None, detail)

    @classmethod
    def expired(cls, record: Optional["PairingRecord"] = None) -> "PairingResult":
        return cls(Outcome.EXPIRED, record, "expired")

    @classmethod
    def invalid(cls, detail: str) -> "PairingResult":
        return cls(Outcome.INVALID_INPUT, None, detail)

    @classmethod
    def exhausted(cls, detail: str = "code_space_exhausted") -> "PairingResult":
        return cls(Outcome.GENERATION_EXHAUSTED, None, detail)
