"""Pairing code generation and format validation."""

from __future__ import annotations

import random
import re
import secrets
import string
from typing import Optional

from .errors import CodeGenerationError

ALNUM_ALPHABET = string.ascii_uppercase + string.digits

FORMAT_NUMERIC = "numeric"
FORMAT_ALNUM = "alnum"
FORMATS = (FORMAT_NUMERIC, FORMAT_ALNUM)

DEFAULT_MAX_RESAMPLES = 1000


class CodeGenerator:
    """Produce candidate codes; holds no state besides its random source."""

    def __init__(self, rng: Optional[random.Random] = None, max_resamples: int = DEFAULT_MAX_RESAMPLES) -> None:
        self._rng = rng or secrets.SystemRandom()
        self._max_resamples = max(1, int(max_resamples))

    def generate(self, fmt: str, length: int) -> str:
        """Return one candidate code in the requested format."""
        if fmt == FORMAT_NUMERIC:
            return self._numeric(length)
        if fmt == FORMAT_ALNUM:
            return self._alnum(length)
        raise ValueError(f"unknown code format: {fmt!r}")

    def _numeric(self, length: int) -> str:
        length = int(length)
        if length < 1:
            raise ValueError("numeric code length must be >= 1")
        lo = 10 ** (length - 1)
        hi = 10**length - 1
        return str(self._rng.randint(lo, hi)).zfill(length)

    def _alnum(self, length: int) -> str:
        length = int(length)
        if length < 2:
            raise ValueError("alphanumeric code length must be >= 2")
        for _ in range(self._max_resamples):
            code = "".join(self._rng.choice(ALNUM_ALPHABET) for _ in range(length))
            if has_letter_and_digit(code):
                return code
        raise CodeGenerationError(f"no mixed alphanumeric code after {self._max_resamples} samples")


def has_letter_and_digit(code: str) -> bool:
    return any(c.isalpha() for c in code) and any(c.isdigit() for c in code)


def normalize_code(raw: Optional[str]) -> str:
    """Strip whitespace and dashes, upper-case letters."""
    return re.sub(r"[\s-]+", "", str(raw or "")).upper()


def is_valid_code(code: str, fmt: str, length: int) -> bool:
    """Check a user-supplied code against the configured format before any store lookup."""
    if not code or len(code) != int(length):
        return False
    if fmt == FORMAT_NUMERIC:
        if not code.isdigit():
            return False
        return code[0] != "0"
    if fmt == FORMAT_ALNUM:
        return all(c in ALNUM_ALPHABET for c in code) and has_letter_and_digit(code)
    return False
