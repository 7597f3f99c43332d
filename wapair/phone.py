"""Phone number normalization to `+<country><subscriber>` form."""

import re
from typing import Optional

_SEPARATORS = re.compile(r"[\s\-().]+")
_LOCAL = re.compile(r"^\d{9,12}$")
_INTERNATIONAL = re.compile(r"^\+\d{10,15}$")


def normalize_phone(raw: Optional[str], country_code: str = "254") -> Optional[str]:
    """Return the normalized number, or None when the input is not a phone number.

    Local numbers (9-12 digits, an optional trunk `0` is dropped) get the
    configured country code prepended; `+`-prefixed and `00`-prefixed numbers
    are kept as international.
    """
    value = _SEPARATORS.sub("", str(raw or ""))
    if not value:
        return None
    if value.startswith("00"):
        value = "+" + value[2:]
    if value.startswith("+"):
        return value if _INTERNATIONAL.match(value) else None
    cc = str(country_code or "").lstrip("+")
    if cc and value.startswith(cc) and len(value) > 10 and _INTERNATIONAL.match("+" + value):
        return "+" + value
    if value.startswith("0") and len(value) >= 10:
        value = value[1:]
    if not _LOCAL.match(value):
        return None
    return f"+{cc}{value}"
