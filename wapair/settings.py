"""Static configuration object handed to the pairing core at construction time."""

from dataclasses import dataclass
from types import ModuleType
from typing import Optional

from .codes import DEFAULT_MAX_RESAMPLES, FORMAT_ALNUM, FORMATS
from .expiry import DEFAULT_TTL_S


@dataclass(frozen=True)
class PairingSettings:
    code_format: str = FORMAT_ALNUM
    code_length: int = 8
    ttl_s: float = DEFAULT_TTL_S
    max_attempts: int = 5
    max_resamples: int = DEFAULT_MAX_RESAMPLES
    session_prefix: str = "WAPAIR"
    country_code: str = "254"

    def __post_init__(self) -> None:
        if self.code_format not in FORMATS:
            raise ValueError(f"code_format must be one of {FORMATS}")
        min_len = 2 if self.code_format == FORMAT_ALNUM else 1
        if int(self.code_length) < min_len:
            raise ValueError(f"code_length must be >= {min_len} for {self.code_format} codes")
        if float(self.ttl_s) <= 0:
            raise ValueError("ttl_s must be positive")
        if int(self.max_attempts) < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_config(cls, cfg: Optional[ModuleType] = None) -> "PairingSettings":
        """Snapshot the relevant `wapair.config` values."""
        if cfg is None:
            from . import config as cfg
        return cls(
            code_format=str(getattr(cfg, "CODE_FORMAT", FORMAT_ALNUM)),
            code_length=int(getattr(cfg, "CODE_LENGTH", 8)),
            ttl_s=float(getattr(cfg, "CODE_TTL_S", DEFAULT_TTL_S)),
            max_attempts=max(1, int(getattr(cfg, "GENERATE_MAX_ATTEMPTS", 5) or 5)),
            max_resamples=max(1, int(getattr(cfg, "ALNUM_MAX_RESAMPLES", DEFAULT_MAX_RESAMPLES) or 1)),
            session_prefix=str(getattr(cfg, "SESSION_PREFIX", "WAPAIR") or "WAPAIR"),
            country_code=str(getattr(cfg, "COUNTRY_CODE", "254") or "254"),
        )
