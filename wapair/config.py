import os
import sys
from typing import List


VERSION = "v2.1.0"
SERVICE_NAME = os.environ.get("WAPAIR_SERVICE_NAME", "WA Pair")
CONTACT = os.environ.get("WAPAIR_CONTACT", "")
CONTACT_EMAIL = os.environ.get("WAPAIR_CONTACT_EMAIL", "")
WEBSITE = os.environ.get("WAPAIR_WEBSITE", "")


def _csv_list(raw: str) -> List[str]:
    """Parse a comma-separated string into normalized non-empty values."""
    out: List[str] = []
    for x in str(raw or "").split(","):
        s = str(x or "").strip()
        if s and s not in out:
            out.append(s)
    return out


def _code_format(raw: str) -> str:
    """Normalize the configured code format to `alnum` or `numeric`."""
    value = str(raw or "").strip().lower()
    if value in ("numeric", "digits", "number"):
        return "numeric"
    return "alnum"


HOST = "0.0.0.0"
PORT = int(os.environ.get("WAPAIR_PORT", "5000"))
PORT_AUTO = os.environ.get("WAPAIR_PORT_AUTO", "0") == "1"

VERBOSE_HTTP_LOG = os.environ.get("WAPAIR_VERBOSE_HTTP_LOG", "1") == "1"
CORS_ORIGINS = _csv_list(os.environ.get("WAPAIR_CORS_ORIGINS", "*")) or ["*"]
CORS_ALLOW_CREDENTIALS = os.environ.get("WAPAIR_CORS_ALLOW_CREDENTIALS", "0") == "1"
if "*" in CORS_ORIGINS:
    CORS_ALLOW_CREDENTIALS = False

DEBUG = os.environ.get("WAPAIR_DEBUG", "0") == "1"
CONSOLE_LOG = os.environ.get("WAPAIR_CONSOLE", "0") == "1"
LOG_ENABLED = os.environ.get("WAPAIR_LOG", "0") == "1" or CONSOLE_LOG
# per-component levels, e.g. "store=DEBUG,sweeper=WARNING"
LOG_LEVELS = _csv_list(os.environ.get("WAPAIR_LOG_LEVELS", ""))

CODE_FORMAT = _code_format(os.environ.get("WAPAIR_CODE_FORMAT", "alnum"))
CODE_LENGTH = int(os.environ.get("WAPAIR_CODE_LENGTH", "8"))
CODE_TTL_S = int(os.environ.get("WAPAIR_CODE_TTL_S", "600"))
GENERATE_MAX_ATTEMPTS = int(os.environ.get("WAPAIR_GENERATE_MAX_ATTEMPTS", "5"))
ALNUM_MAX_RESAMPLES = int(os.environ.get("WAPAIR_ALNUM_MAX_RESAMPLES", "1000"))
SESSION_PREFIX = str(os.environ.get("WAPAIR_SESSION_PREFIX", "WAPAIR") or "WAPAIR").strip()
COUNTRY_CODE = str(os.environ.get("WAPAIR_COUNTRY_CODE", "254") or "254").strip().lstrip("+")
QR_TEXT_PREFIX = os.environ.get("WAPAIR_QR_TEXT_PREFIX", "WHATSAPP:")
REQUIRE_CONNECTION = os.environ.get("WAPAIR_REQUIRE_CONNECTION", "0") == "1"

DATABASE_URL = str(os.environ.get("WAPAIR_DATABASE_URL", "") or "").strip()
DB_TIMEOUT_S = float(os.environ.get("WAPAIR_DB_TIMEOUT_S", "5"))
DB_PROBE_INTERVAL_S = int(os.environ.get("WAPAIR_DB_PROBE_INTERVAL_S", "0"))
SWEEP_INTERVAL_S = int(os.environ.get("WAPAIR_SWEEP_INTERVAL_S", "60"))
FALLBACK_MAX_RECORDS = int(os.environ.get("WAPAIR_FALLBACK_MAX_RECORDS", "8192"))

if getattr(sys, "frozen", False):
    BASE_DIR = os.path.dirname(sys.executable)
else:
    # repository root (parent of the package directory)
    BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

DATA_DIR = os.path.abspath(str(os.environ.get("WAPAIR_DATA_DIR", BASE_DIR) or BASE_DIR))
LOG_FILE = os.path.join(DATA_DIR, "wapair.log")

if not os.path.exists(DATA_DIR):
    os.makedirs(DATA_DIR, exist_ok=True)


def reload_from_env() -> None:
    """Reload runtime configuration from environment variables."""
    global PORT, PORT_AUTO, DEBUG, CONSOLE_LOG, LOG_ENABLED, LOG_LEVELS
    global VERBOSE_HTTP_LOG, CORS_ORIGINS, CORS_ALLOW_CREDENTIALS
    global CODE_FORMAT, CODE_LENGTH, CODE_TTL_S, GENERATE_MAX_ATTEMPTS, ALNUM_MAX_RESAMPLES
    global SESSION_PREFIX, COUNTRY_CODE, QR_TEXT_PREFIX, REQUIRE_CONNECTION
    global DATABASE_URL, DB_TIMEOUT_S, DB_PROBE_INTERVAL_S, SWEEP_INTERVAL_S, FALLBACK_MAX_RECORDS
    global SERVICE_NAME, CONTACT, CONTACT_EMAIL, WEBSITE

    PORT = int(os.environ.get("WAPAIR_PORT", str(PORT)))
    PORT_AUTO = os.environ.get("WAPAIR_PORT_AUTO", "0") == "1"

    DEBUG = os.environ.get("WAPAIR_DEBUG", "0") == "1"
    CONSOLE_LOG = os.environ.get("WAPAIR_CONSOLE", "0") == "1"
    LOG_ENABLED = os.environ.get("WAPAIR_LOG", "0") == "1" or CONSOLE_LOG
    LOG_LEVELS = _csv_list(os.environ.get("WAPAIR_LOG_LEVELS", ",".join(LOG_LEVELS)))

    VERBOSE_HTTP_LOG = os.environ.get("WAPAIR_VERBOSE_HTTP_LOG", "1") == "1"
    CORS_ORIGINS = _csv_list(os.environ.get("WAPAIR_CORS_ORIGINS", ",".join(CORS_ORIGINS))) or ["*"]
    CORS_ALLOW_CREDENTIALS = os.environ.get("WAPAIR_CORS_ALLOW_CREDENTIALS", "0") == "1"
    if "*" in CORS_ORIGINS:
        CORS_ALLOW_CREDENTIALS = False

    CODE_FORMAT = _code_format(os.environ.get("WAPAIR_CODE_FORMAT", CODE_FORMAT))
    CODE_LENGTH = int(os.environ.get("WAPAIR_CODE_LENGTH", str(CODE_LENGTH)))
    CODE_TTL_S = int(os.environ.get("WAPAIR_CODE_TTL_S", str(CODE_TTL_S)))
    GENERATE_MAX_ATTEMPTS = int(os.environ.get("WAPAIR_GENERATE_MAX_ATTEMPTS", str(GENERATE_MAX_ATTEMPTS)))
    ALNUM_MAX_RESAMPLES = int(os.environ.get("WAPAIR_ALNUM_MAX_RESAMPLES", str(ALNUM_MAX_RESAMPLES)))
    SESSION_PREFIX = str(os.environ.get("WAPAIR_SESSION_PREFIX", SESSION_PREFIX) or "WAPAIR").strip()
    COUNTRY_CODE = str(os.environ.get("WAPAIR_COUNTRY_CODE", COUNTRY_CODE) or "254").strip().lstrip("+")
    QR_TEXT_PREFIX = os.environ.get("WAPAIR_QR_TEXT_PREFIX", QR_TEXT_PREFIX)
    REQUIRE_CONNECTION = os.environ.get("WAPAIR_REQUIRE_CONNECTION", "0") == "1"

    DATABASE_URL = str(os.environ.get("WAPAIR_DATABASE_URL", DATABASE_URL) or "").strip()
    DB_TIMEOUT_S = float(os.environ.get("WAPAIR_DB_TIMEOUT_S", str(DB_TIMEOUT_S)))
    DB_PROBE_INTERVAL_S = int(os.environ.get("WAPAIR_DB_PROBE_INTERVAL_S", str(DB_PROBE_INTERVAL_S)))
    SWEEP_INTERVAL_S = int(os.environ.get("WAPAIR_SWEEP_INTERVAL_S", str(SWEEP_INTERVAL_S)))
    FALLBACK_MAX_RECORDS = int(os.environ.get("WAPAIR_FALLBACK_MAX_RECORDS", str(FALLBACK_MAX_RECORDS)))

    SERVICE_NAME = os.environ.get("WAPAIR_SERVICE_NAME", SERVICE_NAME)
    CONTACT = os.environ.get("WAPAIR_CONTACT", CONTACT)
    CONTACT_EMAIL = os.environ.get("WAPAIR_CONTACT_EMAIL", CONTACT_EMAIL)
    WEBSITE = os.environ.get("WAPAIR_WEBSITE", WEBSITE)
