import asyncio
import socket
import time
from contextlib import asynccontextmanager
from urllib.parse import parse_qsl, urlencode, urlsplit

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .logging_config import log

from .api import local_router, pairing_router, system_router


_SENSITIVE_QUERY_KEYS = ("code", "token", "t", "phone", "phonenumber", "authorization", "auth")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sweeper and database probe; release the store on shutdown."""
    import wapair.context as ctx

    # startup and shutdown block for up to the database timeout; keep them off the event loop
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, ctx.start_background)
    try:
        yield
    finally:
        await loop.run_in_executor(None, ctx.shutdown)


app = FastAPI(title=f"{config.SERVICE_NAME} {config.VERSION}", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(getattr(config, "CORS_ORIGINS", ["*"])),
    allow_credentials=bool(getattr(config, "CORS_ALLOW_CREDENTIALS", False)),
    allow_methods=["*"],
    allow_headers=["*"],
)


def _sanitize_url_for_log(url: str) -> str:
    """Redact pairing codes, phone numbers and tokens before HTTP access logging."""
    try:
        p = urlsplit(str(url or ""))
        qs = parse_qsl(p.query, keep_blank_values=True)
        out = []
        for k, v in qs:
            lk = str(k or "").lower()
            if lk in _SENSITIVE_QUERY_KEYS:
                out.append((k, "***"))
            else:
                sv = str(v or "")
                if len(sv) > 64:
                    sv = sv[:64] + "..."
                out.append((k, sv))
        q = urlencode(out, doseq=True)
        return p.path + (f"?{q}" if q else "")
    except Exception:
        return str(url or "")


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@app.middleware("http")
async def http_log_middleware(request: Request, call_next):
    """Log HTTP request latency with selective verbosity and privacy filtering."""
    started = time.perf_counter()
    method = str(request.method or "")
    target = _sanitize_url_for_log(str(request.url or ""))
    try:
        response = await call_next(request)
    except Exception:
        log.exception("HTTP %s %s -> 500", method, target)
        raise

    dt_ms = (time.perf_counter() - started) * 1000.0
    status = int(getattr(response, "status_code", 0) or 0)
    should_log = bool(getattr(config, "VERBOSE_HTTP_LOG", True))
    if not should_log:
        should_log = dt_ms >= 1000.0 or status >= 500
    if should_log:
        log.info("HTTP %s %s -> %s in %.1fms", method, target, status, dt_ms)
    return response


app.include_router(pairing_router)
app.include_router(system_router)
app.include_router(local_router)


def _port_available(port: int) -> bool:
    """Return True when configured host/port can be bound successfully."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((config.HOST, int(port)))
            return True
    except Exception:
        return False


def _find_free_port() -> int:
    """Return an ephemeral TCP port that is currently free."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        return s.getsockname()[1]


def run() -> None:
    """Start the FastAPI server on the configured host and port."""
    log_level = "debug" if config.DEBUG else "info"
    access_log = config.DEBUG
    if not config.LOG_ENABLED:
        log_level = "critical"
        access_log = False

    port = int(config.PORT)
    if getattr(config, "PORT_AUTO", False) and not _port_available(port):
        try:
            port = int(_find_free_port())
            config.PORT = port
            log.warning("Port busy; switched to free port %s", port)
        except OSError:
            log.exception("No free port found; keeping %s", port)

    log.info("%s %s listening on %s:%s", config.SERVICE_NAME, config.VERSION, config.HOST, port)
    uvicorn.run(app, host=config.HOST, port=port, log_level=log_level, access_log=access_log)
