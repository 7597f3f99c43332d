"""Durable primary backend on top of SQLAlchemy."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import JSON, Float, Integer, String, create_engine, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import BackendUnavailable
from ..logging_config import get_logger
from ..models import PairingRecord, PairingStatus
from .base import PairingBackend

log = get_logger("backends")


class Base(DeclarativeBase):
    pass


class PairingCodeRow(Base):
    """One issued pairing code; `code` is the primary key so duplicates fail at insert."""

    __tablename__ = "pairing_codes"

    code: Mapped[str] = mapped_column(String(32), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PairingStatus.PENDING.value)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    linked_at: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    aux_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)


def _apply(row: PairingCodeRow, record: PairingRecord) -> PairingCodeRow:
    row.code = record.code
    row.session_id = record.session_id
    row.phone_number = record.phone_number
    row.status = record.status.value
    row.created_at = float(record.created_at)
    row.expires_at = float(record.expires_at)
    row.linked_at = record.linked_at
    row.attempts = int(record.attempts)
    row.aux_data = dict(record.aux_data or {})
    return row


def _to_record(row: PairingCodeRow) -> PairingRecord:
    return PairingRecord(
        code=row.code,
        session_id=row.session_id,
        phone_number=row.phone_number,
        status=PairingStatus.parse(row.status),
        created_at=float(row.created_at),
        expires_at=float(row.expires_at),
        linked_at=row.linked_at,
        attempts=int(row.attempts or 0),
        aux_data=dict(row.aux_data or {}),
    )


def engine_kwargs(url: str, timeout_s: float) -> Dict[str, Any]:
    """Driver-specific engine options: connect and statement timeouts, SQLite threading."""
    lowered = str(url or "").lower()
    out: Dict[str, Any] = {"pool_pre_ping": True}
    seconds = max(1, int(timeout_s))
    if lowered.startswith("sqlite"):
        out["connect_args"] = {"check_same_thread": False, "timeout": float(timeout_s)}
        if ":memory:" in lowered or lowered.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            # one shared connection, otherwise each worker thread sees its own empty database
            out["poolclass"] = StaticPool
    elif lowered.startswith("postgresql"):
        # server-side cap so a statement abandoned by the store does not commit much later
        out["connect_args"] = {
            "connect_timeout": seconds,
            "options": f"-c statement_timeout={max(1, int(float(timeout_s) * 1000))}",
        }
    elif lowered.startswith("mysql"):
        out["connect_args"] = {"connect_timeout": seconds, "read_timeout": seconds, "write_timeout": seconds}
    return out


class SqlBackend(PairingBackend):
    name = "database"

    def __init__(self, url: str, timeout_s: float = 5.0) -> None:
        self.url = str(url)
        self._engine = create_engine(self.url, **engine_kwargs(self.url, timeout_s))
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        Base.metadata.create_all(self._engine)
        self._schema_ready = True

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            self._ensure_schema()
            with self._sessions() as s:
                yield s
        except SQLAlchemyError as e:
            raise BackendUnavailable(f"{type(e).__name__}: {e}") from e

    def ping(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            self._ensure_schema()
            return True
        except Exception as e:
            log.warning("Database probe failed: %s", e)
            return False

    def insert_unique(self, record: PairingRecord, now: float) -> bool:
        try:
            with self._session() as s, s.begin():
                row = s.get(PairingCodeRow, record.code)
                if row is not None:
                    if float(now) <= float(row.expires_at):
                        return False
                    s.delete(row)
                    s.flush()
                s.add(_apply(PairingCodeRow(), record))
            return True
        except BackendUnavailable as e:
            if isinstance(e.__cause__, IntegrityError):
                return False
            raise

    def find(self, code: str) -> Optional[PairingRecord]:
        with self._session() as s:
            row = s.get(PairingCodeRow, code)
            return _to_record(row) if row is not None else None

    def find_by_session(self, session_id: str) -> Optional[PairingRecord]:
        with self._session() as s:
            row = s.scalars(select(PairingCodeRow).where(PairingCodeRow.session_id == session_id)).first()
            return _to_record(row) if row is not None else None

    def replace(self, record: PairingRecord) -> bool:
        with self._session() as s, s.begin():
            row = s.get(PairingCodeRow, record.code)
            if row is None:
                return False
            _apply(row, record)
        return True

    def delete(self, code: str) -> bool:
        with self._session() as s, s.begin():
            row = s.get(PairingCodeRow, code)
            if row is None:
                return False
            s.delete(row)
        return True

    def records(self) -> List[PairingRecord]:
        with self._session() as s:
            return [_to_record(r) for r in s.scalars(select(PairingCodeRow)).all()]

    def close(self) -> None:
        try:
            self._engine.dispose()
        except Exception:
            pass
