"""
audit/store.py -- SQLAlchemy Core persistence for the append-only audit trail.

Pattern: Repository + Data Mapper (same shape as auth/store.py).

Append-only: the repository exposes append and read methods only. There is
no update or delete path, so an entry cannot be altered once written.

Ordering: entries are read newest first. The seq column is a monotonically
increasing tiebreaker for entries created within the same microsecond, so
two events emitted back to back (mfa_verified, user_login) keep their order.

The audit DB is separate from the auth DB. Writes here are never part of a
transaction with user-record writes.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from audit.models import SEVERITIES, AuditLogEntry

_DEFAULT_DB_URL = "sqlite:///vaultguard_audit.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_audit_log = Table(
    "audit_log",
    _metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(36), nullable=False, unique=True),
    Column("event", String(50), nullable=False, index=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("user_email", String(254), nullable=False),
    Column("ip", String(45), nullable=False),
    Column("location", String(100), nullable=False),
    Column("severity", String(10), nullable=False, index=True),
    Column("timestamp", String(32), nullable=False, index=True),
    Column("meta", Text),  # JSON blob
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuditStore:
    """Append-only repository for AuditLogEntry records.

    Usage:
        store = AuditStore("sqlite:///:memory:")
        stored = store.append(AuditLogEntry(event="user_login", user_id="u1",
                                            user_email="a@b.io", ip="10.0.0.1",
                                            severity="info"))
        latest = store.list_entries(limit=50)
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Persist an entry and return the stored copy with id and timestamp set.

        Any id/timestamp on the incoming entry is ignored: both are assigned
        here so the timestamp is always server time at creation.

        Raises ValueError for an unknown severity; database errors propagate.
        """
        if entry.severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {entry.severity!r}")
        stored = replace(entry, id=str(uuid.uuid4()), timestamp=_now_iso())
        with self.engine.connect() as conn:
            conn.execute(
                _audit_log.insert().values(
                    id=stored.id,
                    event=stored.event,
                    user_id=stored.user_id,
                    user_email=stored.user_email,
                    ip=stored.ip,
                    location=stored.location,
                    severity=stored.severity,
                    timestamp=stored.timestamp,
                    meta=json.dumps(stored.meta) if stored.meta is not None else None,
                )
            )
            conn.commit()
        return stored

    def list_entries(
        self,
        limit: int | None = None,
        event: str | None = None,
        severity: str | None = None,
        user_id: str | None = None,
    ) -> list[AuditLogEntry]:
        """Return entries newest first, optionally filtered."""
        query = _audit_log.select()
        if event is not None:
            query = query.where(_audit_log.c.event == event)
        if severity is not None:
            query = query.where(_audit_log.c.severity == severity)
        if user_id is not None:
            query = query.where(_audit_log.c.user_id == user_id)
        query = query.order_by(_audit_log.c.timestamp.desc(), _audit_log.c.seq.desc())
        if limit is not None:
            query = query.limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_entry(r) for r in rows]

    def count(self, event: str | None = None) -> int:
        query = select(func.count()).select_from(_audit_log)
        if event is not None:
            query = query.where(_audit_log.c.event == event)
        with self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


def _row_to_entry(row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        event=row.event,
        user_id=row.user_id,
        user_email=row.user_email,
        ip=row.ip,
        location=row.location,
        severity=row.severity,
        timestamp=row.timestamp,
        meta=json.loads(row.meta) if row.meta else None,
    )
