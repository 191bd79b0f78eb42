"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. The session service never touches SQL directly.

Atomicity: every method is one statement in one connection, so each call is
atomic for the single record it touches. Nothing here spans multiple records
or joins the audit database -- the core does not assume cross-store
transactions.

Security:
  All queries use bound parameters. No f-strings in SQL.
  update_fields() only accepts whitelisted column names.
  approval_status has its own setter so the only way to approve an account is
  the explicit administrative path (auth/approval.py).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, and_, create_engine, event, func, text
from sqlalchemy.engine import Engine

from auth.models import APPROVAL_STATUSES, User

_DEFAULT_DB_URL = "sqlite:///vaultguard_auth.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("email", String(254), nullable=False, unique=True),  # stored lowercased
    Column("name", String(100), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(10), nullable=False, server_default="user"),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("approval_status", String(10), nullable=False, server_default="pending"),
    Column("mfa_code", String(6)),  # NULL unless a challenge is outstanding
    Column("mfa_expires_at", String(32)),
    Column("mfa_fallback_code", String(6)),  # demo/seed accounts only
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    """Canonical compare key for an email address: trimmed and lowercased."""
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user_id = store.insert(User(email="a@b.io", name="A", hashed_password=hash_password("secret123")))
        user = store.find_by_email("A@B.io")
        store.close()
    """

    # Columns update_fields() may touch. approval_status is deliberately absent.
    _MUTABLE_FIELDS: frozenset = frozenset(
        {"name", "hashed_password", "role", "is_verified", "mfa_code", "mfa_expires_at", "mfa_fallback_code"}
    )

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return (result or 0) > 0

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by email, case-insensitively. Returns None if not found."""
        key = normalize_email(email)
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(func.lower(_users.c.email) == key)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users, newest first. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.created_at.desc())).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert(self, user: User) -> str:
        """Insert a new user and return its id.

        A fresh uuid4 is assigned unless user.id is already set (seeded
        accounts use fixed ids). created_at keeps a caller-supplied value for
        the same reason.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        if user.approval_status not in APPROVAL_STATUSES:
            raise ValueError(f"Unknown approval status: {user.approval_status!r}")
        user_id = user.id or str(uuid.uuid4())
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=normalize_email(user.email),
                    name=user.name,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    is_verified=1 if user.is_verified else 0,
                    approval_status=user.approval_status,
                    mfa_code=user.mfa_code,
                    mfa_expires_at=user.mfa_expires_at,
                    mfa_fallback_code=user.mfa_fallback_code,
                    created_at=user.created_at or _now_iso(),
                )
            )
            conn.commit()
        return user_id

    def update_fields(self, user_id: str, **fields) -> bool:
        """Patch mutable columns on one user record.

        Unknown or protected keys raise ValueError rather than being silently
        dropped. is_verified must be passed as bool; it is stored as 0/1.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable via update_fields: {sorted(unknown)!r}")
        if not fields:
            return False
        if "is_verified" in fields:
            fields["is_verified"] = 1 if fields["is_verified"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def consume_code(self, user_id: str, code: str, expires_at: str) -> bool:
        """Clear the outstanding code only if it is still the one the caller checked.

        A compare-and-swap on (mfa_code, mfa_expires_at): when two requests
        read the same code, exactly one of them sees a row updated. Returns
        True for that one.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(
                    and_(
                        _users.c.id == user_id,
                        _users.c.mfa_code == code,
                        _users.c.mfa_expires_at == expires_at,
                    )
                )
                .values(mfa_code=None, mfa_expires_at=None)
            )
            conn.commit()
        return result.rowcount == 1

    def set_approval_status(self, user_id: str, status: str) -> bool:
        """Set the lifecycle status. Returns False if user_id was not found."""
        if status not in APPROVAL_STATUSES:
            raise ValueError(f"Unknown approval status: {status!r}")
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(approval_status=status))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=row.role,
        is_verified=bool(row.is_verified),
        approval_status=row.approval_status,
        mfa_code=row.mfa_code,
        mfa_expires_at=row.mfa_expires_at,
        mfa_fallback_code=row.mfa_fallback_code,
        created_at=row.created_at,
    )
