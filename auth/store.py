"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
AuthStore is the repository; _row_to_user / _row_to_session /
_row_to_verification are the mappers. Step and dependency code never touches
SQL directly -- it goes through AuthService, or through this store for the
two plain lookups (/api/users/me, /auth/get-verification-token).

Security:
  All queries use bound parameters. No f-strings in SQL.

Timestamps are ISO 8601 UTC strings produced by _now_iso(). Because every
writer uses the same format, lexical comparison in SQL (expires_at < :now)
orders them correctly.

Layer rule: no imports from api/ or events/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import Session, User, Verification

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("email", String(320), nullable=False, unique=True),
    Column("email_verified", Boolean, nullable=False, server_default="0"),
    Column("image", Text),
    Column("hashed_password", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("expires_at", String(32), nullable=False),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_verifications = Table(
    "verifications",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("identifier", String(255), nullable=False, index=True),
    Column("value", Text, nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode per connection (PRAGMAs are not pooled)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuthStore:
    """Repository for User, Session and Verification entities.

    Usage:
        store = AuthStore("sqlite:///stepauth.db")
        store.create_user(User(id=generate_id(), name="Ada", email="ada@example.com"))
        user = store.get_user_by_email("ada@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def create_user(self, user: User) -> User:
        """Insert a new user and return it with timestamps filled in.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        AuthService checks first; the constraint catches concurrent sign-ups.
        """
        now = _now_iso()
        user.email = user.email.lower()
        user.created_at = now
        user.updated_at = now
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user.id,
                    name=user.name,
                    email=user.email,
                    email_verified=user.email_verified,
                    image=user.image,
                    hashed_password=user.hashed_password,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return user

    def get_user_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields (name, image, email_verified, hashed_password).

        updated_at is stamped automatically. Returns False if user_id was not found.
        """
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> Session:
        now = _now_iso()
        session.created_at = now
        session.updated_at = now
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session.id,
                    token=session.token,
                    user_id=session.user_id,
                    expires_at=session.expires_at,
                    ip_address=session.ip_address,
                    user_agent=session.user_agent,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return session

    def get_session_by_token(self, token: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token == token)).fetchone()
        return _row_to_session(row) if row is not None else None

    def extend_session(self, session_id: str, expires_at: str) -> None:
        """Push expires_at out and stamp updated_at (sliding expiry)."""
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.update()
                .where(_sessions.c.id == session_id)
                .values(expires_at=expires_at, updated_at=_now_iso())
            )
            conn.commit()

    def delete_session(self, token: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.token == token))
            conn.commit()
        return result.rowcount > 0

    def delete_user_sessions(self, user_id: str) -> int:
        """Revoke every session for a user. Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def purge_expired_sessions(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at < _now_iso()))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Verifications
    # ------------------------------------------------------------------

    def create_verification(self, verification: Verification) -> Verification:
        verification.created_at = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _verifications.insert().values(
                    id=verification.id,
                    identifier=verification.identifier,
                    value=verification.value,
                    expires_at=verification.expires_at,
                    created_at=verification.created_at,
                )
            )
            conn.commit()
        return verification

    def get_verification(self, identifier: str) -> Verification | None:
        """Return the newest verification row for identifier, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _verifications.select()
                .where(_verifications.c.identifier == identifier)
                .order_by(_verifications.c.created_at.desc())
            ).fetchone()
        return _row_to_verification(row) if row is not None else None

    def purge_expired_verifications(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_verifications.delete().where(_verifications.c.expires_at < _now_iso()))
            conn.commit()
        return result.rowcount

    def delete_verification(self, verification_id: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_verifications.delete().where(_verifications.c.id == verification_id))
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        email_verified=bool(row.email_verified),
        image=row.image,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        expires_at=row.expires_at,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_verification(row) -> Verification:
    return Verification(
        id=row.id,
        identifier=row.identifier,
        value=row.value,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
