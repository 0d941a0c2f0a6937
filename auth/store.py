"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_blacklist_entry are the
mappers. Route, dependency and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  users.email carries a UNIQUE constraint. create_user() lets the resulting
  IntegrityError propagate so the service can turn a lost registration race
  into a conflict instead of a generic fault.

  blacklisted_tokens.token is UNIQUE: one revocation record per token string.

Timestamps are ISO 8601 UTC strings (same representation for created_at,
updated_at and expires_at), so lexical order equals chronological order.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine

from auth.models import BlacklistEntry, Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("phone", String(20), index=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("landlord_id", Integer, index=True),  # users.id of the managing LANDLORD
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_blacklisted_tokens = Table(
    "blacklisted_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", Text, nullable=False, unique=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("expires_at", String(32), nullable=False),  # equals the token's exp claim
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and BlacklistEntry records.

    Usage:
        store = UserStore("sqlite:///propdesk_auth.db")
        user_id = store.create_user(User(first_name="Ada", ..., role=Role.LANDLORD))
        user = store.get_by_email("ada@example.com")
        store.close()
    """

    # Fields update_user() accepts. Anything else is rejected before SQL.
    _MUTABLE_FIELDS: set = {"first_name", "last_name", "phone", "hashed_password", "is_active", "landlord_id"}

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers must treat that as "email taken": a concurrent request won
        the race for the same address.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    first_name=user.first_name,
                    last_name=user.last_name,
                    email=user.email,
                    phone=user.phone,
                    hashed_password=user.hashed_password,
                    role=Role(user.role).value,
                    is_active=1 if user.is_active else 0,
                    landlord_id=user.landlord_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_phone(self, phone: str) -> User | None:
        """Return the first user (lowest id) with this phone number.

        Phone is not unique, so the earliest registration wins.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(_users.c.phone == phone).order_by(_users.c.id).limit(1)
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_landlord(self, landlord_id: int) -> User | None:
        """Return the user with this id only if it holds the LANDLORD role."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.id == landlord_id) & (_users.c.role == Role.LANDLORD.value))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_by_landlord(self, landlord_id: int, role: Role | None = None) -> list[User]:
        """Return users managed by a landlord, optionally filtered by role, ordered by id."""
        query = _users.select().where(_users.c.landlord_id == landlord_id)
        if role is not None:
            query = query.where(_users.c.role == Role(role).value)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: see _MUTABLE_FIELDS. is_active must be passed as bool;
        this method converts to int for SQLite. Unknown fields raise ValueError.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Token blacklist
    # ------------------------------------------------------------------

    def add_blacklisted_token(self, entry: BlacklistEntry) -> int:
        """Record a revoked token. Raises IntegrityError if it is already recorded."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _blacklisted_tokens.insert().values(
                    token=entry.token,
                    user_id=entry.user_id,
                    expires_at=_to_iso(entry.expires_at),
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_blacklisted_token(self, token: str) -> BlacklistEntry | None:
        """Look up a revocation record by literal token string. O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_blacklisted_tokens.select().where(_blacklisted_tokens.c.token == token)).fetchone()
        return _row_to_blacklist_entry(row) if row is not None else None

    def delete_blacklisted_token(self, entry_id: int) -> bool:
        """Delete one revocation record. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_blacklisted_tokens.delete().where(_blacklisted_tokens.c.id == entry_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            return conn.execute(select(1)).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        phone=row.phone,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        is_active=bool(row.is_active),
        landlord_id=row.landlord_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_blacklist_entry(row) -> BlacklistEntry:
    return BlacklistEntry(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        expires_at=datetime.fromisoformat(row.expires_at),
        created_at=row.created_at,
    )
