"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route code never touches SQL directly.

Storage: an in-memory SQLite database by default (DATABASE_URL=sqlite://),
held on a single shared connection (StaticPool) so every worker thread sees
the same tables. Accounts vanish on restart; point DATABASE_URL at a file to
keep them.

Concurrency:
  Every public method runs under one threading.Lock, so the shared SQLite
  connection never interleaves transactions from two threads. Uniqueness is
  also enforced by the UNIQUE constraint on username: register() checks
  first for the friendly error, and the INSERT is the authoritative
  check-then-insert step -- a concurrent loser gets IntegrityError, which is
  mapped to UsernameTaken.

Security:
  Queries are built with SQLAlchemy expressions, so values are always bound
  parameters.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.errors import InvalidRegistration, UsernameTaken
from auth.models import User
from auth.passwords import check_password_policy, hash_password

logger = logging.getLogger("sessionguard.auth")

_DEFAULT_DB_URL = "sqlite://"

MAX_USERNAME_LENGTH = 150
MAX_EMAIL_LENGTH = 255

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("username", String(MAX_USERNAME_LENGTH), primary_key=True),  # case-sensitive exact match
    Column("password_hash", Text, nullable=False),
    Column("email", String(MAX_EMAIL_LENGTH), nullable=False),
    Column("age", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for file-backed databases.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_memory_url(db_url: str) -> bool:
    return db_url in ("sqlite://", "sqlite:///:memory:")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore()
        store.register("alice", "alice@example.com", 30, "Str0ng!Passw0rd")
        user = store.lookup("alice")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        kwargs: dict = {}
        if db_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if _is_memory_url(db_url):
                kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, **kwargs)
        if db_url.startswith("sqlite") and not _is_memory_url(db_url):
            event.listen(self.engine, "connect", _set_wal_mode)
        self._lock = threading.Lock()
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, username: str, email: str, age: int, password: str) -> User:
        """Validate, hash and store a new account.

        Order: uniqueness, then password policy, then hashing, then the
        atomic insert. Hashing runs outside the lock so a slow bcrypt call
        never blocks lookups from other requests.

        Raises UsernameTaken, WeakPassword or InvalidRegistration.
        """
        if not username:
            raise InvalidRegistration("Username is required.")
        if len(username) > MAX_USERNAME_LENGTH:
            raise InvalidRegistration(f"Username must be {MAX_USERNAME_LENGTH} characters or fewer.")
        if self.lookup(username) is not None:
            raise UsernameTaken()
        check_password_policy(password)

        user = User(
            username=username,
            password_hash=hash_password(password),
            email=email,
            age=age,
            created_at=_now_iso(),
        )
        self.create_user(user)
        logger.info("Registered user %r", username)
        return user

    def create_user(self, user: User) -> None:
        """Insert a user record. Raises UsernameTaken if the username exists."""
        if not user.password_hash:
            raise InvalidRegistration("A password hash is required.")
        with self._lock, self.engine.connect() as conn:
            try:
                conn.execute(
                    _users.insert().values(
                        username=user.username,
                        password_hash=user.password_hash,
                        email=user.email,
                        age=user.age,
                        created_at=user.created_at or _now_iso(),
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise UsernameTaken() from exc

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(self, username: str) -> User | None:
        """Exact, case-sensitive match. None when no such user exists."""
        with self._lock, self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by username. Development listing only."""
        with self._lock, self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count(self) -> int:
        with self._lock, self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._lock, self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            logger.exception("User store health check failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        username=row.username,
        password_hash=row.password_hash,
        email=row.email,
        age=row.age,
        created_at=row.created_at,
    )
