"""Users: the record, its SQLite repository and service."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    username TEXT UNIQUE,
    password TEXT NOT NULL,
    age INTEGER DEFAULT 0,
    active INTEGER DEFAULT 1,
    is_active INTEGER DEFAULT 1,
    is_email_verified INTEGER DEFAULT 0,
    email_verified_at REAL,
    last_login_at REAL,
    password_reset_token TEXT,
    password_reset_expiry REAL,
    api_key TEXT UNIQUE,
    created_at REAL,
    updated_at REAL,
    deleted_at REAL
);
CREATE INDEX IF NOT EXISTS idx_users_deleted_at ON users(deleted_at);
"""


@dataclass
class User:
    """An application user; secrets are kept out of the repr."""

    name: str = ""
    email: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    age: int = 0
    active: bool = True
    is_active: bool = True
    is_email_verified: bool = False
    email_verified_at: datetime | None = None
    last_login_at: datetime | None = None
    password_reset_token: str | None = field(default=None, repr=False)
    password_reset_expiry: datetime | None = field(default=None, repr=False)
    api_key: str | None = field(default=None, repr=False)
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


_COLUMNS = tuple(f.name for f in fields(User))
_INSERT_COLUMNS = tuple(name for name in _COLUMNS if name != "id")
_UPDATE_COLUMNS = tuple(
    name for name in _COLUMNS if name not in ("id", "created_at", "deleted_at")
)
_DATETIME_FIELDS = frozenset(
    {
        "email_verified_at",
        "last_login_at",
        "password_reset_expiry",
        "created_at",
        "updated_at",
        "deleted_at",
    }
)
_BOOL_FIELDS = frozenset({"active", "is_active", "is_email_verified"})
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM users WHERE deleted_at IS NULL"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(name: str, value: Any) -> Any:
    if name in _DATETIME_FIELDS:
        return None if value is None else value.timestamp()
    if name in _BOOL_FIELDS:
        return int(value)
    return value


def _from_db(name: str, value: Any) -> Any:
    if name in _DATETIME_FIELDS:
        return None if value is None else datetime.fromtimestamp(value, timezone.utc)
    if name in _BOOL_FIELDS:
        return bool(value)
    return value


def _from_row(row: tuple[Any, ...]) -> User:
    return User(**{name: _from_db(name, value) for name, value in zip(_COLUMNS, row)})


class UserRepository:
    """Stores users in SQLite; deletion is soft."""

    def __init__(
        self,
        connection: sqlite3.Connection,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._conn = connection
        self._clock = clock
        self._in_transaction = False

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        if self._in_transaction:
            yield
            return
        self._in_transaction = True
        try:
            with self._conn:
                yield
        finally:
            self._in_transaction = False

    def create_schema(self) -> None:
        self._conn.executescript(_SCHEMA)

    def _find_one(self, condition: str, *params: Any) -> User | None:
        row = self._conn.execute(
            f"{_SELECT} AND ({condition}) ORDER BY id LIMIT 1", params
        ).fetchone()
        return None if row is None else _from_row(row)

    def _find_many(self, condition: str, *params: Any) -> list[User]:
        rows = self._conn.execute(
            f"{_SELECT} AND ({condition}) ORDER BY id", params
        ).fetchall()
        return [_from_row(row) for row in rows]

    def find_all(self) -> list[User]:
        rows = self._conn.execute(f"{_SELECT} ORDER BY id").fetchall()
        return [_from_row(row) for row in rows]

    def find_by_id(self, user_id: int) -> User | None:
        return self._find_one("id = ?", user_id)

    def find_by_email(self, email: str) -> User | None:
        return self._find_one("email = ?", email)

    def find_by_username(self, username: str) -> User | None:
        return self._find_one("username = ?", username)

    def find_by_api_key(self, api_key: str) -> User | None:
        return self._find_one("api_key = ?", api_key)

    def find_active_users(self) -> list[User]:
        return self._find_many("active = ?", 1)

    def update_user_status(self, user_id: int, active: bool) -> None:
        with self._atomic():
            self._conn.execute(
                "UPDATE users SET active = ?, updated_at = ? WHERE id = ? AND deleted_at IS NULL",
                (int(active), self._clock().timestamp(), user_id),
            )

    def search(self, keyword: str) -> list[User]:
        """Users whose name or email contains ``keyword``."""
        pattern = f"%{keyword}%"
        return self._find_many("name LIKE ? OR email LIKE ?", pattern, pattern)

    def paginate(self, page: int, limit: int) -> tuple[list[User], int]:
        """Return one page of users ordered by id, and the total count."""
        total = self._conn.execute(
            "SELECT COUNT(*) FROM users WHERE deleted_at IS NULL"
        ).fetchone()[0]
        rows = self._conn.execute(
            f"{_SELECT} ORDER BY id LIMIT ? OFFSET ?", (limit, (page - 1) * limit)
        ).fetchall()
        return [_from_row(row) for row in rows], total

    def create(self, user: User) -> None:
        """Insert ``user`` and fill in its id and timestamps."""
        now = self._clock()
        if user.created_at is None:
            user.created_at = now
        user.updated_at = now
        placeholders = ", ".join("?" for _ in _INSERT_COLUMNS)
        with self._atomic():
            cursor = self._conn.execute(
                f"INSERT INTO users ({', '.join(_INSERT_COLUMNS)}) VALUES ({placeholders})",
                [_to_db(name, getattr(user, name)) for name in _INSERT_COLUMNS],
            )
        user.id = cursor.lastrowid

    def update(self, user: User) -> None:
        """Save every field of an existing user."""
        if user.id is None:
            raise ValueError("user has no id")
        user.updated_at = self._clock()
        assignments = ", ".join(f"{name} = ?" for name in _UPDATE_COLUMNS)
        with self._atomic():
            self._conn.execute(
                f"UPDATE users SET {assignments} WHERE id = ?",
                [*(_to_db(name, getattr(user, name)) for name in _UPDATE_COLUMNS), user.id],
            )

    def delete(self, user_id: int) -> None:
        """Mark the user deleted."""
        with self._atomic():
            self._conn.execute(
                "UPDATE users SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (self._clock().timestamp(), user_id),
            )


class UserService:
    """User operations on top of a ``UserRepository``."""

    def __init__(self, repository: UserRepository) -> None:
        self.repository = repository

    def get_all_users(self) -> list[User]:
        return self.repository.find_all()

    def get_user(self, user_id: int) -> User | None:
        return self.repository.find_by_id(user_id)

    def create_user(self, user: User) -> None:
        self.repository.create(user)

    def update_user(self, user: User) -> None:
        self.repository.update(user)

    def delete_user(self, user_id: int) -> None:
        self.repository.delete(user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return self.repository.find_by_email(email)

    def search_users(self, keyword: str) -> list[User]:
        return self.repository.search(keyword)

    def create_users(self, users: Iterable[User]) -> None:
        """Create all ``users`` in one transaction: either all are stored or none."""
        with self.repository._atomic():
            for user in users:
                try:
                    self.repository.create(user)
                except sqlite3.Error as exc:
                    raise ValueError(f"failed to create user {user.email}: {exc}") from exc