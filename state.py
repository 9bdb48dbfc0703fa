"""SQLite-backed tracking store for users and their subscriptions."""

import sqlite3
import threading
from datetime import datetime, timezone
from typing import Optional

from models import Subscription, User

_SUBSCRIPTION_COLUMNS = "id, user_id, code, title, active, created_at"
_USER_COLUMNS = "id, external_id, username, created_at"


class StoreError(Exception):
    """Base class for tracking store failures."""


class UserNotFoundError(StoreError):
    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _user_from_row(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        external_id=row["external_id"],
        username=row["username"],
        created_at=row["created_at"],
    )


def _subscription_from_row(row: sqlite3.Row) -> Subscription:
    return Subscription(
        id=row["id"],
        user_id=row["user_id"],
        code=row["code"],
        title=row["title"],
        active=bool(row["active"]),
        created_at=row["created_at"],
    )


class TrackingStore:
    """Durable users and subscriptions.

    One row is kept per (user, code) pair. Removing a subscription flips its
    ``active`` flag off and adding it again flips it back on, so there is never
    more than one active row for the same pair.

    The connection is shared between the sweep worker threads and the command
    handlers, so every statement runs under a single lock.
    """

    def __init__(self, db_path: str = "tracking.db"):
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                external_id INTEGER NOT NULL UNIQUE,
                username TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS subscriptions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users(id),
                code TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                UNIQUE (user_id, code)
            );
            CREATE INDEX IF NOT EXISTS idx_subscriptions_active
                ON subscriptions (active);
            CREATE INDEX IF NOT EXISTS idx_subscriptions_code
                ON subscriptions (code);
            """
        )
        self._conn.commit()

    # -- users ---------------------------------------------------------------

    def get_or_create_user(self, external_id: int, username: str = "") -> User:
        """Return the user for a messaging identity, creating it on first contact."""
        with self._lock:
            self._conn.execute(
                "INSERT OR IGNORE INTO users (external_id, username, created_at) VALUES (?, ?, ?)",
                (external_id, username or "", _now()),
            )
            self._conn.commit()
            row = self._conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE external_id = ?",
                (external_id,),
            ).fetchone()
        return _user_from_row(row)

    def get_user_by_id(self, user_id: int) -> User:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        if row is None:
            raise UserNotFoundError(user_id)
        return _user_from_row(row)

    def get_user_by_external_id(self, external_id: int) -> Optional[User]:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE external_id = ?",
                (external_id,),
            ).fetchone()
        return _user_from_row(row) if row else None

    # -- subscriptions -------------------------------------------------------

    def add_subscription(
        self, user_id: int, code: str, title: str
    ) -> tuple[Subscription, bool]:
        """Start tracking ``code`` for a user.

        Returns ``(subscription, is_new)``. An already active row is returned
        untouched with ``is_new=False``; its stored title is kept. An inactive
        row is reactivated with the new title and counts as new.
        """
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions WHERE user_id = ? AND code = ?",
                (user_id, code),
            ).fetchone()

            if row is not None and row["active"]:
                return _subscription_from_row(row), False

            if row is None:
                cursor = self._conn.execute(
                    "INSERT INTO subscriptions (user_id, code, title, active, created_at) "
                    "VALUES (?, ?, ?, 1, ?)",
                    (user_id, code, title, _now()),
                )
                sub_id = cursor.lastrowid
            else:
                sub_id = row["id"]
                self._conn.execute(
                    "UPDATE subscriptions SET active = 1, title = ? WHERE id = ?",
                    (title, sub_id),
                )
            self._conn.commit()

            row = self._conn.execute(
                f"SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions WHERE id = ?",
                (sub_id,),
            ).fetchone()
        return _subscription_from_row(row), True

    def deactivate_subscription(self, user_id: int, code: str) -> bool:
        """Stop tracking ``code``. Returns True only if an active row was switched off."""
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE subscriptions SET active = 0 WHERE user_id = ? AND code = ? AND active = 1",
                (user_id, code),
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def list_user_subscriptions(self, user_id: int) -> list[Subscription]:
        """Active subscriptions of one user, oldest first."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions "
                "WHERE user_id = ? AND active = 1 ORDER BY id",
                (user_id,),
            ).fetchall()
        return [_subscription_from_row(r) for r in rows]

    def list_active_subscriptions(self) -> list[Subscription]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions WHERE active = 1 ORDER BY id"
            ).fetchall()
        return [_subscription_from_row(r) for r in rows]

    def update_title(self, user_id: int, code: str, title: str) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE subscriptions SET title = ? WHERE user_id = ? AND code = ?",
                (title, user_id, code),
            )
            self._conn.commit()

    def count_active(self) -> int:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT COUNT(*) FROM subscriptions WHERE active = 1"
            )
            return cursor.fetchone()[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
