"""
CounterStore — the server-side counter record on sqlite.

Serves as the server collaborator in "local" mode and in tests. Same
contract as api.HttpCounterService: an invalid session yields None,
a non-positive delta raises InvalidInput before touching the database.

The connection is opened once by the caller (runner / test) and handed
in; there is no module-level cached connection.

Daily rollover lives in exactly one place, _roll_over(), and runs on
every read path (fetch and delta apply) before anything else.
"""

import hashlib
import hmac
import secrets
import sqlite3
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from .config import log
from .constants import DEFAULT_DAILY_TARGET, DEFAULT_FINAL_TARGET, SESSION_TTL_SEC
from .counters import Counters, today_str
from .errors import AuthRejected, InvalidInput
from .api import validate_delta, validate_targets

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        salt TEXT NOT NULL,
        total_count INTEGER NOT NULL DEFAULT 0,
        daily_count INTEGER NOT NULL DEFAULT 0,
        last_active_date TEXT NOT NULL DEFAULT '',
        daily_target INTEGER NOT NULL DEFAULT %d,
        final_target INTEGER NOT NULL DEFAULT %d
    )
    """ % (DEFAULT_DAILY_TARGET, DEFAULT_FINAL_TARGET),
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        expires_at REAL NOT NULL
    )
    """,
)

_PBKDF2_ROUNDS = 120_000


def _hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), _PBKDF2_ROUNDS)
    return digest.hex()


def connect(path) -> sqlite3.Connection:
    """Open the store's database. Called once at process start."""
    conn = sqlite3.connect(str(path), timeout=5.0, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


class CounterStore:

    def __init__(self, conn: sqlite3.Connection, today: Callable[[], str] = today_str,
                 clock: Callable[[], float] = time.time):
        self._conn = conn
        self._today = today
        self._clock = clock
        # One connection shared by the UI thread and sync workers.
        self._lock = threading.Lock()
        with self._lock, self._conn:
            for statement in _SCHEMA:
                self._conn.execute(statement)

    @classmethod
    def open(cls, path, **kwargs):
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        return cls(connect(path), **kwargs)

    def close(self):
        with self._lock:
            self._conn.close()

    # ─── Auth ────────────────────────────────────────────────

    def authenticate(self, username, password, mode="login"):
        """Log in or register. Returns {"sessionId", "username"}."""
        if mode not in ("login", "register"):
            raise InvalidInput(f"unknown auth mode {mode!r}")
        username = (username or "").strip()
        if not username or not password:
            raise InvalidInput("username and password are required")

        with self._lock, self._conn:
            row = self._conn.execute(
                "SELECT id, password_hash, salt FROM users WHERE username = ?", (username,)
            ).fetchone()

            if mode == "register":
                if row is not None:
                    raise AuthRejected("User already exists")
                salt = secrets.token_hex(16)
                cur = self._conn.execute(
                    "INSERT INTO users (username, password_hash, salt) VALUES (?, ?, ?)",
                    (username, _hash_password(password, salt), salt),
                )
                user_id = cur.lastrowid
                log.info("Registered user %s", username)
            else:
                if row is None or not hmac.compare_digest(
                        row["password_hash"], _hash_password(password, row["salt"])):
                    raise AuthRejected("Invalid credentials")
                user_id = row["id"]

            session_id = secrets.token_urlsafe(32)
            self._conn.execute(
                "INSERT INTO sessions (id, user_id, expires_at) VALUES (?, ?, ?)",
                (session_id, user_id, self._clock() + SESSION_TTL_SEC),
            )
        return {"sessionId": session_id, "username": username}

    def logout(self, session_id):
        if not session_id:
            return False
        with self._lock, self._conn:
            cur = self._conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        return cur.rowcount > 0

    # ─── Counters ────────────────────────────────────────────

    def fetch_counters(self, session_id) -> Optional[Counters]:
        with self._lock, self._conn:
            row = self._user_for_session(session_id)
            if row is None:
                return None
            return self._roll_over(row)

    def apply_delta(self, session_id, delta) -> Optional[Counters]:
        validate_delta(delta)
        with self._lock, self._conn:
            row = self._user_for_session(session_id)
            if row is None:
                return None
            current = self._roll_over(row).with_delta(delta)
            self._conn.execute(
                "UPDATE users SET daily_count = ?, total_count = ? WHERE id = ?",
                (current.daily_count, current.total_count, row["id"]),
            )
        log.info("Applied delta +%d for %s (total=%d)", delta, current.username, current.total_count)
        return current

    def update_targets(self, session_id, daily_target, final_target):
        validate_targets(daily_target, final_target)
        with self._lock, self._conn:
            row = self._user_for_session(session_id)
            if row is None:
                return None
            self._conn.execute(
                "UPDATE users SET daily_target = ?, final_target = ? WHERE id = ?",
                (daily_target, final_target, row["id"]),
            )
        return True

    # ─── Internals (caller holds the lock and the transaction) ─

    def _user_for_session(self, session_id):
        if not session_id:
            return None
        row = self._conn.execute(
            "SELECT users.*, sessions.expires_at FROM sessions "
            "JOIN users ON users.id = sessions.user_id WHERE sessions.id = ?",
            (session_id,),
        ).fetchone()
        if row is None:
            return None
        if row["expires_at"] < self._clock():
            self._conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            return None
        return row

    def _roll_over(self, row) -> Counters:
        """Reset dailyCount when the stored date isn't today. Total is never touched."""
        counters = Counters(
            daily_count=row["daily_count"],
            total_count=row["total_count"],
            last_active_date=row["last_active_date"],
            daily_target=row["daily_target"],
            final_target=row["final_target"],
            username=row["username"],
        )
        today = self._today()
        if counters.last_active_date == today:
            return counters
        self._conn.execute(
            "UPDATE users SET daily_count = 0, last_active_date = ? WHERE id = ?",
            (today, row["id"]),
        )
        log.info("Daily rollover for %s: %s → %s", counters.username,
                 counters.last_active_date or "never", today)
        return replace(counters, daily_count=0, last_active_date=today)
