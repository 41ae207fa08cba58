"""
ClientState — single source of truth for the client's view of the world.

Mutated from the Tk main thread and from the one sync worker that can be
in flight at a time. The in-flight claim is guarded by a lock; every other
field is a plain assignment that the UI only reads.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from .counters import Counters, merge


@dataclass
class ClientState:
    # ── Session ───────────────────────────────────────────────
    session_id: Optional[str] = None
    username: str = ""

    # ── Server mirror ─────────────────────────────────────────
    counters: Optional[Counters] = None
    last_fetch_time: float = 0.0

    # ── Sync ──────────────────────────────────────────────────
    sync_in_flight: bool = False
    sync_halted: bool = False          # True after the server said "not authenticated"
    last_sync_time: float = 0.0
    last_sync_amount: int = 0
    last_sync_error: str = ""
    consecutive_sync_failures: int = 0

    # ── Connectivity ──────────────────────────────────────────
    online: bool = True
    offline_since: float = 0.0

    _flag_lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def authenticated(self) -> bool:
        return bool(self.session_id) and not self.sync_halted

    def claim_sync(self) -> bool:
        """Set the in-flight flag. False if an attempt is already outstanding."""
        with self._flag_lock:
            if self.sync_in_flight:
                return False
            self.sync_in_flight = True
            return True

    def release_sync(self):
        with self._flag_lock:
            self.sync_in_flight = False

    def display(self, pending):
        """Merged view for the UI, or None while counters are unknown."""
        if self.counters is None:
            return None
        return merge(self.counters, pending)

    # ── Transitions ───────────────────────────────────────────

    def install_session(self, session_id, username=""):
        self.session_id = session_id
        self.username = username or self.username
        self.sync_halted = False
        self.last_sync_error = ""

    def drop_session(self):
        """Forget the session and the mirrored counters. Pending taps are untouched."""
        self.session_id = None
        self.counters = None
        self.sync_halted = True

    def on_sync_success(self, counters, amount):
        self.counters = counters
        self.last_sync_time = time.time()
        self.last_sync_amount = amount
        self.last_sync_error = ""
        self.mark_online()

    def on_sync_failure(self, error):
        self.last_sync_error = str(error)
        self.consecutive_sync_failures += 1

    def mark_offline(self):
        if self.online:
            self.online = False
            self.offline_since = time.time()

    def mark_online(self):
        self.online = True
        self.offline_since = 0.0
        self.consecutive_sync_failures = 0
