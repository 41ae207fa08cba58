"""
PendingStore — the local write-ahead slot for taps the server hasn't confirmed.

One JSON file per device: {"amount": <int>, "owner": <str|null>, "ts": <float>}.
Every write goes through a temp file + os.replace, so a crash mid-write
leaves either the old value or the new one on disk, never a torn file.

Reads never raise. Missing, corrupt, or negative values read as 0.

The Tk main thread increments on tap while sync runs on a worker thread
and subtracts, so read-modify-write sequences hold `lock`. Callers that
must see pending and the mirrored counters together (display, sync
commit) hold the same lock around both.
"""

import json
import os
import threading
import time
from pathlib import Path

from .config import log, PENDING_FILE
from .errors import InvalidInput


class PendingStore:

    def __init__(self, path=None):
        self._path = Path(path) if path else PENDING_FILE
        self._lock = threading.RLock()

    @property
    def path(self):
        return self._path

    @property
    def lock(self):
        """Re-entrant lock guarding the slot."""
        return self._lock

    def get(self) -> int:
        """Current pending amount (>= 0). Never raises."""
        return self._read()[0]

    def owner(self):
        """Username that recorded the pending taps, or None."""
        return self._read()[1]

    def set(self, amount: int):
        """Persist a new pending amount. The only primitive writer."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidInput(f"pending amount must be a non-negative int, got {amount!r}")
        with self._lock:
            self._write(amount, self.owner() if amount else None)

    def increment(self, n: int = 1, owner=None) -> int:
        """Add n taps and persist before returning. Returns the new amount."""
        if n <= 0:
            raise InvalidInput(f"tap increment must be > 0, got {n!r}")
        with self._lock:
            current, current_owner = self._read()
            amount = current + n
            self._write(amount, (current_owner if current else None) or owner or None)
        return amount

    def subtract(self, n: int) -> int:
        """Remove exactly the n taps a sync confirmed, flooring at 0."""
        with self._lock:
            current, owner = self._read()
            remaining = max(0, current - n)
            self._write(remaining, owner if remaining else None)
        return remaining

    # ─── Disk ────────────────────────────────────────────────

    def _read(self):
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            amount = int(data["amount"])
        except FileNotFoundError:
            return 0, None
        except (OSError, ValueError, TypeError, KeyError) as e:
            log.warning("Pending slot unreadable (%s) — treating as 0", e)
            return 0, None
        if amount <= 0:
            return 0, None
        owner = data.get("owner")
        return amount, owner if isinstance(owner, str) and owner else None

    def _write(self, amount, owner=None):
        tmp = self._path.with_name(self._path.name + ".tmp")
        payload = json.dumps({"amount": amount, "owner": owner, "ts": time.time()})
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self._path)
