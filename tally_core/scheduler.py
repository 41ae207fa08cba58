"""
ReconciliationScheduler — pushes pending taps to the server.

Triggers (all end up in trigger()):
  _on_timer()   — every SYNC_INTERVAL_SEC while the app runs
  on_online()   — connectivity monitor saw offline → online
  note_tap()    — DEBOUNCE policy only: quiet window after the last tap

Only one attempt is ever in flight (ClientState.claim_sync). An attempt
sends a snapshot n of the pending slot and, on success, subtracts exactly
n, so taps that land while the request is out stay pending for the next
attempt. Failures leave the slot alone; the next trigger retries with
whatever has accumulated by then.

Timers and worker threads are injected: the app passes root.after /
root.after_cancel and a daemon-thread spawner, tests pass a manual queue
and run attempts inline.
"""

import enum
import threading

from .config import log
from .constants import SYNC_INTERVAL_SEC, SYNC_DEBOUNCE_MS
from .errors import TallyError, TransientNetworkFailure


class SyncPolicy(enum.Enum):
    TIMER = "timer"          # decoupled: only the interval + reconnect flush
    DEBOUNCE = "debounce"    # also flush shortly after a burst of taps ends


class SyncOutcome(enum.Enum):
    SYNCED = "synced"
    DISPATCHED = "dispatched"       # handed to a worker, result pending
    SKIPPED = "skipped"              # nothing pending
    BUSY = "busy"                    # another attempt is in flight
    FAILED = "failed"                # transient — pending untouched
    UNAUTHENTICATED = "unauthenticated"
    HALTED = "halted"                # waiting for a new session
    NO_SESSION = "no_session"


def spawn_thread(fn):
    """Default worker: short-lived daemon thread (never touches Tk)."""
    threading.Thread(target=fn, daemon=True).start()


class ReconciliationScheduler:

    def __init__(self, service, pending, state, policy=SyncPolicy.TIMER,
                 interval_sec=SYNC_INTERVAL_SEC, debounce_ms=SYNC_DEBOUNCE_MS,
                 spawn=spawn_thread):
        self._service = service
        self._pending = pending
        self._state = state
        self.policy = policy
        self._interval_ms = int(interval_sec * 1000)
        self._debounce_ms = debounce_ms
        self._spawn = spawn
        self._after = None
        self._after_cancel = None
        self._timer_id = None
        self._debounce_id = None

    # ─── Lifecycle ───────────────────────────────────────────

    def start(self, after, after_cancel=None):
        """Begin the interval loop on an event loop's after(ms, fn)."""
        self._after = after
        self._after_cancel = after_cancel
        self._timer_id = self._after(self._interval_ms, self._on_timer)
        log.info("Sync scheduler started (policy=%s, interval=%dms)",
                 self.policy.value, self._interval_ms)

    def stop(self):
        for attr in ("_timer_id", "_debounce_id"):
            timer_id = getattr(self, attr)
            if timer_id is not None and self._after_cancel:
                try:
                    self._after_cancel(timer_id)
                except Exception:
                    pass
            setattr(self, attr, None)
        self._after = None

    def halt(self):
        """Stop attempting until resume(). Pending taps are kept."""
        self._state.sync_halted = True

    def resume(self):
        """A new session exists — sync may run again."""
        self._state.sync_halted = False
        log.info("Sync resumed (pending=%d)", self._pending.get())

    # ─── Triggers ────────────────────────────────────────────

    def _on_timer(self):
        try:
            self.trigger("timer")
        except Exception as e:
            log.error("Sync timer error: %s", e, exc_info=True)
        if self._after is not None:
            self._timer_id = self._after(self._interval_ms, self._on_timer)

    def on_online(self):
        """Offline → online transition."""
        return self.trigger("online")

    def note_tap(self):
        """Called after every tap. Only the DEBOUNCE policy reacts."""
        if self.policy is not SyncPolicy.DEBOUNCE or self._after is None:
            return
        if self._debounce_id is not None and self._after_cancel:
            try:
                self._after_cancel(self._debounce_id)
            except Exception:
                pass
        self._debounce_id = self._after(self._debounce_ms, self._on_debounce)

    def _on_debounce(self):
        self._debounce_id = None
        try:
            self.trigger("debounce")
        except Exception as e:
            log.error("Sync debounce error: %s", e, exc_info=True)

    def trigger(self, reason="timer"):
        """
        Start an attempt on a worker if one is needed and none is in flight.
        Returns DISPATCHED, or the pre-check outcome that stopped it.
        """
        outcome = self._precheck()
        if outcome is not None:
            return outcome
        if not self._state.claim_sync():
            return SyncOutcome.BUSY

        def run():
            try:
                self._attempt(reason)
            except Exception as e:
                log.error("Sync worker error: %s", e, exc_info=True)

        try:
            self._spawn(run)
        except Exception:
            self._state.release_sync()
            raise
        return SyncOutcome.DISPATCHED

    def flush(self, reason="manual"):
        """Run one attempt on the calling thread. Returns its SyncOutcome."""
        outcome = self._precheck()
        if outcome is not None:
            return outcome
        if not self._state.claim_sync():
            return SyncOutcome.BUSY
        return self._attempt(reason)

    # ─── One attempt ─────────────────────────────────────────

    def _precheck(self):
        if self._state.sync_halted:
            return SyncOutcome.HALTED
        if not self._state.session_id:
            return SyncOutcome.NO_SESSION
        if self._state.sync_in_flight:
            return SyncOutcome.BUSY
        if self._pending.get() <= 0:
            return SyncOutcome.SKIPPED
        return None

    def _attempt(self, reason):
        """Caller has claimed the in-flight flag; it is released here."""
        try:
            n = self._pending.get()
            if n <= 0:
                return SyncOutcome.SKIPPED

            session_id = self._state.session_id
            try:
                counters = self._service.apply_delta(session_id, n)
            except TransientNetworkFailure as e:
                self._state.on_sync_failure(e)
                log.warning("Sync failed (%s, %d pending, failure #%d): %s", reason, n,
                            self._state.consecutive_sync_failures, e.detail)
                return SyncOutcome.FAILED
            except TallyError as e:
                self._state.on_sync_failure(e)
                log.error("Sync rejected (%s): %s", reason, e)
                return SyncOutcome.FAILED

            if counters is None:
                self.halt()
                self._state.last_sync_error = "Session expired — sign in again"
                log.error("Sync halted: not authenticated (%d taps kept locally)", n)
                return SyncOutcome.UNAUTHENTICATED

            # Display reads counters and pending under the same lock.
            with self._pending.lock:
                remaining = self._pending.subtract(n)
                self._state.on_sync_success(counters, n)
            log.info("Synced +%d (%s) | total=%d | still pending=%d",
                     n, reason, counters.total_count, remaining)
            return SyncOutcome.SYNCED
        finally:
            self._state.release_sync()
