"""
CounterController — the user-facing entry points.

on_tap() is the whole latency budget a user sees: it bumps the pending slot
on disk and returns the merged display. It never touches the network and
never flushes by itself; the scheduler's timer / reconnect triggers do that.

on_load(), on_settings_save(), login() and logout() do block on the server
collaborator. The app runs them on worker threads.
"""

import time

from .config import log
from .api import validate_targets
from .errors import TransientNetworkFailure, InvalidInput, Unauthenticated


class CounterController:

    def __init__(self, service, pending, state, scheduler, on_session_change=None):
        self._service = service
        self._pending = pending
        self._state = state
        self._scheduler = scheduler
        # Called with (session_id, username) or (None, "") so the caller can persist it.
        self._on_session_change = on_session_change

    @property
    def state(self):
        return self._state

    # ─── Load ────────────────────────────────────────────────

    def on_load(self):
        """
        Fetch authoritative counters for the current session.
        Returns True when counters are known, False for unauthenticated
        or unreachable. Never fabricates counters.
        """
        pending = self._pending.get()
        if not self._state.session_id:
            self._state.counters = None
            log.info("No session — showing login (%d taps pending locally)", pending)
            return False

        try:
            counters = self._service.fetch_counters(self._state.session_id)
        except TransientNetworkFailure as e:
            self._state.on_sync_failure(e)
            self._state.mark_offline()
            log.warning("Initial load failed — offline with %d taps pending", pending)
            return False

        if counters is None:
            self._state.drop_session()
            self._notify_session(None, "")
            log.info("Session rejected on load — showing login")
            return False

        self._state.counters = counters
        self._state.last_fetch_time = time.time()
        self._state.mark_online()
        log.info("Loaded counters: daily=%d total=%d (pending=%d)",
                 counters.daily_count, counters.total_count, pending)
        return True

    # ─── Tap ─────────────────────────────────────────────────

    def on_tap(self):
        """Record one tap durably and return the merged display (or None)."""
        with self._pending.lock:
            amount = self._pending.increment(1, owner=self._state.username)
            view = self._state.display(amount)
        self._scheduler.note_tap()
        return view

    def display(self):
        """Counters and pending read together, so a sync commit is never half-seen."""
        with self._pending.lock:
            return self._state.display(self._pending.get())

    # ─── Settings ────────────────────────────────────────────

    def on_settings_save(self, daily_target, final_target):
        """
        Update both targets, then re-fetch counters. Returns the new Counters
        (None if the refresh itself could not complete).
        Raises InvalidInput, Unauthenticated or TransientNetworkFailure.
        """
        daily_target = _parse_target(daily_target, "daily target")
        final_target = _parse_target(final_target, "final target")
        validate_targets(daily_target, final_target)

        result = self._service.update_targets(self._state.session_id, daily_target, final_target)
        if result is None:
            self._state.drop_session()
            self._notify_session(None, "")
            raise Unauthenticated("targets update refused")
        if self.on_load():
            return self._state.counters
        return None

    # ─── Session ─────────────────────────────────────────────

    def login(self, username, password, mode="login"):
        """Authenticate, install the session, resume sync, load counters."""
        result = self._service.authenticate(username, password, mode)
        self._state.install_session(result["sessionId"], result.get("username", username))
        self._warn_foreign_pending()
        self._notify_session(self._state.session_id, self._state.username)
        self._scheduler.resume()
        self.on_load()
        return result

    def logout(self):
        """Drop the session. Pending taps stay on disk for the next sign-in."""
        session_id = self._state.session_id
        self._state.drop_session()
        self._notify_session(None, "")
        try:
            self._service.logout(session_id)
        except TransientNetworkFailure:
            pass
        log.info("Logged out (%d taps kept pending)", self._pending.get())

    def _warn_foreign_pending(self):
        pending, owner = self._pending.get(), self._pending.owner()
        if pending and owner and owner != self._state.username:
            log.warning("%d pending taps recorded by %s will be credited to %s",
                        pending, owner, self._state.username)

    def _notify_session(self, session_id, username):
        if self._on_session_change:
            self._on_session_change(session_id, username)


def _parse_target(value, name):
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise InvalidInput(f"{name} must be a positive whole number, got {value!r}")
        value = int(value)
    return value
