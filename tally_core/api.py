"""
Server API calls — counters fetch, delta apply, targets update, login/logout.

All calls are blocking (run from worker threads, never from the Tk main
thread). Contract shared with store.CounterStore:

  401                        → None        (no valid session, never raised)
  connection error / 5xx     → TransientNetworkFailure
  delta <= 0                 → InvalidInput, before any I/O
"""

import requests

from .config import log
from .constants import API_TIMEOUT_READ, API_TIMEOUT_SYNC
from .counters import Counters
from .errors import TransientNetworkFailure, InvalidInput, AuthRejected
from . import http_client


def validate_delta(delta):
    if isinstance(delta, bool) or not isinstance(delta, int) or delta <= 0:
        raise InvalidInput(f"delta must be a positive int, got {delta!r}")
    return delta


def validate_targets(daily_target, final_target):
    for name, value in (("dailyTarget", daily_target), ("finalTarget", final_target)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidInput(f"{name} must be a positive int, got {value!r}")
    return daily_target, final_target


class HttpCounterService:
    """Talks to the counter server over JSON/HTTP with the shared session."""

    def __init__(self, server_url, session=None):
        self.server_url = server_url.rstrip("/")
        self._session = session

    @property
    def http(self):
        # Resolved per call so runner's reset_session() takes effect.
        return self._session or http_client.http

    # ─── Auth ────────────────────────────────────────────────

    def authenticate(self, username, password, mode="login"):
        """Log in or register. Returns {"sessionId", "username"}."""
        if mode not in ("login", "register"):
            raise InvalidInput(f"unknown auth mode {mode!r}")
        username = (username or "").strip()
        if not username or not password:
            raise InvalidInput("username and password are required")

        resp = self._send("POST", "/api/auth", payload={
            "username": username,
            "password": password,
            "mode": mode,
        }, timeout=API_TIMEOUT_READ)

        data = self._json(resp)
        if resp.status_code == 200 and data.get("success") and data.get("sessionId"):
            log.info("Authenticated as %s (%s)", username, mode)
            return {"sessionId": data["sessionId"], "username": data.get("username", username)}
        if resp.status_code in (200, 400, 401, 403, 409):
            raise AuthRejected(data.get("error") or f"HTTP {resp.status_code}")
        raise TransientNetworkFailure(f"auth: HTTP {resp.status_code}")

    def logout(self, session_id):
        """Best effort — the local session is dropped either way."""
        if not session_id:
            return False
        try:
            resp = self._send("POST", "/api/auth/logout", session_id, timeout=API_TIMEOUT_READ)
        except TransientNetworkFailure:
            return False
        return resp.status_code in (200, 204)

    # ─── Counters ────────────────────────────────────────────

    def fetch_counters(self, session_id):
        """GET authoritative counters (server performs the daily rollover)."""
        if not session_id:
            return None
        resp = self._send("GET", "/api/counters", session_id, timeout=API_TIMEOUT_READ)
        if resp.status_code == 401:
            log.warning("Counters fetch REJECTED (401) — session expired")
            return None
        if resp.status_code != 200:
            raise TransientNetworkFailure(f"fetch: HTTP {resp.status_code} — {resp.text[:200]}")
        return self._counters(resp)

    def apply_delta(self, session_id, delta):
        """POST +delta to both counters. Returns post-update Counters."""
        validate_delta(delta)
        if not session_id:
            return None
        resp = self._send("POST", "/api/counters/increment", session_id,
                          payload={"delta": delta}, timeout=API_TIMEOUT_SYNC)
        if resp.status_code == 401:
            log.error("Delta REJECTED (401) — session expired, %d taps kept locally", delta)
            return None
        if resp.status_code != 200:
            raise TransientNetworkFailure(f"increment: HTTP {resp.status_code} — {resp.text[:200]}")
        return self._counters(resp)

    def update_targets(self, session_id, daily_target, final_target):
        validate_targets(daily_target, final_target)
        if not session_id:
            return None
        resp = self._send("PATCH", "/api/targets", session_id, payload={
            "dailyTarget": daily_target,
            "finalTarget": final_target,
        }, timeout=API_TIMEOUT_READ)
        if resp.status_code == 401:
            return None
        if resp.status_code not in (200, 204):
            raise TransientNetworkFailure(f"targets: HTTP {resp.status_code}")
        log.info("Targets updated: daily=%d final=%d", daily_target, final_target)
        return True

    # ─── Transport ───────────────────────────────────────────

    def _send(self, method, path, session_id=None, payload=None, timeout=API_TIMEOUT_READ):
        url = f"{self.server_url}{path}"
        headers = {"Authorization": f"Bearer {session_id}"} if session_id else {}
        try:
            return self.http.request(method, url, json=payload, headers=headers, timeout=timeout)
        except requests.RequestException as e:
            raise TransientNetworkFailure(f"{method} {path}: {e}") from e

    def _counters(self, resp):
        data = self._json(resp)
        if "totalCount" not in data:
            raise TransientNetworkFailure(f"malformed counters payload from {self.server_url}")
        return Counters.from_dict(data)

    @staticmethod
    def _json(resp):
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
