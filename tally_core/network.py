"""
Connectivity monitoring — socket probe and offline/online transitions.

Offline is only declared after OFFLINE_AFTER_FAILURES consecutive sync
failures AND a failed socket probe, so one slow request doesn't flip the
indicator. While offline the probe runs every CONNECTIVITY_CHECK_SEC and
the first success fires on_reconnect (the scheduler's flush).
"""

import socket
from urllib.parse import urlparse

from .config import log
from .constants import LOCAL_SERVER, OFFLINE_AFTER_FAILURES


# ─── Connectivity check (network-interface agnostic) ─────────────

def is_online(server_url):
    """
    Quick connectivity check via socket connect to the server's host.
    Only tests whether a TCP connection to the server can be established.
    """
    if not server_url or server_url == LOCAL_SERVER:
        return True
    parsed = urlparse(server_url if "://" in server_url else f"http://{server_url}")
    host = parsed.hostname
    if not host:
        return False
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    try:
        sock = socket.create_connection((host, port), timeout=4)
        sock.close()
        return True
    except OSError:
        return False


class ConnectivityMonitor:

    def __init__(self, server_url, state, on_reconnect, probe=is_online):
        self._server_url = server_url
        self._state = state
        self._on_reconnect = on_reconnect
        self._probe = probe

    def check(self):
        """One monitoring step. Returns the online flag after the check."""
        if not self._server_url:
            return self._state.online

        if self._state.online:
            if self._state.consecutive_sync_failures >= OFFLINE_AFTER_FAILURES:
                if self._probe(self._server_url):
                    # Server reachable; the failures were server-side.
                    self._state.consecutive_sync_failures = 0
                else:
                    self._state.mark_offline()
                    log.warning("Network OFFLINE — taps will be kept locally")
            return self._state.online

        if self._probe(self._server_url):
            self._state.mark_online()
            log.info("Network ONLINE — reconnected, flushing pending taps")
            try:
                self._on_reconnect()
            except Exception as e:
                log.error("Reconnect flush failed to start: %s", e, exc_info=True)
        return self._state.online
