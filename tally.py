"""
Tally — personal tap counter
============================
Tap to count. Taps are written to a local pending slot first and pushed to
the server every few seconds, so counting keeps working while offline.

Usage:
    python tally.py

Set TALLY_SERVER_URL (or "serverUrl" in config.json) to use a remote
server; the default "local" keeps everything in a sqlite file next to the
config.
"""

from tally_core.runner import run_with_auto_restart


if __name__ == "__main__":
    run_with_auto_restart()
