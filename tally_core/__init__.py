"""
tally_core — Tally counter client with offline-tolerant sync
============================================================
Architecture: Tkinter main-thread event loop, short-lived worker threads
for every server call.

  constants.py    → Version, intervals, timeouts, default targets, theme
  config.py       → Paths, logging, config load/save
  errors.py       → Unauthenticated / TransientNetworkFailure / InvalidInput
  http_client.py  → HTTP session with retry/pooling (POST never retried)
  counters.py     → Counters mirror, DisplayCounters, merge(), progress clamp
  pending.py      → PendingStore (durable slot of unsynced taps)
  state.py        → ClientState dataclass (single source of truth)
  api.py          → HttpCounterService (server collaborator over HTTP)
  store.py        → CounterStore (sqlite collaborator, daily rollover)
  scheduler.py    → ReconciliationScheduler (in-flight flag, timer/online/debounce)
  controller.py   → CounterController (load, tap, settings, login/logout)
  network.py      → Connectivity probe + offline/online monitor
  app.py          → TallyApp (Tk main loop, root.after scheduling)
  runner.py       → main() + auto-restart wrapper
"""

from .constants import APP_VERSION as __version__
