"""
Entry point and auto-restart wrapper.
"""

import os
import sys
import time

from .constants import APP_VERSION, LOCAL_SERVER
from .config import log, safe_print, load_config, save_config, clear_session, LOCAL_DB_FILE
from . import http_client
from .api import HttpCounterService
from .store import CounterStore
from .pending import PendingStore
from .state import ClientState
from .scheduler import ReconciliationScheduler, SyncPolicy
from .controller import CounterController


def default_config():
    return {
        "serverUrl": os.environ.get("TALLY_SERVER_URL", LOCAL_SERVER),
        "syncPolicy": SyncPolicy.TIMER.value,
    }


def build_service(config):
    """HTTP client for a remote server, or the bundled sqlite store for "local"."""
    server_url = config.get("serverUrl") or LOCAL_SERVER
    if server_url == LOCAL_SERVER:
        log.info("Using local counter store at %s", LOCAL_DB_FILE)
        return CounterStore.open(LOCAL_DB_FILE)
    log.info("Using counter server at %s", server_url)
    return HttpCounterService(server_url)


def _policy(config):
    try:
        return SyncPolicy(config.get("syncPolicy", SyncPolicy.TIMER.value))
    except ValueError:
        log.warning("Unknown syncPolicy %r — using timer", config.get("syncPolicy"))
        return SyncPolicy.TIMER


def build_controller(config, service, pending):
    """Wire state, scheduler and controller around one service and one pending slot."""
    state = ClientState()
    if config.get("sessionId"):
        state.install_session(config["sessionId"], config.get("username", ""))

    scheduler = ReconciliationScheduler(service, pending, state, policy=_policy(config))

    def persist_session(session_id, username):
        if not session_id:
            clear_session(config)
            return
        config["sessionId"] = session_id
        config["username"] = username
        save_config(config)

    controller = CounterController(service, pending, state, scheduler,
                                   on_session_change=persist_session)
    return controller, scheduler


def main():
    """Primary entry point."""
    safe_print("Tally v" + APP_VERSION)
    safe_print()

    config = load_config()
    if not config:
        config = default_config()
        save_config(config)
    else:
        log.info("Loaded config (server=%s, user=%s)",
                 config.get("serverUrl", LOCAL_SERVER), config.get("username") or "-")

    pending = PendingStore()
    if pending.get():
        log.info("%d taps pending from a previous run", pending.get())

    service = build_service(config)
    controller, scheduler = build_controller(config, service, pending)

    # Imported here so the engine stays usable without a display.
    from .app import TallyApp
    app = TallyApp(controller, scheduler, pending, config.get("serverUrl", LOCAL_SERVER))
    try:
        app.run()
    finally:
        if isinstance(service, CounterStore):
            service.close()


def run_with_auto_restart():
    """
    Wrapper that auto-restarts on crash.
    Crash counter resets if the app ran for 2+ minutes (not a boot-loop).
    """
    crash_count = 0
    crash_window = 120
    max_rapid_crashes = 10

    while True:
        start_time = time.time()
        try:
            main()
            break
        except KeyboardInterrupt:
            safe_print("\nStopped by user.")
            break
        except SystemExit as e:
            if str(e) in ("0", "None"):
                break
            log.error("SystemExit: %s", e)
        except Exception as e:
            elapsed = time.time() - start_time
            log.error("Crashed after %.0fs: %s", elapsed, e, exc_info=True)

            if elapsed > crash_window:
                crash_count = 0
            crash_count += 1

            if crash_count >= max_rapid_crashes:
                log.error("Too many rapid crashes (%d) — giving up", crash_count)
                sys.exit(1)
            wait = min(10 * crash_count, 60)

            log.info("Restarting in %ds (crash %d)...", wait, crash_count)
            time.sleep(wait)

            http_client.http = http_client.reset_session(http_client.http)
