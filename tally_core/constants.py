"""
Constants, intervals, default targets, and theme colors.
"""

APP_VERSION = "1.2.0"

# ─── Sync ────────────────────────────────────────────────────────
SYNC_INTERVAL_SEC = 5          # Flush pending taps every 5s while the app runs
SYNC_DEBOUNCE_MS = 800         # Debounce policy: quiet window after the last tap
VIEW_REFRESH_MS = 250          # Redraw counters / sync indicator
OFFLINE_AFTER_FAILURES = 2     # Consecutive failed syncs before probing the socket

# ─── Network ─────────────────────────────────────────────────────
API_TIMEOUT_READ = 15          # Counter fetch / targets update
API_TIMEOUT_SYNC = 20          # Delta apply (single attempt, never auto-retried)
CONNECTIVITY_CHECK_SEC = 15    # How often to check connectivity
SESSION_TTL_SEC = 7 * 24 * 3600  # Local-mode sessions, same lifetime as the web cookie

# ─── Targets ─────────────────────────────────────────────────────
DEFAULT_DAILY_TARGET = 100
DEFAULT_FINAL_TARGET = 10000

# Server URL that selects the bundled sqlite store instead of HTTP
LOCAL_SERVER = "local"

# ─── Theme Colors ────────────────────────────────────────────────
THEME = {
    "bg_darkest":    "#020617",   # window background
    "bg_card":       "#1e293b",   # card background
    "bg_input":      "#0f172a",   # input field bg
    "primary":       "#3b82f6",   # tap button
    "primary_hover": "#2563eb",   # button hover
    "text_primary":  "#f1f5f9",   # white text
    "text_secondary":"#cbd5e1",   # light gray
    "text_muted":    "#94a3b8",   # muted text
    "border":        "#374151",   # borders
    "success":       "#22c55e",   # green
    "error":         "#ef4444",   # red
    "warning":       "#fbbf24",   # yellow
}
