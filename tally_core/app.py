"""
TallyApp — the Tkinter application.

Everything runs inside Tk's event loop via root.after(). Network calls go to
short-lived worker threads; their results come back through a queue that the
main loop drains, so no worker ever touches a widget.

  _poll_results()       — drains worker results            (every 100ms)
  _refresh_view()       — counters, progress, sync badge    (every 250ms)
  scheduler timer       — pending-tap flush                 (every 5s)
  _check_connectivity() — online/offline transitions        (every 15s)
"""

import queue
import threading
import tkinter as tk
from tkinter import ttk

from .constants import APP_VERSION, CONNECTIVITY_CHECK_SEC, VIEW_REFRESH_MS, THEME
from .config import log, safe_print
from .errors import TallyError, AuthRejected, InvalidInput, Unauthenticated
from .network import ConnectivityMonitor

_FONT = "Segoe UI"


class TallyApp:

    def __init__(self, controller, scheduler, pending, server_url):
        self._controller = controller
        self._scheduler = scheduler
        self._pending = pending
        self._state = controller.state
        self._monitor = ConnectivityMonitor(server_url, self._state, scheduler.on_online)
        self._results = queue.Queue()
        self._check_in_flight = False
        self._root = None
        self._login_frame = None
        self._dash_frame = None
        self._auth_mode = "login"

    def run(self):
        """Start the app. Blocks on Tk mainloop. Call from main thread."""
        self._root = tk.Tk()
        self._root.title("Tally")
        self._root.geometry("420x640")
        self._root.configure(bg=THEME["bg_darkest"])
        self._root.protocol("WM_DELETE_WINDOW", self.stop)

        self._build_login()
        self._build_dashboard()
        if self._state.session_id:
            self._show_dashboard()
        else:
            self._show_login()

        self._root.after(100, self._poll_results)
        self._root.after(VIEW_REFRESH_MS, self._refresh_view)
        self._root.after(CONNECTIVITY_CHECK_SEC * 1000, self._check_connectivity)
        self._scheduler.start(self._root.after, self._root.after_cancel)

        if self._state.session_id:
            self._run_async(self._controller.on_load, self._after_load)

        log.info("v%s started (pending=%d, session=%s)", APP_VERSION,
                 self._pending.get(), "yes" if self._state.session_id else "no")
        safe_print("Tally running.\n")

        try:
            self._root.mainloop()
        finally:
            self._scheduler.stop()
            log.info("TallyApp shut down (pending=%d).", self._pending.get())

    def stop(self):
        try:
            self._root.quit()
        except Exception:
            pass

    # ─── Worker plumbing ─────────────────────────────────────

    def _run_async(self, fn, on_done, *args):
        """Run fn(*args) on a daemon thread; on_done(result, error) runs on the main thread."""
        def work():
            try:
                result, error = fn(*args), None
            except Exception as e:
                result, error = None, e
                if not isinstance(e, TallyError):
                    log.error("Worker error in %s: %s", getattr(fn, "__name__", fn), e, exc_info=True)
            self._results.put((on_done, result, error))

        threading.Thread(target=work, daemon=True).start()

    def _poll_results(self):
        try:
            while True:
                on_done, result, error = self._results.get_nowait()
                try:
                    on_done(result, error)
                except Exception as e:
                    log.error("Result handler error: %s", e, exc_info=True)
        except queue.Empty:
            pass
        self._root.after(100, self._poll_results)

    # ─── Connectivity (every 15s) ────────────────────────────

    def _check_connectivity(self):
        if not self._check_in_flight:
            self._check_in_flight = True
            self._run_async(self._monitor.check, self._after_connectivity)
        self._root.after(CONNECTIVITY_CHECK_SEC * 1000, self._check_connectivity)

    def _after_connectivity(self, online, error):
        self._check_in_flight = False
        if online and self._state.session_id and self._state.counters is None:
            self._run_async(self._controller.on_load, self._after_load)

    # ─── View refresh (every 250ms) ──────────────────────────

    def _refresh_view(self):
        try:
            self._do_refresh()
        except Exception as e:
            log.error("_refresh_view error: %s", e, exc_info=True)
        self._root.after(VIEW_REFRESH_MS, self._refresh_view)

    def _do_refresh(self):
        if not self._state.authenticated:
            if self._dash_frame.winfo_ismapped():
                self._show_login(self._state.last_sync_error or "")
            return

        view = self._controller.display()
        pending = view.pending if view is not None else self._pending.get()

        if view is None:
            self._tap_count.config(text=f"+{pending}" if pending else "–")
            self._daily_label.config(text="Daily: …")
            self._total_label.config(text="Lifetime: …")
            self._daily_bar["value"] = 0
            self._total_bar["value"] = 0
        else:
            self._tap_count.config(text=str(view.display_daily))
            self._daily_label.config(
                text=f"Daily: {view.display_daily} / {view.daily_target}  ({view.daily_progress:.0f}%)")
            self._total_label.config(
                text=f"Lifetime: {view.display_total} / {view.final_target}  ({view.total_progress:.0f}%)")
            self._daily_bar["value"] = view.daily_progress
            self._total_bar["value"] = view.total_progress

        if not self._state.online:
            self._sync_badge.config(text=f"Offline — {pending} not synced", fg=THEME["error"])
        elif pending:
            self._sync_badge.config(text=f"{pending} not synced", fg=THEME["warning"])
        else:
            self._sync_badge.config(text="Synced", fg=THEME["success"])

    # ─── Login screen ────────────────────────────────────────

    def _build_login(self):
        frame = tk.Frame(self._root, bg=THEME["bg_darkest"], padx=35, pady=40)
        self._login_frame = frame

        self._login_title = tk.Label(frame, text="Login", font=(_FONT, 18, "bold"),
                                     fg=THEME["text_primary"], bg=THEME["bg_darkest"])
        self._login_title.pack(anchor="w", pady=(0, 18))

        self._user_var = tk.StringVar()
        self._pass_var = tk.StringVar()
        for label, var, show in (("Username", self._user_var, ""), ("Password", self._pass_var, "*")):
            tk.Label(frame, text=label, font=(_FONT, 11, "bold"),
                     bg=THEME["bg_darkest"], fg=THEME["text_primary"]).pack(anchor="w")
            tk.Entry(frame, textvariable=var, show=show, font=(_FONT, 12),
                     bg=THEME["bg_input"], fg=THEME["text_primary"],
                     insertbackground=THEME["text_primary"],
                     relief="solid", borderwidth=1,
                     highlightbackground=THEME["border"],
                     highlightcolor=THEME["primary"]).pack(fill="x", pady=(4, 14))

        self._login_status = tk.Label(frame, text="", font=(_FONT, 10), bg=THEME["bg_darkest"],
                                      wraplength=340)
        self._login_status.pack(pady=(0, 10))

        self._login_btn = tk.Button(frame, text="Enter", font=(_FONT, 12, "bold"),
                                    bg=THEME["primary"], fg="white",
                                    activebackground=THEME["primary_hover"],
                                    activeforeground="white",
                                    relief="flat", padx=20, pady=10, cursor="hand2",
                                    command=self._on_login)
        self._login_btn.pack(fill="x")

        self._mode_btn = tk.Button(frame, text="New? Click to Register", font=(_FONT, 10),
                                   bg=THEME["bg_darkest"], fg=THEME["text_muted"],
                                   activebackground=THEME["bg_darkest"], relief="flat",
                                   cursor="hand2", command=self._toggle_mode)
        self._mode_btn.pack(pady=(12, 0))

    def _toggle_mode(self):
        self._auth_mode = "register" if self._auth_mode == "login" else "login"
        login = self._auth_mode == "login"
        self._login_title.config(text="Login" if login else "Create Account")
        self._login_btn.config(text="Enter" if login else "Sign Up")
        self._mode_btn.config(text="New? Click to Register" if login else "Have an account? Login")

    def _on_login(self):
        username = self._user_var.get().strip()
        password = self._pass_var.get()
        if not username or not password:
            self._login_status.config(text="Username and password are required.", fg=THEME["error"])
            return
        self._login_status.config(text="Connecting...", fg=THEME["primary"])
        self._login_btn.config(state="disabled")
        self._run_async(self._controller.login, self._after_login, username, password, self._auth_mode)

    def _after_login(self, result, error):
        self._login_btn.config(state="normal")
        if isinstance(error, AuthRejected):
            self._login_status.config(text=error.detail or str(error), fg=THEME["error"])
            return
        if error is not None:
            self._login_status.config(text=f"Cannot connect: {str(error)[:80]}", fg=THEME["error"])
            return
        self._pass_var.set("")
        self._login_status.config(text="")
        self._show_dashboard()

    def _show_login(self, message=""):
        self._dash_frame.pack_forget()
        self._login_frame.pack(fill="both", expand=True)
        self._login_status.config(text=message, fg=THEME["warning"])

    # ─── Dashboard ───────────────────────────────────────────

    def _build_dashboard(self):
        frame = tk.Frame(self._root, bg=THEME["bg_darkest"], padx=24, pady=18)
        self._dash_frame = frame

        header = tk.Frame(frame, bg=THEME["bg_darkest"])
        header.pack(fill="x")
        self._user_label = tk.Label(header, text="", font=(_FONT, 12, "bold"),
                                    fg=THEME["text_primary"], bg=THEME["bg_darkest"])
        self._user_label.pack(side="left")
        tk.Button(header, text="Logout", font=(_FONT, 10), bg=THEME["bg_card"],
                  fg=THEME["text_secondary"], relief="flat", cursor="hand2",
                  command=self._on_logout).pack(side="right")

        self._sync_badge = tk.Label(frame, text="", font=(_FONT, 10), bg=THEME["bg_darkest"])
        self._sync_badge.pack(anchor="e", pady=(6, 0))

        self._tap_btn = tk.Button(frame, text="TAP", font=(_FONT, 28, "bold"),
                                  bg=THEME["primary"], fg="white",
                                  activebackground=THEME["primary_hover"], activeforeground="white",
                                  relief="flat", width=8, height=3, cursor="hand2",
                                  command=self._on_tap)
        self._tap_btn.pack(pady=(18, 6))
        self._tap_count = tk.Label(frame, text="–", font=(_FONT, 22, "bold"),
                                   fg=THEME["text_primary"], bg=THEME["bg_darkest"])
        self._tap_count.pack(pady=(0, 14))

        card = tk.Frame(frame, bg=THEME["bg_card"], padx=16, pady=12)
        card.pack(fill="x")
        self._daily_label = tk.Label(card, text="", font=(_FONT, 11),
                                     fg=THEME["text_secondary"], bg=THEME["bg_card"])
        self._daily_label.pack(anchor="w")
        self._daily_bar = ttk.Progressbar(card, maximum=100)
        self._daily_bar.pack(fill="x", pady=(4, 10))
        self._total_label = tk.Label(card, text="", font=(_FONT, 11),
                                     fg=THEME["text_secondary"], bg=THEME["bg_card"])
        self._total_label.pack(anchor="w")
        self._total_bar = ttk.Progressbar(card, maximum=100)
        self._total_bar.pack(fill="x", pady=(4, 0))

        settings = tk.Frame(frame, bg=THEME["bg_card"], padx=16, pady=12)
        settings.pack(fill="x", pady=(14, 0))
        tk.Label(settings, text="Targets", font=(_FONT, 11, "bold"),
                 fg=THEME["text_primary"], bg=THEME["bg_card"]).grid(row=0, column=0, sticky="w")
        self._daily_target_var = tk.StringVar()
        self._final_target_var = tk.StringVar()
        for row, (label, var) in enumerate((("Daily", self._daily_target_var),
                                            ("Final", self._final_target_var)), start=1):
            tk.Label(settings, text=label, font=(_FONT, 10), fg=THEME["text_muted"],
                     bg=THEME["bg_card"]).grid(row=row, column=0, sticky="w", pady=2)
            tk.Entry(settings, textvariable=var, width=10, font=(_FONT, 11),
                     bg=THEME["bg_input"], fg=THEME["text_primary"],
                     insertbackground=THEME["text_primary"],
                     relief="solid", borderwidth=1).grid(row=row, column=1, padx=8, pady=2)
        tk.Button(settings, text="Save", font=(_FONT, 10, "bold"), bg=THEME["primary"], fg="white",
                  relief="flat", cursor="hand2",
                  command=self._on_settings_save).grid(row=1, column=2, rowspan=2, padx=(8, 0))
        self._settings_status = tk.Label(settings, text="", font=(_FONT, 9), bg=THEME["bg_card"])
        self._settings_status.grid(row=3, column=0, columnspan=3, sticky="w")

        self._root.bind("<space>", lambda e: self._on_tap() if self._dash_frame.winfo_ismapped() else None)

    def _show_dashboard(self):
        self._login_frame.pack_forget()
        self._dash_frame.pack(fill="both", expand=True)
        self._user_label.config(text=self._state.username or "")
        self._fill_targets()

    def _fill_targets(self):
        counters = self._state.counters
        if counters is not None:
            self._daily_target_var.set(str(counters.daily_target))
            self._final_target_var.set(str(counters.final_target))

    def _on_tap(self):
        try:
            self._controller.on_tap()
        except Exception as e:
            log.error("Tap failed: %s", e, exc_info=True)
            return
        self._do_refresh()

    def _after_load(self, loaded, error):
        if loaded:
            self._fill_targets()

    def _on_settings_save(self):
        self._settings_status.config(text="Saving...", fg=THEME["primary"])
        self._run_async(self._controller.on_settings_save, self._after_settings_save,
                        self._daily_target_var.get(), self._final_target_var.get())

    def _after_settings_save(self, counters, error):
        if isinstance(error, InvalidInput):
            self._settings_status.config(text=error.detail, fg=THEME["error"])
        elif isinstance(error, Unauthenticated):
            self._show_login("Session expired — sign in again.")
        elif error is not None:
            self._settings_status.config(text="Could not save — try again when online.",
                                         fg=THEME["error"])
        else:
            self._fill_targets()
            self._settings_status.config(text="Targets updated!", fg=THEME["success"])

    def _on_logout(self):
        self._run_async(self._controller.logout, lambda result, error: None)
        self._show_login()
