"""Tests for the client counter controller (load, tap, settings, session)."""
import threading
import unittest
from unittest.mock import patch

from tally_core import controller as controller_module
from tally_core.controller import CounterController
from tally_core.counters import Counters
from tally_core.errors import InvalidInput, TransientNetworkFailure, Unauthenticated
from tally_core.pending import PendingStore
from tally_core.scheduler import SyncOutcome
from tally_core.state import ClientState
from tests.base import BaseTestCase, TODAY


class ControllerTestCase(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.sessions = []
        self.controller = CounterController(
            self.service, self.pending, self.state, self.scheduler,
            on_session_change=lambda sid, name: self.sessions.append((sid, name)),
        )


class LoadTest(ControllerTestCase):

    def test_load_mirrors_server_counters(self):
        self.service.counters = Counters(daily_count=3, total_count=30, last_active_date=TODAY)
        self.pending.set(2)
        self.assertTrue(self.controller.on_load())
        self.assertEqual(self.state.counters.total_count, 30)
        view = self.controller.display()
        self.assertEqual((view.display_daily, view.display_total), (5, 32))

    def test_load_without_session_shows_login(self):
        self.state.session_id = None
        self.assertFalse(self.controller.on_load())
        self.assertEqual(self.service.fetch_calls, 0)
        self.assertIsNone(self.controller.display())

    def test_rejected_session_does_not_fabricate_counters(self):
        self.pending.set(4)
        self.service.revoked = True
        self.assertFalse(self.controller.on_load())
        self.assertIsNone(self.state.counters)
        self.assertIsNone(self.controller.display())
        self.assertFalse(self.state.authenticated)
        self.assertEqual(self.sessions, [(None, '')])
        self.assertEqual(self.pending.get(), 4)

    def test_offline_load_marks_offline_and_keeps_pending(self):
        def offline(session_id):
            raise TransientNetworkFailure('no route to host')

        self.service.fetch_counters = offline
        self.pending.set(3)
        self.assertFalse(self.controller.on_load())
        self.assertFalse(self.state.online)
        self.assertTrue(self.state.authenticated)
        self.assertIsNone(self.controller.display())
        self.assertEqual(self.pending.get(), 3)


class TapTest(ControllerTestCase):

    def test_tap_is_local_only(self):
        self.controller.on_load()
        fetches = self.service.fetch_calls
        for _ in range(3):
            self.controller.on_tap()
        self.assertEqual(self.pending.get(), 3)
        self.assertEqual(self.service.apply_calls, [])
        self.assertEqual(self.service.fetch_calls, fetches)

    def test_tap_returns_optimistic_display(self):
        self.service.counters = Counters(daily_count=10, total_count=100, last_active_date=TODAY)
        self.controller.on_load()
        view = self.controller.on_tap()
        self.assertEqual((view.display_daily, view.display_total), (11, 101))
        self.assertFalse(view.synced)

    def test_tap_before_counters_known_still_counts(self):
        self.assertIsNone(self.controller.on_tap())
        self.assertEqual(self.pending.get(), 1)

    def test_display_is_stable_across_sync(self):
        self.controller.on_load()
        for _ in range(4):
            self.controller.on_tap()
        before = self.controller.display()
        self.assertEqual(self.scheduler.flush(), SyncOutcome.SYNCED)
        after = self.controller.display()
        self.assertEqual(before.display_total, after.display_total)
        self.assertEqual(before.display_daily, after.display_daily)
        self.assertTrue(after.synced)

    def test_no_tap_lost_across_restart(self):
        self.controller.on_load()
        for _ in range(5):
            self.controller.on_tap()
        self.scheduler.flush()
        for _ in range(3):
            self.controller.on_tap()

        # Process dies here; a new process reads the same slot.
        restarted = PendingStore(self.pending.path)
        server_total = self.service.fetch_counters(self.service.session_id).total_count
        self.assertEqual(server_total + restarted.get(), 8)

    def test_display_from_another_thread_never_sees_half_committed_sync(self):
        self.controller.on_load()
        for _ in range(5):
            self.controller.on_tap()
        seen = []
        readers = []
        subtract = self.pending.subtract

        def subtract_then_read(n):
            remaining = subtract(n)
            # The UI thread redraws while the sync worker is mid-commit.
            reader = threading.Thread(
                target=lambda: seen.append(self.controller.display().display_total))
            reader.start()
            reader.join(timeout=0.2)
            readers.append(reader)
            return remaining

        self.pending.subtract = subtract_then_read
        self.assertEqual(self.scheduler.flush(), SyncOutcome.SYNCED)
        for reader in readers:
            reader.join(timeout=5)
        self.assertEqual(seen, [5])
        self.assertEqual(self.controller.display().display_total, 5)


class SettingsTest(ControllerTestCase):

    def test_settings_save_updates_and_refreshes(self):
        self.controller.on_load()
        fetches = self.service.fetch_calls
        counters = self.controller.on_settings_save(25, 2500)
        self.assertEqual((counters.daily_target, counters.final_target), (25, 2500))
        self.assertEqual(self.service.fetch_calls, fetches + 1)

    def test_settings_accepts_form_strings(self):
        self.controller.on_load()
        counters = self.controller.on_settings_save(' 30 ', '300')
        self.assertEqual((counters.daily_target, counters.final_target), (30, 300))

    def test_invalid_targets_rejected_before_io(self):
        for daily, final in ((0, 10), (10, -1), ('abc', 10), ('', '5'), (1.5, 10)):
            with self.assertRaises(InvalidInput):
                self.controller.on_settings_save(daily, final)
        self.assertEqual(self.service.targets_calls, [])

    def test_settings_leave_pending_alone(self):
        self.pending.set(9)
        self.controller.on_settings_save(10, 20)
        self.assertEqual(self.pending.get(), 9)

    def test_settings_with_rejected_session(self):
        self.service.revoked = True
        with self.assertRaises(Unauthenticated):
            self.controller.on_settings_save(10, 20)
        self.assertFalse(self.state.authenticated)


class SessionTest(ControllerTestCase):

    def test_logout_keeps_pending_and_halts_sync(self):
        self.pending.set(3)
        self.controller.logout()
        self.assertEqual(self.pending.get(), 3)
        self.assertIsNone(self.state.session_id)
        self.assertEqual(self.scheduler.flush(), SyncOutcome.HALTED)
        self.assertEqual(self.sessions[-1], (None, ''))

    def test_login_resumes_sync_with_pending_taps(self):
        self.pending.set(3)
        self.controller.logout()
        self.controller.login('ada', 'pw')
        self.assertTrue(self.state.authenticated)
        self.assertIsNotNone(self.state.counters)
        self.assertEqual(self.sessions[-1], (self.service.session_id, 'ada'))
        self.assertEqual(self.scheduler.flush(), SyncOutcome.SYNCED)
        self.assertEqual(self.service.counters.total_count, 3)

    def test_login_warns_when_pending_taps_belong_to_another_user(self):
        self.controller.on_load()
        for _ in range(3):
            self.controller.on_tap()
        self.controller.logout()
        self.assertEqual(self.pending.owner(), 'ada')

        with self.assertLogs('tally', level='WARNING') as logs:
            self.controller.login('bob', 'pw')
        self.assertTrue(any('credited to bob' in line for line in logs.output))
        self.assertEqual(self.pending.get(), 3)

    def test_login_as_same_user_does_not_warn(self):
        self.controller.on_tap()
        self.controller.logout()
        with patch.object(controller_module.log, 'warning') as warning:
            self.controller.login('ada', 'pw')
        warning.assert_not_called()

    def test_register_from_a_fresh_state(self):
        state = ClientState()
        controller = CounterController(self.service, self.pending, state, self.scheduler)
        self.assertFalse(controller.on_load())
        controller.login('ada', 'pw', 'register')
        self.assertTrue(state.authenticated)


if __name__ == '__main__':
    unittest.main()
