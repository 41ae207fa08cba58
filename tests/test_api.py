"""Tests for the HTTP counter service with the requests session mocked out."""
import unittest
from unittest.mock import MagicMock, patch

import certifi
import requests

from tally_core.api import HttpCounterService
from tally_core.counters import Counters
from tally_core.errors import AuthRejected, InvalidInput, TransientNetworkFailure
from tally_core import http_client

COUNTERS_JSON = {
    'dailyCount': 2, 'totalCount': 12, 'lastActiveDate': '2026-10-19',
    'dailyTarget': 100, 'finalTarget': 10000, 'username': 'ada',
}


def make_response(status, body=None, text=''):
    resp = MagicMock()
    resp.status_code = status
    if body is None:
        resp.json.side_effect = ValueError('no json')
    else:
        resp.json.return_value = body
    resp.text = text
    return resp


class HttpCounterServiceTest(unittest.TestCase):

    def setUp(self) -> None:
        self.session = MagicMock()
        self.service = HttpCounterService('https://tally.example.com/', session=self.session)

    def test_fetch_counters(self):
        self.session.request.return_value = make_response(200, COUNTERS_JSON)
        counters = self.service.fetch_counters('abc')
        self.assertEqual(counters, Counters.from_dict(COUNTERS_JSON))

        method, url = self.session.request.call_args.args
        self.assertEqual((method, url), ('GET', 'https://tally.example.com/api/counters'))
        self.assertEqual(self.session.request.call_args.kwargs['headers'],
                         {'Authorization': 'Bearer abc'})

    def test_fetch_unauthorized_returns_none(self):
        self.session.request.return_value = make_response(401, {'error': 'no session'})
        self.assertIsNone(self.service.fetch_counters('abc'))

    def test_fetch_without_session_makes_no_request(self):
        self.assertIsNone(self.service.fetch_counters(None))
        self.session.request.assert_not_called()

    def test_server_error_is_transient(self):
        self.session.request.return_value = make_response(500, text='boom')
        with self.assertRaises(TransientNetworkFailure):
            self.service.fetch_counters('abc')

    def test_connection_error_is_transient(self):
        self.session.request.side_effect = requests.ConnectionError('unreachable')
        with self.assertRaises(TransientNetworkFailure):
            self.service.apply_delta('abc', 3)

    def test_timeout_is_transient(self):
        self.session.request.side_effect = requests.Timeout('slow')
        with self.assertRaises(TransientNetworkFailure):
            self.service.fetch_counters('abc')

    def test_malformed_counters_are_transient(self):
        self.session.request.return_value = make_response(200, ['not', 'a', 'dict'])
        with self.assertRaises(TransientNetworkFailure):
            self.service.fetch_counters('abc')

    def test_apply_delta_posts_amount(self):
        self.session.request.return_value = make_response(200, COUNTERS_JSON)
        counters = self.service.apply_delta('abc', 5)
        self.assertEqual(counters.total_count, 12)

        call = self.session.request.call_args
        self.assertEqual(call.args, ('POST', 'https://tally.example.com/api/counters/increment'))
        self.assertEqual(call.kwargs['json'], {'delta': 5})

    def test_apply_delta_unauthorized_returns_none(self):
        self.session.request.return_value = make_response(401, {})
        self.assertIsNone(self.service.apply_delta('abc', 1))

    def test_apply_delta_rejects_non_positive_before_io(self):
        for bad in (0, -2, 2.5, True, None):
            with self.assertRaises(InvalidInput):
                self.service.apply_delta('abc', bad)
        self.session.request.assert_not_called()

    def test_update_targets(self):
        self.session.request.return_value = make_response(200, {'success': True})
        self.assertTrue(self.service.update_targets('abc', 50, 5000))
        call = self.session.request.call_args
        self.assertEqual(call.args[0], 'PATCH')
        self.assertEqual(call.kwargs['json'], {'dailyTarget': 50, 'finalTarget': 5000})

    def test_update_targets_validates_before_io(self):
        with self.assertRaises(InvalidInput):
            self.service.update_targets('abc', 0, 5000)
        self.session.request.assert_not_called()

    def test_authenticate_returns_session(self):
        self.session.request.return_value = make_response(
            200, {'success': True, 'sessionId': 'tok', 'username': 'ada'})
        result = self.service.authenticate(' ada ', 'pw', 'register')
        self.assertEqual(result, {'sessionId': 'tok', 'username': 'ada'})
        self.assertEqual(self.session.request.call_args.kwargs['json'],
                         {'username': 'ada', 'password': 'pw', 'mode': 'register'})

    def test_authenticate_error_message_is_surfaced(self):
        self.session.request.return_value = make_response(200, {'error': 'Invalid credentials'})
        with self.assertRaises(AuthRejected) as ctx:
            self.service.authenticate('ada', 'bad')
        self.assertEqual(ctx.exception.detail, 'Invalid credentials')

    def test_authenticate_conflict(self):
        self.session.request.return_value = make_response(409, {'error': 'User already exists'})
        with self.assertRaises(AuthRejected):
            self.service.authenticate('ada', 'pw', 'register')

    def test_logout_is_best_effort(self):
        self.session.request.side_effect = requests.ConnectionError('offline')
        self.assertFalse(self.service.logout('abc'))

    def test_shared_session_is_used_by_default(self):
        service = HttpCounterService('https://tally.example.com')
        self.assertIs(service.http, http_client.http)


class HttpSessionTest(unittest.TestCase):

    def test_post_is_never_auto_retried(self):
        session = http_client.create_session()
        self.addCleanup(session.close)
        retry = session.get_adapter('https://tally.example.com').max_retries
        self.assertNotIn('POST', retry.allowed_methods)
        self.assertIn('GET', retry.allowed_methods)

    def test_reset_session_closes_old_and_returns_fresh_session(self):
        old = MagicMock()
        new = http_client.reset_session(old)
        self.addCleanup(new.close)
        old.close.assert_called_once_with()
        self.assertIsInstance(new, requests.Session)
        self.assertIsNot(old, new)

    def test_ca_bundle_defaults_to_certifi(self):
        with patch.dict('os.environ', {}, clear=True):
            self.assertEqual(http_client.ca_bundle_path(), certifi.where())

    def test_ca_bundle_env_override_must_exist(self):
        with patch.dict('os.environ', {'REQUESTS_CA_BUNDLE': '/nonexistent/ca.pem'}, clear=True):
            self.assertEqual(http_client.ca_bundle_path(), certifi.where())


if __name__ == '__main__':
    unittest.main()
