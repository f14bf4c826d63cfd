import logging
import unittest

import requests
from google.api_core import exceptions as google_exceptions

from ngage.config import Settings
from ngage.errors import (
    DatabaseError,
    ErrorType,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ValidationError,
    categorize_error,
    handle_error,
    translate_google_error,
    user_message_for,
)
from ngage.log_buffer import RecentLogHandler, configure_logging
from ngage.retry import MAX_RETRY_ATTEMPTS, RETRY_DELAY_SECONDS, ErrorRecovery, retrying, with_retry


class ErrorCategoryTests(unittest.TestCase):
    def test_categorize_third_party_errors(self):
        self.assertEqual(categorize_error(requests.ConnectionError()), ErrorType.NETWORK)
        self.assertEqual(
            categorize_error(google_exceptions.ServiceUnavailable("down")), ErrorType.NETWORK
        )
        self.assertEqual(
            categorize_error(google_exceptions.ResourceExhausted("quota")), ErrorType.RATE_LIMIT
        )
        self.assertEqual(
            categorize_error(google_exceptions.InternalServerError("boom")), ErrorType.DATABASE
        )
        self.assertEqual(categorize_error(KeyError("x")), ErrorType.UNKNOWN)

    def test_translate_google_error(self):
        self.assertIsInstance(
            translate_google_error(google_exceptions.NotFound("missing")), NotFoundError
        )
        self.assertIsInstance(
            translate_google_error(google_exceptions.TooManyRequests("slow down")), RateLimitError
        )
        network = translate_google_error(google_exceptions.DeadlineExceeded("timeout"))
        self.assertIsInstance(network, NetworkError)
        self.assertIsInstance(
            translate_google_error(google_exceptions.Aborted("contention")), DatabaseError
        )

    def test_user_messages(self):
        self.assertEqual(user_message_for(ValidationError("Team name is required")), "Team name is required")
        self.assertIn("Network connection failed", user_message_for(requests.Timeout()))
        self.assertIn("unexpected error", user_message_for(RuntimeError("x")))

    def test_handle_error_logs_by_severity(self):
        with self.assertLogs("ngage.errors", level="WARNING") as logs:
            message = handle_error(ValidationError("Bad input"), context="create team")
        self.assertEqual(message, "Bad input")
        self.assertTrue(logs.records[0].levelno == logging.WARNING)
        self.assertIn("create team", logs.output[0])

        with self.assertLogs("ngage.errors", level="ERROR") as logs:
            handle_error(DatabaseError("write failed"))
        self.assertEqual(logs.records[0].levelno, logging.ERROR)


class RetryTests(unittest.TestCase):
    def setUp(self):
        self.sleeps = []

    def test_network_errors_are_retried_then_succeed(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise NetworkError("unreachable")
            return "ok"

        self.assertEqual(with_retry(flaky, sleep=self.sleeps.append), "ok")
        self.assertEqual(self.sleeps, [RETRY_DELAY_SECONDS, RETRY_DELAY_SECONDS])

    def test_gives_up_after_tier_attempts(self):
        def always_down():
            raise NetworkError("unreachable")

        with self.assertRaises(NetworkError):
            with_retry(always_down, sleep=self.sleeps.append)
        self.assertEqual(len(self.sleeps), MAX_RETRY_ATTEMPTS)

    def test_validation_errors_are_not_retried(self):
        def invalid():
            raise ValidationError("nope")

        with self.assertRaises(ValidationError):
            with_retry(invalid, sleep=self.sleeps.append)
        self.assertEqual(self.sleeps, [])

    def test_rate_limit_waits_for_retry_after(self):
        recovery = ErrorRecovery(sleep=self.sleeps.append)
        self.assertTrue(recovery.attempt_recovery(RateLimitError("slow", retry_after=5)))
        self.assertFalse(recovery.attempt_recovery(RateLimitError("slow", retry_after=5)))
        self.assertEqual(self.sleeps, [5])
        recovery.reset(ErrorType.RATE_LIMIT)
        self.assertEqual(recovery.attempts(ErrorType.RATE_LIMIT), 0)

    def test_decorator(self):
        calls = []

        @retrying(sleep=self.sleeps.append)
        def fetch(value):
            calls.append(value)
            if len(calls) == 1:
                raise requests.ConnectionError("reset")
            return value * 2

        self.assertEqual(fetch(21), 42)
        self.assertEqual(calls, [21, 21])


class RecentLogTests(unittest.TestCase):
    def setUp(self):
        self.handler = RecentLogHandler(capacity=3)
        self.logger = logging.getLogger("ngage.tests.recent")
        self.logger.setLevel(logging.DEBUG)
        self.logger.addHandler(self.handler)

    def tearDown(self):
        self.logger.removeHandler(self.handler)

    def test_keeps_newest_records_first(self):
        for i in range(5):
            self.logger.info("message %d", i)
        entries = self.handler.recent()
        self.assertEqual([e.message for e in entries], ["message 4", "message 3", "message 2"])
        self.assertEqual(entries[0].as_dict()["level"], "INFO")

    def test_level_filter_context_and_exceptions(self):
        self.logger.debug("noise")
        try:
            raise ValueError("broken")
        except ValueError:
            self.logger.exception("failed to sync", extra={"eventId": "e1"})
        errors = self.handler.recent(min_level="error")
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].context, {"eventId": "e1"})
        self.assertIn("ValueError", errors[0].error)
        self.assertIn("Traceback", errors[0].stack_trace)

    def test_configure_logging_attaches_one_buffer(self):
        settings = Settings(log_level="INFO")
        first = configure_logging(settings)
        second = configure_logging(settings)
        self.assertIs(first, second)
        self.assertEqual(logging.getLogger().handlers.count(first), 1)


if __name__ == "__main__":
    unittest.main()
