"""
Tests for the cancellation token, signal routing and retry policies.
"""

import os
import signal
import threading
import time
import unittest
from unittest.mock import Mock

from loki_downloader.core.cancellation import CancellationToken, route_signals
from loki_downloader.core.errors import (
    ConfigurationError,
    DeserializationError,
    MaxResultWindowExceeded,
    OutputDirectoryNotEmptyError,
    RemoteQueryError,
)
from loki_downloader.core.policies import CoolDown, RetryPolicy, backoff_delay, run_with_retries

NO_WAIT = RetryPolicy(max_attempts=3, base_delay_s=0, jitter_s=0)


class TestCancellationToken(unittest.TestCase):
    def test_cancel_is_idempotent(self):
        token = CancellationToken()
        callback = Mock()

        with token.on_cancel(callback):
            token.cancel("first")
            token.cancel("second")

        self.assertTrue(token.cancelled)
        self.assertEqual(token.reason, "first")
        callback.assert_called_once_with()

    def test_callback_unregistered_after_block(self):
        token = CancellationToken()
        callback = Mock()

        with token.on_cancel(callback):
            pass
        token.cancel()

        callback.assert_not_called()

    def test_callback_runs_immediately_when_already_cancelled(self):
        token = CancellationToken()
        token.cancel()
        callback = Mock()

        with token.on_cancel(callback):
            callback.assert_called_once_with()

    def test_failing_callback_does_not_stop_cancel(self):
        token = CancellationToken()
        second = Mock()

        with token.on_cancel(Mock(side_effect=RuntimeError("boom"))), token.on_cancel(second):
            token.cancel()

        self.assertTrue(token.cancelled)
        second.assert_called_once_with()

    def test_wait_returns_early_on_cancel(self):
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            started = time.monotonic()
            self.assertTrue(token.wait(10))
            self.assertLess(time.monotonic() - started, 5)
        finally:
            timer.cancel()

    def test_wait_times_out(self):
        self.assertFalse(CancellationToken().wait(0.01))


class TestCoolDown(unittest.TestCase):
    def test_full_wait(self):
        self.assertFalse(CoolDown().wait(10, CancellationToken()))

    def test_interrupted_wait(self):
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            self.assertTrue(CoolDown().wait(60_000, token))
        finally:
            timer.cancel()

    def test_zero_delay(self):
        token = CancellationToken()
        self.assertFalse(CoolDown().wait(0, token))
        token.cancel()
        self.assertTrue(CoolDown().wait(0, token))


@unittest.skipIf(os.name != "posix", "signals are POSIX only")
class TestRouteSignals(unittest.TestCase):
    def test_first_interrupt_cancels_token(self):
        token = CancellationToken()
        original = signal.getsignal(signal.SIGINT)

        with route_signals(token, signals=(signal.SIGINT,)):
            os.kill(os.getpid(), signal.SIGINT)
            # the handler runs between bytecodes of the main thread
            for _ in range(100):
                if token.cancelled:
                    break
                time.sleep(0.01)
            self.assertTrue(token.cancelled)
            self.assertEqual(token.reason, "SIGINT")
            self.assertEqual(signal.getsignal(signal.SIGINT), original)

        self.assertEqual(signal.getsignal(signal.SIGINT), original)

    def test_handlers_restored_without_signal(self):
        original = signal.getsignal(signal.SIGTERM)

        with route_signals(CancellationToken(), signals=(signal.SIGTERM,)):
            self.assertNotEqual(signal.getsignal(signal.SIGTERM), original)

        self.assertEqual(signal.getsignal(signal.SIGTERM), original)


class TestRunWithRetries(unittest.TestCase):
    def test_retries_transient_failures(self):
        fn = Mock(side_effect=[RemoteQueryError("a"), RemoteQueryError("b"), "done"])

        self.assertEqual(run_with_retries(fn, NO_WAIT), "done")
        self.assertEqual(fn.call_count, 3)

    def test_gives_up_after_max_attempts(self):
        fn = Mock(side_effect=RemoteQueryError("down"))

        with self.assertRaises(RemoteQueryError):
            run_with_retries(fn, NO_WAIT)

        self.assertEqual(fn.call_count, 3)

    def test_non_retryable_errors(self):
        for error in (
            MaxResultWindowExceeded(),
            ConfigurationError("bad"),
            DeserializationError("corrupt state"),
            OutputDirectoryNotEmptyError("out"),
        ):
            with self.subTest(error=type(error).__name__):
                fn = Mock(side_effect=error)

                with self.assertRaises(type(error)):
                    run_with_retries(fn, NO_WAIT)

                self.assertEqual(fn.call_count, 1)

    def test_no_retry_after_cancel(self):
        token = CancellationToken()

        def fail():
            token.cancel()
            raise RemoteQueryError("aborted")

        fn = Mock(side_effect=fail)

        with self.assertRaises(RemoteQueryError):
            run_with_retries(fn, NO_WAIT, token)

        self.assertEqual(fn.call_count, 1)

    def test_single_attempt_by_default(self):
        fn = Mock(side_effect=RemoteQueryError("down"))

        with self.assertRaises(RemoteQueryError):
            run_with_retries(fn, RetryPolicy())

        fn.assert_called_once_with()

    def test_backoff_grows(self):
        policy = RetryPolicy(base_delay_s=1.0, jitter_s=0)

        self.assertEqual([backoff_delay(policy, i) for i in range(3)], [1.0, 2.0, 4.0])


if __name__ == "__main__":
    unittest.main()
