from __future__ import annotations

import unittest
from unittest.mock import AsyncMock, patch

from vatfix.exceptions import (
    InvalidInputError,
    LookupHttpError,
    LookupTimeoutError,
    ProtocolFaultError,
    ServiceUnavailableError,
)
from vatfix.utils.retry import FailureKind, RetryPolicy, classify_failure, retry_async
from vatfix.tests.utils import run


class ClassifyFailureTests(unittest.TestCase):
    def test_transient_failures(self) -> None:
        for error in (
            LookupTimeoutError("timed out"),
            ServiceUnavailableError("connection refused"),
            LookupHttpError(500),
            LookupHttpError(503),
            ProtocolFaultError("MS_UNAVAILABLE"),
            ProtocolFaultError("SERVICE_UNAVAILABLE"),
            ProtocolFaultError("TIMEOUT"),
            ProtocolFaultError("SERVER_BUSY"),
            ProtocolFaultError("MS_MAX_CONCURRENT_REQ"),
        ):
            self.assertIs(classify_failure(error), FailureKind.TRANSIENT, error)

    def test_permanent_failures(self) -> None:
        for error in (
            ProtocolFaultError("INVALID_INPUT"),
            ProtocolFaultError("MS_INVALID_INPUT: country not supported"),
            ProtocolFaultError("SOAP Fault"),
            LookupHttpError(400),
            LookupHttpError(404),
            InvalidInputError(),
            ValueError("boom"),
        ):
            self.assertIs(classify_failure(error), FailureKind.PERMANENT, error)

    def test_invalid_input_wins_over_transient_token(self) -> None:
        error = ProtocolFaultError("INVALID_INPUT: TIMEOUT while validating")
        self.assertIs(classify_failure(error), FailureKind.PERMANENT)


class RetryPolicyTests(unittest.TestCase):
    def test_success_on_first_attempt(self) -> None:
        func = AsyncMock(return_value={"valid": True})
        result = run(RetryPolicy(max_attempts=3, base_delay=0).run(func))
        self.assertEqual(result, {"valid": True})
        self.assertEqual(func.await_count, 1)

    def test_permanent_failure_is_attempted_once(self) -> None:
        func = AsyncMock(side_effect=ProtocolFaultError("INVALID_INPUT"))
        with self.assertRaises(ProtocolFaultError):
            run(RetryPolicy(max_attempts=3, base_delay=0).run(func))
        self.assertEqual(func.await_count, 1)

    def test_transient_failure_is_retried_until_success(self) -> None:
        func = AsyncMock(side_effect=[LookupTimeoutError("t1"), LookupHttpError(502), {"valid": False}])
        result = run(RetryPolicy(max_attempts=3, base_delay=0).run(func))
        self.assertEqual(result, {"valid": False})
        self.assertEqual(func.await_count, 3)

    def test_exhausted_attempts_raise_last_error(self) -> None:
        func = AsyncMock(side_effect=[LookupTimeoutError("t1"), LookupTimeoutError("t2"), LookupHttpError(503)])
        with self.assertRaises(LookupHttpError):
            run(RetryPolicy(max_attempts=3, base_delay=0).run(func))
        self.assertEqual(func.await_count, 3)

    def test_backoff_doubles_between_attempts(self) -> None:
        func = AsyncMock(side_effect=ServiceUnavailableError("down"))
        with patch("vatfix.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with self.assertRaises(ServiceUnavailableError):
                run(retry_async(func, max_attempts=3, initial_delay=0.3))
        delays = [call.args[0] for call in sleep.await_args_list]
        self.assertEqual(len(delays), 2)
        self.assertAlmostEqual(delays[0], 0.3)
        self.assertAlmostEqual(delays[1], 0.6)

    def test_rejects_zero_attempts(self) -> None:
        with self.assertRaises(ValueError):
            RetryPolicy(max_attempts=0)


if __name__ == "__main__":
    unittest.main()
