"""
Tests for error classification and retry/backoff.
"""

import asyncio

import anthropic
import httpx
import openai
import pytest
from pydantic import BaseModel, ValidationError

from nodeflow.engine.errors import (
    ErrorKind,
    ExecutionCancelled,
    GraphBuildError,
    ProviderConfigurationError,
    classify_error,
    create_error_report,
    format_error_for_user,
)
from nodeflow.engine.retry import RetryPolicy, with_retry


_REQUEST = httpx.Request("POST", "https://api.example.test/v1/chat")


def _status_error(code: int, message: str = "request failed") -> httpx.HTTPStatusError:
    response = httpx.Response(code, request=_REQUEST)
    return httpx.HTTPStatusError(message, request=_REQUEST, response=response)


class ApiError(Exception):
    """An SDK-style error exposing its HTTP status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class _Strict(BaseModel):
    count: int


# ============================================================
# Classifier Tests
# ============================================================

class TestClassifyError:
    """Tests for classify_error."""

    def test_network(self):
        error = classify_error(httpx.ConnectError("connection refused"))
        assert error.kind == ErrorKind.NETWORK
        assert error.retryable is True

    def test_builtin_connection_error(self):
        assert classify_error(ConnectionResetError("reset")).kind == ErrorKind.NETWORK

    @pytest.mark.parametrize("code", [401, 403])
    def test_auth_status(self, code):
        error = classify_error(_status_error(code))
        assert error.kind == ErrorKind.AUTH
        assert error.retryable is False

    def test_rate_limit(self):
        error = classify_error(_status_error(429))
        assert error.kind == ErrorKind.EXECUTION
        assert error.retryable is True
        assert "Rate limit" in error.message

    def test_server_error(self):
        error = classify_error(ApiError("upstream exploded", status_code=503))
        assert error.kind == ErrorKind.EXECUTION
        assert error.retryable is True

    def test_status_wins_over_message(self):
        """A 401 mentioning a timeout is still an auth failure."""
        error = classify_error(_status_error(401, "timeout while checking API key"))
        assert error.kind == ErrorKind.AUTH

    def test_timeout(self):
        assert classify_error(httpx.ReadTimeout("read timed out")).kind == ErrorKind.TIMEOUT
        assert classify_error(TimeoutError()).kind == ErrorKind.TIMEOUT
        assert classify_error(RuntimeError("Request timeout after 60s")).kind == ErrorKind.TIMEOUT

    def test_asyncio_timeout(self):
        """asyncio.TimeoutError is its own class before 3.11 and has no message."""
        error = classify_error(asyncio.TimeoutError())
        assert error.kind == ErrorKind.TIMEOUT
        assert error.retryable is True

    @pytest.mark.parametrize("sdk", [openai, anthropic])
    def test_sdk_timeout_is_not_network(self, sdk):
        error = classify_error(sdk.APITimeoutError(request=_REQUEST))
        assert error.kind == ErrorKind.TIMEOUT

    @pytest.mark.parametrize("sdk", [openai, anthropic])
    def test_sdk_connection_error(self, sdk):
        error = classify_error(sdk.APIConnectionError(request=_REQUEST))
        assert error.kind == ErrorKind.NETWORK
        assert error.retryable is True

    @pytest.mark.parametrize("sdk", [openai, anthropic])
    def test_sdk_rate_limit(self, sdk):
        response = httpx.Response(429, request=_REQUEST)
        error = classify_error(sdk.RateLimitError("slow down", response=response, body=None))
        assert error.kind == ErrorKind.EXECUTION
        assert error.retryable is True

    def test_timeout_independent_of_node(self):
        plain = classify_error(TimeoutError("slow"))
        in_node = classify_error(TimeoutError("slow"), node_id="llm_1", node_type="llm")

        assert plain.kind == in_node.kind == ErrorKind.TIMEOUT
        assert plain.retryable == in_node.retryable
        assert in_node.node_id == "llm_1"

    def test_validation(self):
        assert classify_error(GraphBuildError("bad graph")).kind == ErrorKind.VALIDATION
        with pytest.raises(ValidationError) as info:
            _Strict(count="many")
        assert classify_error(info.value).kind == ErrorKind.VALIDATION

    def test_auth_from_message(self):
        error = classify_error(ProviderConfigurationError("openai API key not provided"))
        assert error.kind == ErrorKind.AUTH
        assert error.retryable is False

    def test_unknown(self):
        error = classify_error(RuntimeError("something odd"))
        assert error.kind == ErrorKind.UNKNOWN
        assert error.message == "something odd"
        assert error.recoverable is False

    def test_details_keep_raw_error(self):
        error = classify_error(httpx.ConnectError("connection refused"))
        assert error.details == "ConnectError: connection refused"
        assert "connection refused" not in error.message


class TestErrorReport:
    """Tests for user-facing reports."""

    def test_format_with_node(self):
        error = classify_error(TimeoutError("slow"), node_id="llm_1", node_type="llm")
        message = format_error_for_user(error)

        assert message.startswith('Node "llm_1" (llm): Operation timed out.')
        assert message.endswith("Try the suggested actions below.")

    def test_format_without_node(self):
        error = classify_error(RuntimeError("odd"))
        assert format_error_for_user(error) == "odd"

    def test_report(self):
        error = classify_error(_status_error(401))
        report = create_error_report(error, {"provider": "openai"})
        data = report.to_dict()

        assert report.recovery_actions[0] == "Verify your API keys are correct"
        assert data["userMessage"] == report.user_message
        assert data["recoveryActions"] == report.recovery_actions
        assert data["context"] == {"provider": "openai"}
        assert data["error"]["kind"] == "auth"


# ============================================================
# Retry Tests
# ============================================================

class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestRetry:
    """Tests for with_retry."""

    def test_delay_schedule(self):
        policy = RetryPolicy(base_delay_ms=100, max_delay_ms=1000)

        assert policy.delay_for(0) == 100
        assert policy.delay_for(1) == 200
        assert policy.delay_for(10) == 1000

    def test_policy_wire_names(self):
        policy = RetryPolicy.model_validate({"maxRetries": 1, "baseDelayMs": 5})
        assert policy.max_retries == 1
        assert policy.base_delay_ms == 5

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        sleep = FakeSleep()
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise httpx.ConnectError("connection refused")
            return "ok"

        result = await with_retry(flaky, RetryPolicy(max_retries=2, base_delay_ms=100), sleep=sleep)

        assert result == "ok"
        assert len(calls) == 3
        assert sleep.delays == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        sleep = FakeSleep()
        calls = []
        attempts = []

        async def down():
            calls.append(1)
            raise _status_error(503)

        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(
                down,
                RetryPolicy(max_retries=2, base_delay_ms=100),
                on_retry=lambda attempt, error: attempts.append(attempt),
                sleep=sleep,
            )

        assert len(calls) == 3
        assert sleep.delays == [0.1, 0.2]
        assert attempts == [1, 2]

    @pytest.mark.asyncio
    async def test_non_retryable_fails_fast(self):
        sleep = FakeSleep()
        calls = []

        async def unauthorized():
            calls.append(1)
            raise _status_error(401)

        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(unauthorized, RetryPolicy(max_retries=3), sleep=sleep)

        assert len(calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_cancellation_not_retried(self):
        sleep = FakeSleep()
        calls = []

        async def cancelled():
            calls.append(1)
            raise ExecutionCancelled("Execution was cancelled")

        with pytest.raises(ExecutionCancelled):
            await with_retry(cancelled, RetryPolicy(max_retries=3), sleep=sleep)

        assert len(calls) == 1
