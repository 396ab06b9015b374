"""Tests for error classification, retry executor and error mapping."""

import httpx
import pytest

from shared.errors import (
    AuthenticationInvalidError,
    ErrorKind,
    InvalidRequestError,
    UnclassifiedUpstreamError,
    UnknownToolError,
    UpstreamOverloadedError,
    UpstreamRateLimitedError,
    classify_upstream_error,
)
from shared.models import RetryState
from orchestrator.retry import RetryExecutor
from orchestrator.responses import map_error
from conftest import SleepRecorder


class FakeGenAIError(Exception):
    """Shape of a Gemini SDK APIError: int code plus response details."""

    def __init__(self, code: int, message: str, details: dict) -> None:
        super().__init__(message)
        self.code = code
        self.details = details


class TestClassifyUpstreamError:
    """Tests for classify_upstream_error."""

    def test_status_code_attribute(self):
        """Test classification from an SDK status_code attribute."""
        exc = Exception("Service Unavailable")
        exc.status_code = 503

        error = classify_upstream_error(exc)

        assert isinstance(error, UpstreamOverloadedError)
        assert error.upstream_status == 503
        assert error.retryable

    def test_code_in_message(self):
        """Test fallback to the code fragment of a provider message."""
        error = classify_upstream_error(
            Exception('{"error":{"code":503,"message":"The model is overloaded."}}')
        )
        assert error.kind == ErrorKind.UPSTREAM_OVERLOADED

    def test_rate_limit_advice_in_message(self):
        """Test that 'retry in Ns' advice is captured as structured metadata."""
        error = classify_upstream_error(
            Exception('{"error":{"code":429,"message":"Quota exceeded. Please retry in 2.5s."}}')
        )

        assert isinstance(error, UpstreamRateLimitedError)
        assert error.retry_after_seconds == 2.5

    def test_rate_limit_retry_info_detail(self):
        """Test RetryInfo detail from a Gemini-style error."""
        exc = FakeGenAIError(429, "RESOURCE_EXHAUSTED", {
            "error": {
                "code": 429,
                "details": [
                    {"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": "12s"}
                ]
            }
        })

        error = classify_upstream_error(exc)

        assert error.kind == ErrorKind.UPSTREAM_RATE_LIMITED
        assert error.retry_after_seconds == 12.0

    def test_rate_limit_retry_after_header(self):
        """Test Retry-After header on an HTTP status error."""
        request = httpx.Request("POST", "https://llm.example.com/v1/chat")
        response = httpx.Response(429, headers={"retry-after": "7"}, request=request)
        exc = httpx.HTTPStatusError("Too Many Requests", request=request, response=response)

        error = classify_upstream_error(exc)

        assert error.kind == ErrorKind.UPSTREAM_RATE_LIMITED
        assert error.retry_after_seconds == 7.0

    def test_rate_limit_without_advice(self):
        """Test rate limit with no advised delay."""
        exc = Exception("Too many requests")
        exc.status_code = 429

        error = classify_upstream_error(exc)

        assert error.kind == ErrorKind.UPSTREAM_RATE_LIMITED
        assert error.retry_after_seconds is None

    def test_api_key_marker(self):
        """Test that an API_KEY marker means invalid credentials."""
        error = classify_upstream_error(
            Exception('{"error":{"code":400,"status":"INVALID_ARGUMENT","reason":"API_KEY_INVALID"}}')
        )
        assert isinstance(error, AuthenticationInvalidError)
        assert not error.retryable

    def test_unauthorized_status(self):
        """Test 401 from the upstream."""
        exc = Exception("Unauthorized")
        exc.status_code = 401
        assert isinstance(classify_upstream_error(exc), AuthenticationInvalidError)

    def test_bad_request(self):
        """Test 400 without an API key marker."""
        error = classify_upstream_error(Exception('{"error":{"code":400,"message":"bad payload"}}'))
        assert isinstance(error, InvalidRequestError)

    def test_unrecognised_failure(self):
        """Test default bucket."""
        error = classify_upstream_error(RuntimeError("connection reset"))
        assert isinstance(error, UnclassifiedUpstreamError)
        assert error.status_code == 500
        assert not error.retryable

    def test_already_classified_is_unchanged(self):
        """Test that typed errors pass through."""
        error = UnknownToolError("deleteEverything")
        assert classify_upstream_error(error) is error


class TestRetryExecutor:
    """Tests for RetryExecutor."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        """Test that a successful call is not retried."""
        sleep = SleepRecorder()
        executor = RetryExecutor(sleep=sleep)

        async def operation():
            return "ok"

        assert await executor.execute(operation) == "ok"
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_overloaded_backoff_doubles(self):
        """Test overloaded on attempts 1-2, success on 3: three attempts, second delay doubles."""
        sleep = SleepRecorder()
        executor = RetryExecutor(sleep=sleep)
        attempts = 0

        async def operation():
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise UpstreamOverloadedError("overloaded", upstream_status=503)
            return "ok"

        result = await executor.execute(operation)

        assert result == "ok"
        assert attempts == 3
        assert sleep.delays == [2.0, 4.0]
        assert sleep.delays[1] == 2 * sleep.delays[0]

    def test_advised_rate_limit_delay(self):
        """Test that 'retry in 2.5s' gives 3000ms."""
        executor = RetryExecutor()
        error = classify_upstream_error(
            Exception('{"error":{"code":429,"message":"Please retry in 2.5s."}}')
        )

        delay = executor.compute_backoff_ms(error, RetryState(current_backoff_ms=2000))

        assert delay == 3000

    @pytest.mark.asyncio
    async def test_rate_limit_uses_advised_delay(self):
        """Test that the executor sleeps for the advised delay plus margin."""
        sleep = SleepRecorder()
        executor = RetryExecutor(sleep=sleep)
        attempts = 0

        async def operation():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise UpstreamRateLimitedError("slow down", upstream_status=429, retry_after_seconds=2.5)
            return "ok"

        await executor.execute(operation)

        assert sleep.delays == [3.0]

    @pytest.mark.asyncio
    async def test_rate_limit_does_not_double(self):
        """Test that rate limits without advice reuse the current backoff."""
        sleep = SleepRecorder()
        executor = RetryExecutor(sleep=sleep)
        attempts = 0

        async def operation():
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise UpstreamRateLimitedError("slow down", upstream_status=429)
            return "ok"

        await executor.execute(operation)

        assert sleep.delays == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_rate_limit_after_overload_uses_grown_backoff(self):
        """Test that only the overloaded path grows the delay."""
        sleep = SleepRecorder()
        executor = RetryExecutor(sleep=sleep)
        errors = [
            UpstreamOverloadedError("overloaded", upstream_status=503),
            UpstreamRateLimitedError("slow down", upstream_status=429),
        ]

        async def operation():
            if errors:
                raise errors.pop(0)
            return "ok"

        await executor.execute(operation)

        assert sleep.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_exhausted_reraises_last_error(self):
        """Test that the retry budget bounds attempts."""
        sleep = SleepRecorder()
        executor = RetryExecutor(max_attempts=5, sleep=sleep)
        attempts = 0

        async def operation():
            nonlocal attempts
            attempts += 1
            raise UpstreamOverloadedError(f"overloaded #{attempts}", upstream_status=503)

        with pytest.raises(UpstreamOverloadedError, match="overloaded #5"):
            await executor.execute(operation)

        assert attempts == 5
        assert sleep.delays == [2.0, 4.0, 8.0, 16.0]

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_immediately(self):
        """Test that auth failures are not retried."""
        sleep = SleepRecorder()
        executor = RetryExecutor(sleep=sleep)
        attempts = 0

        async def operation():
            nonlocal attempts
            attempts += 1
            raise AuthenticationInvalidError("bad key", upstream_status=401)

        with pytest.raises(AuthenticationInvalidError):
            await executor.execute(operation)

        assert attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_unclassified_exception_propagates(self):
        """Test that raw exceptions are not retried."""
        executor = RetryExecutor(sleep=SleepRecorder())

        async def operation():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await executor.execute(operation)

    def test_from_settings(self):
        """Test construction from settings."""
        from shared.config import RetrySettings

        executor = RetryExecutor.from_settings(
            RetrySettings(max_attempts=3, base_delay_ms=100, rate_limit_margin_ms=50)
        )

        assert executor.max_attempts == 3
        assert executor.base_delay_ms == 100
        assert executor.rate_limit_margin_ms == 50


class TestMapError:
    """Tests for the user-facing error mapping."""

    @pytest.mark.parametrize("error, status", [
        (UpstreamOverloadedError("x"), 503),
        (UpstreamRateLimitedError("x"), 429),
        (AuthenticationInvalidError("x"), 401),
        (InvalidRequestError("x"), 400),
        (UnclassifiedUpstreamError("x"), 500),
        (UnknownToolError("x"), 500),
        (RuntimeError("x"), 500),
    ])
    def test_status_codes(self, error, status):
        """Test status per error kind."""
        assert map_error(error).status_code == status

    def test_overloaded_message_mentions_retries(self):
        """Test that the overloaded message says retries happened."""
        assert "retried" in map_error(UpstreamOverloadedError("x")).message

    def test_unknown_tool_keeps_its_kind(self):
        """Test that unknown tools are not folded into upstream kinds."""
        assert map_error(UnknownToolError("x")).kind == ErrorKind.UNKNOWN_TOOL_REQUESTED
