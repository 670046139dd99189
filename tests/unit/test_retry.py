"""
Unit tests for retry logic with exponential backoff

Tests verify:
- Backoff delay calculation and jitter bounds
- Exception filtering by type and predicate
- Retry callbacks
- Database-specific retry classification
"""

from unittest.mock import Mock, patch

import psycopg2
import pytest

from utils.retry import (
    compute_delay,
    is_retryable_db_exception,
    retry_database_operation,
    retry_with_backoff,
)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("utils.retry.time.sleep") as mock_sleep:
        yield mock_sleep


class TestComputeDelay:
    """Test compute_delay"""

    def test_exponential_without_jitter(self):
        assert [compute_delay(a, 1.0, jitter=False) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        assert compute_delay(10, 1.0, max_delay=5.0, jitter=False) == 5.0

    def test_jitter_within_25_percent(self):
        for _ in range(50):
            delay = compute_delay(2, 1.0)
            assert 3.0 <= delay <= 5.0

    def test_jitter_minimum(self):
        assert compute_delay(0, 0.01) >= 0.1


class TestRetryWithBackoff:
    """Test retry_with_backoff decorator"""

    def test_success_on_first_attempt(self, no_sleep):
        mock_func = Mock(return_value="success")

        assert retry_with_backoff(max_retries=3)(mock_func)() == "success"
        assert mock_func.call_count == 1
        no_sleep.assert_not_called()

    def test_success_after_retries(self, no_sleep):
        mock_func = Mock(side_effect=[ConnectionError("down"), ConnectionError("down"), "ok"])

        assert retry_with_backoff(max_retries=3)(mock_func)() == "ok"
        assert mock_func.call_count == 3
        assert no_sleep.call_count == 2

    def test_max_retries_exceeded(self):
        mock_func = Mock(side_effect=ConnectionError("Persistent error"))

        with pytest.raises(ConnectionError, match="Persistent error"):
            retry_with_backoff(max_retries=2)(mock_func)()

        # initial + 2 retries
        assert mock_func.call_count == 3

    def test_non_retryable_type_raises_immediately(self):
        mock_func = Mock(side_effect=ValueError("bad input"))
        decorated = retry_with_backoff(retryable_exceptions=(ConnectionError,))(mock_func)

        with pytest.raises(ValueError):
            decorated()

        assert mock_func.call_count == 1

    def test_predicate_filters(self):
        mock_func = Mock(side_effect=RuntimeError("permanent"))
        decorated = retry_with_backoff(retry_if=lambda e: "transient" in str(e))(mock_func)

        with pytest.raises(RuntimeError):
            decorated()

        assert mock_func.call_count == 1

    def test_on_retry_callback(self):
        callback = Mock()
        mock_func = Mock(side_effect=[TimeoutError("slow"), "ok"])

        retry_with_backoff(max_retries=2, on_retry=callback)(mock_func)()

        callback.assert_called_once()
        attempt, exc, delay = callback.call_args.args
        assert attempt == 1
        assert isinstance(exc, TimeoutError)
        assert delay > 0

    def test_callback_errors_do_not_stop_retries(self):
        mock_func = Mock(side_effect=[TimeoutError("slow"), "ok"])
        decorated = retry_with_backoff(on_retry=Mock(side_effect=RuntimeError("boom")))(mock_func)

        assert decorated() == "ok"

    def test_preserves_function_metadata(self):
        @retry_with_backoff()
        def open_connection():
            """Docstring."""

        assert open_connection.__name__ == "open_connection"
        assert open_connection.__doc__ == "Docstring."


class TestIsRetryableDbException:
    """Test is_retryable_db_exception"""

    @pytest.mark.parametrize("exception", [
        psycopg2.OperationalError("could not connect to server"),
        psycopg2.InterfaceError("connection already closed"),
        ConnectionError("reset"),
        TimeoutError("timed out"),
        Exception("deadlock detected"),
        Exception("server closed the connection unexpectedly"),
    ])
    def test_retryable(self, exception):
        assert is_retryable_db_exception(exception) is True

    @pytest.mark.parametrize("exception", [
        psycopg2.ProgrammingError("syntax error at or near SELECT"),
        psycopg2.IntegrityError("duplicate key value"),
        ValueError("Database connection string not provided"),
    ])
    def test_not_retryable(self, exception):
        assert is_retryable_db_exception(exception) is False


class TestRetryDatabaseOperation:
    """Test retry_database_operation decorator"""

    def test_retries_transient_errors(self):
        mock_func = Mock(side_effect=[psycopg2.OperationalError("connection refused"), "conn"])

        assert retry_database_operation(max_retries=3)(mock_func)() == "conn"
        assert mock_func.call_count == 2

    def test_does_not_retry_programming_errors(self):
        mock_func = Mock(side_effect=psycopg2.ProgrammingError("relation does not exist"))

        with pytest.raises(psycopg2.ProgrammingError):
            retry_database_operation(max_retries=3)(mock_func)()

        assert mock_func.call_count == 1
