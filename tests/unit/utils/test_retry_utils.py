"""
Tests for failure classification and backoff calculation.

classify_failure is the only place token failures are routed, so its
vocabulary is covered term by term.
"""

import pytest

from credential_broker.constants import FailureKind
from credential_broker.utils.retry_utils import calculate_exponential_backoff, classify_failure


class TestClassifyFailure:
    """Test classify_failure routing."""

    @pytest.mark.parametrize(
        "message",
        [
            "invalid_grant: authentication failure",
            "CRM token request failed: 400 Bad Request (invalid_grant)",
            "CRM token request failed: 401 Unauthorized",
            "HTTP 401",
            "Unauthorized",
            "UNAUTHORIZED request",
        ],
    )
    def test_auth_vocabulary(self, message):
        assert classify_failure(message) == FailureKind.AUTH

    @pytest.mark.parametrize(
        "message",
        [
            "Request timeout",
            "CRM token request timed out: ReadTimeout",
            "read ECONNRESET",
            "getaddrinfo ENOTFOUND test.salesforce.com",
            "fetch failed",
            "Network is unreachable",
            "Connection refused",
        ],
    )
    def test_network_vocabulary(self, message):
        assert classify_failure(message) == FailureKind.NETWORK

    @pytest.mark.parametrize(
        "message",
        [
            "Malformed token response from CRM",
            "unexpected end of JSON input",
            "CRM token request failed: 500 Internal Server Error (SERVER_ERROR). CRM error: boom",
            "CRM token request failed: 429 Too Many Requests. CRM error: unknown",
            "",
            None,
        ],
    )
    def test_everything_else_is_other(self, message):
        assert classify_failure(message) == FailureKind.OTHER

    def test_auth_wins_over_network(self):
        assert classify_failure("401 Unauthorized (connection closed)") == FailureKind.AUTH


class TestCalculateExponentialBackoff:
    """Test calculate_exponential_backoff."""

    def test_doubles_until_capped(self):
        delays = [calculate_exponential_backoff(n, jitter_ratio=0) for n in range(6)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_jitter_is_additive_fraction_of_delay(self):
        delay = calculate_exponential_backoff(1, random_fn=lambda: 0.5)
        assert delay == pytest.approx(2.0 + 0.5 * 0.1 * 2.0)

    def test_jitter_bounded_by_ratio(self):
        delay = calculate_exponential_backoff(10, random_fn=lambda: 0.999)
        assert 10.0 <= delay < 11.0

    def test_negative_retry_count_returns_base(self):
        assert calculate_exponential_backoff(-1, base_delay=0.5) == 0.5
