"""Tests for NormalizedError construction."""

import asyncio

from apishield.errors.classifiers import (
    NETWORK_MESSAGE,
    RATE_LIMITED_MESSAGE,
    TIMEOUT_MESSAGE,
    UNEXPECTED_MESSAGE,
)
from apishield.errors.exceptions import (
    NetworkError,
    NormalizedError,
    RequestTimeoutError,
    TokenRefreshError,
)
from apishield.errors.normalizer import (
    ErrorBody,
    normalize_exception,
    normalize_failure,
    normalize_response,
)
from apishield.transport.models import Response
from apishield.types import ErrorCategory


class TestErrorBody:
    """Tests for error payload parsing."""

    def test_dict_payload(self):
        body = ErrorBody.from_payload({"message": "Email taken", "error": "DUPLICATE"})

        assert body.message == "Email taken"
        assert body.error == "DUPLICATE"

    def test_json_text_payload(self):
        body = ErrorBody.from_payload(b'{"message": "nope"}')

        assert body.message == "nope"

    def test_non_json_text(self):
        body = ErrorBody.from_payload("<html>Bad Gateway</html>")

        assert body.message is None
        assert body.error is None

    def test_list_payload(self):
        assert ErrorBody.from_payload([1, 2]).message is None

    def test_blank_message_dropped(self):
        assert ErrorBody.from_payload({"message": "   "}).message is None

    def test_non_string_message_coerced(self):
        assert ErrorBody.from_payload({"message": 42}).message == "42"

    def test_extra_fields_kept(self):
        body = ErrorBody.from_payload({"message": "x", "code": "E1"})

        assert body.model_extra == {"code": "E1"}


class TestNormalizeResponse:
    """Tests for failed response normalization."""

    def test_not_found_prefers_server_message(self):
        response = Response(404, body={"message": "User 7 not found"})

        error = normalize_response(response)

        assert error.category == ErrorCategory.NOT_FOUND
        assert error.status == 404
        assert error.user_message == "User 7 not found"
        assert error.technical_message == "User 7 not found"
        assert error.original is response

    def test_not_found_default_message(self):
        error = normalize_response(Response(404))

        assert error.user_message == "The requested resource was not found."
        assert error.technical_message == "Request failed with status 404"

    def test_forbidden_ignores_server_message(self):
        error = normalize_response(Response(403, body={"message": "role=guest"}))

        assert error.category == ErrorCategory.FORBIDDEN
        assert "Access denied" in error.user_message
        assert error.technical_message == "role=guest"

    def test_technical_message_prefers_error_field(self):
        error = normalize_response(
            Response(500, body={"message": "oops", "error": "NullPointer"})
        )

        assert error.technical_message == "NullPointer"

    def test_rate_limited_with_retry_after(self):
        response = Response(429, headers={"retry-after": "5"})

        error = normalize_response(response)

        assert error.category == ErrorCategory.RATE_LIMITED
        assert error.retry_after == 5.0
        assert "5 seconds" in error.user_message
        assert error.notification_duration_ms == 7000

    def test_rate_limited_without_retry_after(self):
        error = normalize_response(Response(429))

        assert error.retry_after is None
        assert error.user_message == RATE_LIMITED_MESSAGE

    def test_validation_errors_carried(self):
        details = {"email": ["must be a valid address"]}
        response = Response(422, body={"message": "Invalid", "errors": details})

        error = normalize_response(response)

        assert error.category == ErrorCategory.VALIDATION
        assert error.validation_errors == details
        assert error.user_message == "Invalid"

    def test_unauthorized_suppresses_notification(self):
        error = normalize_response(Response(401))

        assert error.category == ErrorCategory.UNAUTHORIZED
        assert error.show_notification is False

    def test_unknown_status(self):
        error = normalize_response(Response(418))

        assert error.category == ErrorCategory.UNKNOWN
        assert "418" in error.user_message

    def test_correlation_id_from_response(self):
        response = Response(500, correlation_id="resp-cid")

        error = normalize_response(response, correlation_id="fallback")

        assert error.correlation_id == "resp-cid"

    def test_correlation_id_fallback(self):
        error = normalize_response(Response(500), correlation_id="fallback")

        assert error.correlation_id == "fallback"


class TestNormalizeException:
    """Tests for exception normalization."""

    def test_network_error(self):
        cause = NetworkError("Connection error: refused")

        error = normalize_exception(cause, correlation_id="cid")

        assert error.category == ErrorCategory.NETWORK
        assert error.status is None
        assert error.user_message == NETWORK_MESSAGE
        assert error.correlation_id == "cid"
        assert error.original is cause
        assert error.cause is cause

    def test_request_timeout(self):
        error = normalize_exception(RequestTimeoutError("Request timed out"))

        assert error.category == ErrorCategory.TIMEOUT
        assert error.user_message == TIMEOUT_MESSAGE

    def test_asyncio_timeout(self):
        error = normalize_exception(asyncio.TimeoutError())

        assert error.category == ErrorCategory.TIMEOUT
        assert error.technical_message == "Request timed out"

    def test_refresh_failure(self):
        error = normalize_exception(TokenRefreshError("Refresh rejected", status=401))

        assert error.category == ErrorCategory.UNAUTHORIZED
        assert error.status == 401
        assert error.show_notification is False

    def test_unexpected_exception(self):
        error = normalize_exception(ValueError("bad state"))

        assert error.category == ErrorCategory.UNKNOWN
        assert error.user_message == UNEXPECTED_MESSAGE
        assert error.technical_message == "bad state"

    def test_normalized_error_returned_unchanged(self):
        original = NormalizedError(ErrorCategory.CONFLICT, "exists", status=409)

        assert normalize_exception(original) is original


def test_normalize_failure_dispatches():
    assert normalize_failure(Response(409)).category == ErrorCategory.CONFLICT
    assert normalize_failure(NetworkError("x")).category == ErrorCategory.NETWORK


class TestNormalizedError:
    """Tests for the public error type."""

    def test_str_includes_category_and_status(self):
        error = NormalizedError(ErrorCategory.NOT_FOUND, "Missing", status=404)

        assert str(error) == "[notFound 404] Missing"

    def test_str_without_status(self):
        error = NormalizedError(ErrorCategory.NETWORK, "Offline")

        assert str(error) == "[network] Offline"

    def test_is_transient(self):
        assert NormalizedError(ErrorCategory.UNAVAILABLE, "x").is_transient
        assert not NormalizedError(ErrorCategory.VALIDATION, "x").is_transient

    def test_to_dict(self):
        error = NormalizedError(
            ErrorCategory.RATE_LIMITED,
            "Slow down",
            status=429,
            retry_after=3.0,
            correlation_id="cid",
        )

        data = error.to_dict()

        assert data["category"] == "rateLimited"
        assert data["status"] == 429
        assert data["retry_after"] == 3.0
        assert data["technical_message"] == "Slow down"
        assert data["correlation_id"] == "cid"
