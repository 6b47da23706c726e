"""
Tests for error classification and credential masking.
"""
import httpx
import pytest

from conftest import RateLimited
from token_rotator.error_handler import (
    ApiConnectionError,
    CredentialsExhaustedError,
    ErrorKind,
    GradioErrorEvent,
    InvalidResponseError,
    ProviderError,
    ProviderHTTPError,
    TaskTimeoutError,
    classify_error,
    is_quota_failure,
    mask_credential,
)
from token_rotator.provider_config import PROVIDER_POLICIES

GITEE_KEYWORDS = PROVIDER_POLICIES["gitee"].quota_keywords
MS_KEYWORDS = PROVIDER_POLICIES["modelscope"].quota_keywords


def _http_status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://example.com/v1/images/generations")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(
        f"Client error '{status_code}'", request=request, response=response
    )


class StatusAttrError(Exception):
    def __init__(self, status):
        super().__init__("request failed")
        self.status = status


class TestStatusCodeHeuristics:
    """Untagged errors are classified by status code, then message."""

    def test_status_code_attribute(self):
        classified = classify_error(RateLimited())
        assert classified.is_quota
        assert classified.status_code == 429

    @pytest.mark.parametrize("status", [429, "429"])
    def test_status_attribute(self, status):
        assert is_quota_failure(StatusAttrError(status))

    def test_httpx_status_error_429(self):
        classified = classify_error(_http_status_error(429))
        assert classified.error_type == "quota_exceeded"
        assert classified.status_code == 429

    def test_httpx_status_error_500_is_hard(self):
        classified = classify_error(_http_status_error(500))
        assert classified.error_type == "http_error"
        assert not classified.is_quota

    def test_429_in_message(self):
        assert is_quota_failure(Exception("upstream answered HTTP 429"))


class TestKeywordHeuristics:
    @pytest.mark.parametrize(
        "message",
        [
            "Monthly quota exceeded",
            "QUOTA EXCEEDED",
            "Insufficient Credit balance",
        ],
    )
    def test_gitee_keywords(self, message):
        assert is_quota_failure(Exception(message), GITEE_KEYWORDS)

    @pytest.mark.parametrize("message", ["Arrearage", "arrearage detected", "Bill unpaid"])
    def test_modelscope_keywords(self, message):
        assert is_quota_failure(Exception(message), MS_KEYWORDS)
        assert not is_quota_failure(Exception(message), GITEE_KEYWORDS)

    def test_no_keywords_no_quota(self):
        assert not is_quota_failure(Exception("quota exceeded"))

    def test_http_error_with_keyword_message(self):
        """A 402 carrying 'credit' in its message still means exhaustion."""
        error = ProviderHTTPError(402, "Insufficient credit")
        assert is_quota_failure(error, GITEE_KEYWORDS)


class TestTaggedErrors:
    def test_provider_http_429_is_tagged(self):
        error = ProviderHTTPError(429)
        assert error.kind == ErrorKind.QUOTA
        assert str(error) == "Provider API Error: 429"

    def test_provider_http_500_is_untagged(self):
        error = ProviderHTTPError(500, "Server exploded")
        assert error.kind is None
        assert classify_error(error).error_type == "http_error"

    def test_gradio_error_event(self):
        error = GradioErrorEvent(data="event: error\ndata: null")
        assert error.message == "error_quota_exhausted"
        assert error.data.startswith("event: error")
        assert classify_error(error).is_quota

    def test_hard_tag_ignores_keywords_and_429(self):
        error = InvalidResponseError("quota 429 mentioned in a malformed body")
        classified = classify_error(error, GITEE_KEYWORDS)
        assert classified.error_type == "invalid_response"

    def test_explicit_kind_on_plain_provider_error(self):
        assert is_quota_failure(ProviderError("nope", kind=ErrorKind.QUOTA))
        assert not is_quota_failure(
            ProviderError("quota", kind=ErrorKind.HARD), GITEE_KEYWORDS
        )

    def test_task_timeout_is_connection_error(self):
        error = TaskTimeoutError("task-1", 60)
        assert isinstance(error, ApiConnectionError)
        assert error.task_id == "task-1"
        assert classify_error(error).error_type == "api_connection"


class TestOtherClassifications:
    def test_network_error(self):
        error = httpx.ConnectError("connection refused")
        assert classify_error(error).error_type == "api_connection"

    def test_timeout(self):
        error = httpx.ReadTimeout("read timed out")
        assert classify_error(error).error_type == "api_connection"

    def test_unknown(self):
        classified = classify_error(KeyError("missing"))
        assert classified.error_type == "unknown"
        assert classified.status_code is None
        assert "unknown" in str(classified)

    def test_exhausted_error_is_not_quota(self):
        """The executor's own terminal error never triggers rotation."""
        assert not is_quota_failure(CredentialsExhaustedError("gitee", attempts=3))


class TestMaskCredential:
    def test_long_credential(self):
        assert mask_credential("hf_abcdefghijkl") == "...ghijkl"

    def test_short_credential(self):
        assert mask_credential("abc") == "***"
        assert mask_credential("abcdef") == "***"

    @pytest.mark.parametrize("value", [None, ""])
    def test_anonymous(self, value):
        assert mask_credential(value) == "<anonymous>"
