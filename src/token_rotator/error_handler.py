import logging
from enum import Enum
from typing import Iterable, Optional

import httpx

lib_logger = logging.getLogger("token_rotator")


class ErrorKind(str, Enum):
    """
    Explicit classification an adapter can attach to the errors it raises.

    QUOTA means the credential's allowance or balance is depleted and the call
    should move on to the next credential. HARD means the failure is unrelated
    to the credential and must reach the caller unchanged.
    """

    QUOTA = "quota"
    HARD = "hard"


class TokenRotatorError(Exception):
    """Base class for every error raised by this library."""

    error_code: str = "unknown"

    def __init__(self, message: str = ""):
        self.message = message or self.error_code
        super().__init__(self.message)


class CredentialRequiredError(TokenRotatorError):
    """Raised when a provider needs a credential but none is configured."""

    error_code = "credential_required"

    def __init__(self, provider: str, message: str = ""):
        self.provider = provider
        super().__init__(
            message or f"No credentials configured for provider '{provider}'"
        )


class CredentialsExhaustedError(TokenRotatorError):
    """
    Raised when every configured credential has been marked exhausted for the
    current rotation window.

    Attributes:
        provider: The provider key the call was made for
        attempts: Number of selection attempts made by the executor
    """

    error_code = "credentials_exhausted"

    def __init__(self, provider: str, attempts: int = 0, message: str = ""):
        self.provider = provider
        self.attempts = attempts
        super().__init__(
            message
            or f"All credentials for provider '{provider}' are exhausted for today"
        )


class ProviderError(TokenRotatorError):
    """
    An error raised by a provider adapter.

    `kind` is the adapter's own verdict. When it is None the classifier falls
    back to inspecting the status code and message.
    """

    kind: Optional[ErrorKind] = None

    def __init__(
        self,
        message: str = "",
        kind: Optional[ErrorKind] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.status_code = status_code


class ProviderHTTPError(ProviderError):
    """Non-2xx response from a provider. 429 is tagged as a quota failure."""

    error_code = "http_error"

    def __init__(self, status_code: int, message: str = ""):
        kind = ErrorKind.QUOTA if status_code == 429 else None
        super().__init__(
            message or f"Provider API Error: {status_code}",
            kind=kind,
            status_code=status_code,
        )


class QuotaExhaustedError(ProviderError):
    """Raised by adapters that know for certain a credential ran out."""

    error_code = "quota_exhausted"
    kind = ErrorKind.QUOTA


class GradioErrorEvent(QuotaExhaustedError):
    """A Gradio event stream emitted an `error` event instead of `complete`."""

    def __init__(self, message: str = "", data: Optional[str] = None):
        super().__init__(message or "error_quota_exhausted")
        self.data = data


class InvalidResponseError(ProviderError):
    """The provider answered, but not with the shape we expected."""

    error_code = "invalid_response"
    kind = ErrorKind.HARD


class ApiConnectionError(ProviderError):
    """Generic connectivity failure."""

    error_code = "api_connection"
    kind = ErrorKind.HARD


class TaskTimeoutError(ApiConnectionError):
    """An asynchronous provider task did not finish within the polling bound."""

    def __init__(self, task_id: str, polls: int):
        self.task_id = task_id
        self.polls = polls
        super().__init__(f"Task {task_id} did not finish after {polls} status checks")


class PromptOptimizationError(ProviderError):
    error_code = "prompt_optimization_failed"
    kind = ErrorKind.HARD


class UpscaleError(ProviderError):
    error_code = "upscale_failed"
    kind = ErrorKind.HARD


def mask_credential(credential: Optional[str]) -> str:
    """
    Mask a credential for safe display in logs and error messages.

    Shows the last 6 characters (e.g. "...xyz123"), or "***" for short values.
    """
    if not credential:
        return "<anonymous>"
    if len(credential) > 6:
        return f"...{credential[-6:]}"
    return "***"


class ClassifiedError:
    """A structured representation of a classified error."""

    def __init__(
        self,
        error_type: str,
        original_exception: BaseException,
        status_code: Optional[int] = None,
    ):
        self.error_type = error_type
        self.original_exception = original_exception
        self.status_code = status_code

    @property
    def is_quota(self) -> bool:
        return self.error_type == "quota_exceeded"

    def __str__(self):
        return (
            f"ClassifiedError(type={self.error_type}, status={self.status_code}, "
            f"original_exc={self.original_exception!r})"
        )


def _extract_status_code(e: BaseException) -> Optional[int]:
    if isinstance(e, httpx.HTTPStatusError):
        return e.response.status_code
    for attr in ("status_code", "status"):
        value = getattr(e, attr, None)
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    return None


def classify_error(
    e: BaseException, keywords: Iterable[str] = ()
) -> ClassifiedError:
    """
    Classifies an exception into a structured ClassifiedError object.

    Errors tagged by an adapter (ProviderError with a `kind`) are classified by
    the tag alone. Anything else goes through the fallback heuristics, first
    match wins:

    1. numeric status code equal to 429
    2. the message contains "429"
    3. the message contains one of the provider's quota keywords
       (case-insensitive)

    Error types:
    - quota_exceeded: credential is used up, rotate to the next one
    - invalid_response: malformed payload, never retried
    - api_connection: network failure or polling timeout, never retried
    - http_error: any other non-2xx status, never retried
    - unknown: everything else, never retried

    Args:
        e: The exception to classify
        keywords: Provider-specific quota keywords

    Returns:
        ClassifiedError with error_type and status_code
    """
    status_code = _extract_status_code(e)

    kind = getattr(e, "kind", None)
    if isinstance(e, ProviderError) and kind is not None:
        if kind == ErrorKind.QUOTA:
            return ClassifiedError("quota_exceeded", e, status_code)
        return ClassifiedError(e.error_code, e, status_code)

    if status_code == 429:
        return ClassifiedError("quota_exceeded", e, status_code)

    message = str(e)
    if "429" in message:
        return ClassifiedError("quota_exceeded", e, status_code)

    lowered = message.lower()
    for keyword in keywords:
        if keyword and keyword.lower() in lowered:
            lib_logger.debug(f"Quota keyword '{keyword}' matched in error: {message}")
            return ClassifiedError("quota_exceeded", e, status_code)

    if isinstance(e, (httpx.TimeoutException, httpx.NetworkError)):
        return ClassifiedError("api_connection", e, status_code)
    if isinstance(e, ProviderError):
        return ClassifiedError(e.error_code, e, status_code)
    if status_code is not None:
        return ClassifiedError("http_error", e, status_code)
    return ClassifiedError("unknown", e, status_code)


def is_quota_failure(e: BaseException, keywords: Iterable[str] = ()) -> bool:
    """Checks if the exception means the credential's quota is exhausted."""
    return classify_error(e, keywords).is_quota
