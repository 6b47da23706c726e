from .client import ImageGenClient
from .error_handler import (
    ApiConnectionError,
    ClassifiedError,
    CredentialRequiredError,
    CredentialsExhaustedError,
    ErrorKind,
    GradioErrorEvent,
    InvalidResponseError,
    PromptOptimizationError,
    ProviderError,
    ProviderHTTPError,
    QuotaExhaustedError,
    TaskTimeoutError,
    TokenRotatorError,
    UpscaleError,
    classify_error,
    is_quota_failure,
    mask_credential,
)
from .executor import RetrySession, TokenRotationExecutor
from .log_config import configure_logging
from .providers import PROVIDER_PLUGINS
from .provider_config import PROVIDER_POLICIES, ProviderPolicy, get_policy
from .token_selector import TokenSelector
from .token_store import (
    ExhaustionRecord,
    InMemoryTokenStatusBackend,
    JsonFileTokenStatusBackend,
    TokenStats,
    TokenStatusBackend,
    TokenStore,
    parse_credentials,
    rotation_day,
)
from .types import GeneratedImage

__all__ = [
    "ImageGenClient",
    "TokenRotationExecutor",
    "RetrySession",
    "TokenSelector",
    "TokenStore",
    "TokenStatusBackend",
    "InMemoryTokenStatusBackend",
    "JsonFileTokenStatusBackend",
    "ExhaustionRecord",
    "TokenStats",
    "parse_credentials",
    "rotation_day",
    "ProviderPolicy",
    "PROVIDER_POLICIES",
    "PROVIDER_PLUGINS",
    "get_policy",
    "GeneratedImage",
    "configure_logging",
    "ErrorKind",
    "ClassifiedError",
    "classify_error",
    "is_quota_failure",
    "mask_credential",
    "TokenRotatorError",
    "CredentialRequiredError",
    "CredentialsExhaustedError",
    "ProviderError",
    "ProviderHTTPError",
    "QuotaExhaustedError",
    "GradioErrorEvent",
    "InvalidResponseError",
    "ApiConnectionError",
    "TaskTimeoutError",
    "PromptOptimizationError",
    "UpscaleError",
]
