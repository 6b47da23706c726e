"""
Credential-rotating request executor.

For every logical call the executor picks the earliest non-exhausted
credential, runs the caller's operation with it, and on a quota failure marks
that credential exhausted and tries the next one. Any other failure is
re-raised untouched on first occurrence. The number of attempts is bounded by
the credential count plus one, so a call can never loop forever.

State machine per call:

    SELECT -> INVOKE -> SUCCESS
                     -> QUOTA_FAILURE -> SELECT
                     -> HARD_FAILURE -> raise
    SELECT (nothing left) -> CredentialsExhaustedError
    attempts used up -> last error (or ApiConnectionError)
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Mapping, Optional, Sequence, TypeVar

from .error_handler import (
    ApiConnectionError,
    CredentialRequiredError,
    CredentialsExhaustedError,
    classify_error,
    mask_credential,
)
from .provider_config import (
    ProviderPolicy,
    get_policy,
    get_raw_tokens,
    load_environment,
)
from .rotation_logger import log_rotation
from .token_selector import TokenSelector, TokenSource
from .token_store import TokenStats, TokenStore

lib_logger = logging.getLogger("token_rotator")
lib_logger.propagate = False
if not lib_logger.handlers:
    lib_logger.addHandler(logging.NullHandler())

T = TypeVar("T")

Operation = Callable[[Optional[str]], Awaitable[T]]


@dataclass
class RetrySession:
    """Bookkeeping for one execute() call. Never persisted."""

    provider: str
    max_attempts: int
    attempts: int = 0
    last_error: Optional[BaseException] = None

    @property
    def has_attempts_left(self) -> bool:
        return self.attempts < self.max_attempts


class TokenRotationExecutor:
    """
    Runs provider operations with automatic credential rotation.

    One executor serves every provider; per-provider behaviour (day offset,
    quota keywords, anonymous access) comes from its ProviderPolicy.

    Concurrent calls are not serialized against each other. Two calls may
    both try a credential before either marks it exhausted; the store's
    read-modify-write has no compare-and-swap, so the last write wins.
    """

    def __init__(
        self,
        store: Optional[TokenStore] = None,
        policies: Optional[Mapping[str, ProviderPolicy]] = None,
        token_source: Optional[TokenSource] = None,
    ):
        self.policies = policies
        self.store = store if store is not None else TokenStore(policies=policies)
        self.token_source = token_source or self._configured_tokens
        self.selector = TokenSelector(self.store, self.token_source)

    def _configured_tokens(self, provider: str) -> Optional[str]:
        """Raw token string from the environment, after a one-time .env load."""
        load_environment()
        return get_raw_tokens(provider, policies=self.policies)

    def policy(self, provider: str) -> ProviderPolicy:
        return get_policy(provider, self.policies)

    async def execute(
        self,
        provider: str,
        operation: Operation,
        credentials: Optional[Sequence[str]] = None,
    ) -> T:
        """
        Run `operation(credential)` with rotation across the provider's credentials.

        Args:
            provider: Provider key selecting the policy and the token pool
            operation: Async callable doing one unit of remote work. Receives a
                credential, or None for an anonymous call.
            credentials: Explicit credential list. When omitted the list is read
                fresh from configuration.

        Raises:
            CredentialRequiredError: no credentials and the provider needs one
            CredentialsExhaustedError: every credential is exhausted today
            Exception: any non-quota error raised by `operation`, unchanged
        """
        policy = self.policy(provider)
        pool: List[str] = (
            list(credentials)
            if credentials is not None
            else self.selector.credentials(provider)
        )

        if not pool:
            if policy.requires_credential:
                raise CredentialRequiredError(provider)
            lib_logger.debug(f"No credentials for '{provider}', calling anonymously")
            return await operation(None)

        session = RetrySession(provider=provider, max_attempts=len(pool) + 1)

        while session.has_attempts_left:
            session.attempts += 1
            credential = await self.selector.next(provider, pool)

            if credential is None:
                lib_logger.error(
                    f"All {len(pool)} credential(s) for '{provider}' are exhausted "
                    f"(attempt {session.attempts}/{session.max_attempts})"
                )
                raise CredentialsExhaustedError(provider, attempts=session.attempts)

            lib_logger.debug(
                f"Attempt {session.attempts}/{session.max_attempts} for '{provider}' "
                f"with credential {mask_credential(credential)}"
            )
            try:
                return await operation(credential)
            except Exception as e:
                session.last_error = e
                classified = classify_error(e, policy.quota_keywords)
                if not classified.is_quota:
                    lib_logger.debug(
                        f"Non-quota failure for '{provider}', not rotating: {classified}"
                    )
                    raise

                log_rotation(
                    provider,
                    credential,
                    session.attempts,
                    session.max_attempts,
                    classified,
                )
                await self.store.mark_exhausted(provider, credential)

        if session.last_error is not None:
            raise session.last_error
        raise ApiConnectionError("error_api_connection")

    async def stats(self, provider: str, raw: Optional[str] = None) -> TokenStats:
        """
        Credential counts for display. Reads configuration when `raw` is None.
        """
        if raw is None:
            raw = self.token_source(provider)
        return await self.store.stats(provider, raw)
