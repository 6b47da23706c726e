"""
Test suite for the credential-rotating executor.
"""
import asyncio
import json
from datetime import timedelta

import pytest

from conftest import RateLimited
from token_rotator.error_handler import (
    CredentialRequiredError,
    CredentialsExhaustedError,
    InvalidResponseError,
    ProviderHTTPError,
    QuotaExhaustedError,
)
from token_rotator import provider_config
from token_rotator.executor import RetrySession, TokenRotationExecutor
from token_rotator.token_store import TokenStatusBackend, TokenStore


class Recorder:
    """Operation stub that records every credential it is called with."""

    def __init__(self, outcomes=None, default=None):
        self.calls = []
        self._outcomes = dict(outcomes or {})
        self._default = default

    async def __call__(self, credential):
        self.calls.append(credential)
        outcome = self._outcomes.get(credential, self._default)
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            raise outcome()
        return outcome if outcome is not None else f"ok:{credential}"


class TestRetrySession:
    def test_attempt_bound(self):
        session = RetrySession(provider="gitee", max_attempts=2)
        assert session.has_attempts_left
        session.attempts = 2
        assert not session.has_attempts_left


class TestRotation:
    """Test quota-driven credential rotation."""

    @pytest.mark.asyncio
    async def test_first_credential_succeeds(self, executor, token_config):
        token_config["gitee"] = "A,B"
        operation = Recorder()
        assert await executor.execute("gitee", operation) == "ok:A"
        assert operation.calls == ["A"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("k", [1, 2, 3])
    async def test_kth_credential_succeeds(self, executor, store, token_config, k):
        """Credentials 1..k-1 fail on quota, credential k succeeds."""
        tokens = ["A", "B", "C", "D"]
        token_config["gitee"] = ",".join(tokens)
        operation = Recorder({t: RateLimited for t in tokens[: k - 1]})

        assert await executor.execute("gitee", operation) == f"ok:{tokens[k - 1]}"
        assert operation.calls == tokens[:k]
        assert (await store.load("gitee")).exhausted == set(tokens[: k - 1])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("n", [1, 2, 4])
    async def test_all_credentials_exhausted(self, executor, store, token_config, n):
        tokens = [f"token-{i}" for i in range(n)]
        token_config["gitee"] = ",".join(tokens)
        operation = Recorder(default=RateLimited)

        with pytest.raises(CredentialsExhaustedError) as exc_info:
            await executor.execute("gitee", operation)

        assert exc_info.value.provider == "gitee"
        assert exc_info.value.attempts == n + 1
        assert operation.calls == tokens
        stats = await executor.stats("gitee")
        assert (stats.total, stats.exhausted, stats.active) == (n, n, 0)

    @pytest.mark.asyncio
    async def test_exhausted_pool_fails_without_calling(self, executor, store, token_config):
        """Once everything is marked, later calls do not reach the provider."""
        token_config["gitee"] = "A,B"
        await store.mark_exhausted("gitee", "A")
        await store.mark_exhausted("gitee", "B")
        operation = Recorder()

        with pytest.raises(CredentialsExhaustedError) as exc_info:
            await executor.execute("gitee", operation)
        assert exc_info.value.attempts == 1
        assert operation.calls == []

    @pytest.mark.asyncio
    async def test_quota_keyword_rotates(self, executor, token_config):
        token_config["modelscope"] = "A,B"
        operation = Recorder({"A": Exception("Arrearage: account balance is insufficient")})
        assert await executor.execute("modelscope", operation) == "ok:B"

    @pytest.mark.asyncio
    async def test_keyword_of_other_provider_does_not_rotate(self, executor, token_config):
        """'Bill' only means exhaustion for ModelScope."""
        token_config["gitee"] = "A,B"
        error = Exception("Bill overdue")
        operation = Recorder({"A": error})
        with pytest.raises(Exception) as exc_info:
            await executor.execute("gitee", operation)
        assert exc_info.value is error
        assert operation.calls == ["A"]

    @pytest.mark.asyncio
    async def test_tagged_quota_error_rotates(self, executor, token_config):
        token_config["huggingface"] = "A,B"
        operation = Recorder({"A": QuotaExhaustedError("ZeroGPU quota used up")})
        assert await executor.execute("huggingface", operation) == "ok:B"


class TestHardFailures:
    """Non-quota errors abort immediately without marking anything."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            ProviderHTTPError(500, "Internal Server Error"),
            InvalidResponseError("error_invalid_response"),
            ValueError("bad payload"),
        ],
    )
    async def test_hard_error_propagates_unchanged(self, executor, store, token_config, error):
        token_config["gitee"] = "A,B,C"
        operation = Recorder({"A": error})

        with pytest.raises(type(error)) as exc_info:
            await executor.execute("gitee", operation)

        assert exc_info.value is error
        assert operation.calls == ["A"]
        assert (await store.load("gitee")).exhausted == set()

    @pytest.mark.asyncio
    async def test_tagged_hard_error_wins_over_keyword(self, executor, token_config):
        token_config["gitee"] = "A,B"
        error = InvalidResponseError("quota field missing from response")
        operation = Recorder({"A": error})
        with pytest.raises(InvalidResponseError):
            await executor.execute("gitee", operation)
        assert operation.calls == ["A"]

    @pytest.mark.asyncio
    async def test_hard_error_after_rotation(self, executor, store, token_config):
        token_config["gitee"] = "A,B,C"
        operation = Recorder({"A": RateLimited, "B": RuntimeError("boom")})
        with pytest.raises(RuntimeError):
            await executor.execute("gitee", operation)
        assert operation.calls == ["A", "B"]
        assert (await store.load("gitee")).exhausted == {"A"}

    @pytest.mark.asyncio
    async def test_cancellation_is_not_a_quota_failure(self, executor, store, token_config):
        token_config["gitee"] = "A,B"
        operation = Recorder({"A": asyncio.CancelledError()})
        with pytest.raises(asyncio.CancelledError):
            await executor.execute("gitee", operation)
        assert operation.calls == ["A"]
        assert (await store.load("gitee")).exhausted == set()


class TestEmptyPool:
    @pytest.mark.asyncio
    async def test_required_credential_missing(self, executor):
        operation = Recorder()
        with pytest.raises(CredentialRequiredError) as exc_info:
            await executor.execute("gitee", operation)
        assert exc_info.value.provider == "gitee"
        assert operation.calls == []

    @pytest.mark.asyncio
    async def test_blank_config_counts_as_missing(self, executor, token_config):
        token_config["modelscope"] = " , ,"
        with pytest.raises(CredentialRequiredError):
            await executor.execute("modelscope", Recorder())

    @pytest.mark.asyncio
    async def test_anonymous_call(self, executor):
        """Hugging Face works without tokens: exactly one anonymous call."""
        operation = Recorder()
        assert await executor.execute("huggingface", operation) == "ok:None"
        assert operation.calls == [None]

    @pytest.mark.asyncio
    async def test_anonymous_errors_propagate_verbatim(self, executor, store):
        error = RateLimited()
        operation = Recorder({None: error})
        with pytest.raises(RateLimited) as exc_info:
            await executor.execute("huggingface", operation)
        assert exc_info.value is error
        assert operation.calls == [None]
        assert (await store.load("huggingface")).exhausted == set()


class TestSelection:
    @pytest.mark.asyncio
    async def test_rollover_makes_credentials_available_again(
        self, executor, token_config, clock
    ):
        token_config["gitee"] = "A,B"
        await executor.execute("gitee", Recorder({"A": RateLimited}))

        operation = Recorder()
        await executor.execute("gitee", operation)
        assert operation.calls == ["B"]

        # Past Beijing midnight
        clock.now = clock.now + timedelta(hours=5)
        operation = Recorder()
        await executor.execute("gitee", operation)
        assert operation.calls == ["A"]

    @pytest.mark.asyncio
    async def test_duplicate_credential_is_skipped_once_marked(
        self, executor, token_config
    ):
        token_config["gitee"] = "a,a,b"
        operation = Recorder({"a": RateLimited})
        assert await executor.execute("gitee", operation) == "ok:b"
        assert operation.calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_configuration_is_read_on_every_call(self, executor, token_config):
        token_config["gitee"] = "A"
        first = Recorder()
        await executor.execute("gitee", first)

        token_config["gitee"] = "Z,A"
        second = Recorder()
        await executor.execute("gitee", second)

        assert first.calls == ["A"]
        assert second.calls == ["Z"]

    @pytest.mark.asyncio
    async def test_explicit_credentials_override_config(self, executor, token_config):
        token_config["gitee"] = "A"
        operation = Recorder({"X": RateLimited})
        result = await executor.execute("gitee", operation, credentials=["X", "Y"])
        assert result == "ok:Y"
        assert operation.calls == ["X", "Y"]

    @pytest.mark.asyncio
    async def test_default_token_source_reads_environment(self, monkeypatch, store):
        monkeypatch.setenv("GITEE_TOKENS", "env-token")
        executor = TokenRotationExecutor(store=store)
        operation = Recorder()
        await executor.execute("gitee", operation)
        assert operation.calls == ["env-token"]

    @pytest.mark.asyncio
    async def test_default_token_source_loads_dotenv(self, monkeypatch, tmp_path, store):
        """A standalone executor picks up tokens from .env in the working directory."""
        (tmp_path / ".env").write_text("GITEE_TOKENS=dotenv-token\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(provider_config, "_env_loaded", False)
        monkeypatch.setenv("GITEE_TOKENS", "placeholder")
        monkeypatch.delenv("GITEE_TOKENS")

        executor = TokenRotationExecutor(store=store)
        operation = Recorder()
        await executor.execute("gitee", operation)
        assert operation.calls == ["dotenv-token"]


class _ForgetfulBackend(TokenStatusBackend):
    """Accepts writes and drops them."""

    async def get(self, storage_key):
        return None

    async def set(self, storage_key, record):
        return None


class TestTermination:
    @pytest.mark.asyncio
    async def test_lost_writes_still_terminate(self, clock, token_config):
        """If marks never stick, the attempt bound ends the loop."""
        token_config["gitee"] = "A,B"
        executor = TokenRotationExecutor(
            store=TokenStore(backend=_ForgetfulBackend(), clock=clock),
            token_source=token_config.get,
        )
        operation = Recorder(default=RateLimited)

        with pytest.raises(RateLimited):
            await executor.execute("gitee", operation)
        assert operation.calls == ["A", "A", "A"]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_calls_converge(self, executor, store, token_config):
        """Two calls both try A before either marks it; both finish on B."""
        token_config["gitee"] = "A,B"
        both_on_a = asyncio.Event()
        arrivals = []

        async def operation(credential):
            if credential == "A":
                arrivals.append(credential)
                if len(arrivals) < 2:
                    await both_on_a.wait()
                else:
                    both_on_a.set()
                raise RateLimited()
            return f"ok:{credential}"

        results = await asyncio.gather(
            executor.execute("gitee", operation),
            executor.execute("gitee", operation),
        )
        assert results == ["ok:B", "ok:B"]
        assert (await store.load("gitee")).exhausted == {"A"}


class TestRotationLog:
    @pytest.mark.asyncio
    async def test_rotation_is_logged_with_masked_credential(
        self, executor, token_config, rotation_log_dir
    ):
        token_config["gitee"] = "gitee-secret-abc123,gitee-secret-def456"
        await executor.execute(
            "gitee", Recorder({"gitee-secret-abc123": RateLimited})
        )

        lines = (rotation_log_dir / "rotations.log").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["provider"] == "gitee"
        assert entry["credential_ending"] == "...abc123"
        assert entry["attempt_number"] == 1
        assert entry["max_attempts"] == 3
        assert entry["classified_as"] == "quota_exceeded"
        assert entry["status_code"] == 429
        assert "gitee-secret" not in lines[0]
