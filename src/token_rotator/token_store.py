import asyncio
import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union

import aiofiles

from .error_handler import mask_credential
from .provider_config import ProviderPolicy, get_policy
from .utils.paths import get_token_status_file
from .utils.resilient_io import ResilientStateWriter

lib_logger = logging.getLogger("token_rotator")
lib_logger.propagate = False
if not lib_logger.handlers:
    lib_logger.addHandler(logging.NullHandler())


Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_credentials(raw: Optional[str]) -> List[str]:
    """
    Split a comma-separated credential string into an ordered list.

    Whitespace is trimmed and empty entries dropped. Order is preserved and
    duplicates are kept: "a,a,b" -> ["a", "a", "b"].
    """
    if not raw:
        return []
    return [token.strip() for token in raw.split(",") if token.strip()]


def rotation_day(utc_offset_hours: int = 0, now: Optional[datetime] = None) -> str:
    """
    Calendar day (YYYY-MM-DD) of `now` in a fixed UTC offset.

    Naive datetimes are taken to be UTC.
    """
    now = now or _utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(timezone(timedelta(hours=utc_offset_hours)))
    return local.date().isoformat()


@dataclass
class ExhaustionRecord:
    """Credentials marked exhausted during one rotation day."""

    day: str
    exhausted: Set[str] = field(default_factory=set)

    def is_exhausted(self, credential: str) -> bool:
        return credential in self.exhausted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day,
            "exhausted": {credential: True for credential in sorted(self.exhausted)},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExhaustionRecord":
        """
        Build a record from its stored form.

        `exhausted` may be a {credential: true} mapping or a list of
        credentials. Any other shape is read as nothing exhausted.
        """
        raw = data.get("exhausted") or {}
        if isinstance(raw, Mapping):
            exhausted = {str(k) for k, v in raw.items() if v}
        elif isinstance(raw, (list, tuple, set)):
            exhausted = {k for k in raw if isinstance(k, str)}
        else:
            lib_logger.warning(
                f"Ignoring malformed exhausted field of type {type(raw).__name__}"
            )
            exhausted = set()
        return cls(day=str(data.get("day", "")), exhausted=exhausted)


@dataclass(frozen=True)
class TokenStats:
    total: int
    exhausted: int
    active: int

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "exhausted": self.exhausted, "active": self.active}


# =============================================================================
# STORAGE BACKENDS
# =============================================================================


class TokenStatusBackend(ABC):
    """Key-value storage for serialized exhaustion records."""

    @abstractmethod
    async def get(self, storage_key: str) -> Optional[Dict[str, Any]]:
        """Return the stored record for `storage_key`, or None."""

    @abstractmethod
    async def set(self, storage_key: str, record: Dict[str, Any]) -> None:
        """Persist `record` under `storage_key`."""


class InMemoryTokenStatusBackend(TokenStatusBackend):
    """Process-local backend. Exhaustion memory is lost on restart."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self._records: Dict[str, Dict[str, Any]] = copy.deepcopy(initial or {})

    async def get(self, storage_key: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(storage_key)
        return copy.deepcopy(record) if record is not None else None

    async def set(self, storage_key: str, record: Dict[str, Any]) -> None:
        self._records[storage_key] = copy.deepcopy(record)


class JsonFileTokenStatusBackend(TokenStatusBackend):
    """
    Stores all records in one JSON file, keyed by storage key.

    The file is read once, lazily, with aiofiles. Every set() writes the full
    state back immediately through a ResilientStateWriter, so a failing disk
    never fails the request; the state stays in memory and is retried.
    """

    def __init__(self, file_path: Optional[Union[str, Path]] = None):
        self.file_path = Path(file_path) if file_path else get_token_status_file()
        self._data: Optional[Dict[str, Dict[str, Any]]] = None
        self._init_lock = asyncio.Lock()
        self._state_writer = ResilientStateWriter(self.file_path, lib_logger)

    async def _lazy_init(self) -> Dict[str, Dict[str, Any]]:
        async with self._init_lock:
            if self._data is None:
                self._data = await self._load_file()
        return self._data

    async def _load_file(self) -> Dict[str, Dict[str, Any]]:
        if not os.path.exists(self.file_path):
            return {}
        try:
            async with aiofiles.open(self.file_path, "r", encoding="utf-8") as f:
                content = await f.read()
            data = json.loads(content) if content.strip() else {}
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            lib_logger.warning(
                f"Corrupted token status file {self.file_path}: {e}. Starting fresh."
            )
            return {}
        except OSError as e:
            lib_logger.warning(
                f"Cannot read token status file {self.file_path}: {e}. Using empty state."
            )
            return {}
        if not isinstance(data, dict):
            lib_logger.warning(
                f"Unexpected content in {self.file_path}. Starting fresh."
            )
            return {}
        return data

    async def get(self, storage_key: str) -> Optional[Dict[str, Any]]:
        data = await self._lazy_init()
        record = data.get(storage_key)
        return copy.deepcopy(record) if isinstance(record, dict) else None

    async def set(self, storage_key: str, record: Dict[str, Any]) -> None:
        data = await self._lazy_init()
        data[storage_key] = copy.deepcopy(record)
        self._state_writer.write(data)

    @property
    def is_healthy(self) -> bool:
        return self._state_writer.is_healthy


# =============================================================================
# TOKEN STORE
# =============================================================================


class TokenStore:
    """
    Per-provider exhaustion records with a lazy day-rollover reset.

    A stored record whose day differs from the provider's current rotation
    day is treated as absent; nothing is ever deleted. Backend read failures
    degrade to an empty record and write failures are logged, so the store
    never fails a request.
    """

    def __init__(
        self,
        backend: Optional[TokenStatusBackend] = None,
        policies: Optional[Mapping[str, ProviderPolicy]] = None,
        clock: Optional[Clock] = None,
    ):
        self.backend = backend if backend is not None else InMemoryTokenStatusBackend()
        self.policies = policies
        self._clock = clock or _utc_now

    def current_day(self, provider: str) -> str:
        policy = get_policy(provider, self.policies)
        return rotation_day(policy.utc_offset_hours, self._clock())

    async def load(self, provider: str) -> ExhaustionRecord:
        """Return the provider's record for the current rotation day."""
        policy = get_policy(provider, self.policies)
        today = self.current_day(provider)

        try:
            stored = await self.backend.get(policy.storage_key)
        except (OSError, ValueError) as e:
            lib_logger.warning(
                f"Token status for '{provider}' unavailable ({e}); using empty record"
            )
            return ExhaustionRecord(day=today)

        if not stored:
            return ExhaustionRecord(day=today)
        if not isinstance(stored, Mapping):
            lib_logger.warning(
                f"Malformed token status for '{provider}'; using empty record"
            )
            return ExhaustionRecord(day=today)
        record = ExhaustionRecord.from_dict(stored)
        if record.day != today:
            lib_logger.debug(
                f"Token status for '{provider}' is from {record.day or 'unknown day'}, "
                f"treating as reset for {today}"
            )
            return ExhaustionRecord(day=today)
        return record

    async def mark_exhausted(self, provider: str, credential: str) -> ExhaustionRecord:
        """
        Add `credential` to the provider's exhausted set and persist it.

        Marking an already exhausted credential changes nothing.
        """
        record = await self.load(provider)
        if credential in record.exhausted:
            return record

        record.exhausted.add(credential)
        policy = get_policy(provider, self.policies)
        try:
            await self.backend.set(policy.storage_key, record.to_dict())
        except (OSError, TypeError, ValueError) as e:
            lib_logger.warning(
                f"Could not persist exhaustion of {mask_credential(credential)} "
                f"for '{provider}': {e}"
            )
        return record

    async def stats(self, provider: str, raw: Optional[str]) -> TokenStats:
        """Count configured, exhausted and active credentials. Read-only."""
        credentials = parse_credentials(raw)
        record = await self.load(provider)
        total = len(credentials)
        exhausted = sum(1 for c in credentials if c in record.exhausted)
        return TokenStats(total=total, exhausted=exhausted, active=total - exhausted)
