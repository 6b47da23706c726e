# src/token_rotator/timeout_config.py
"""
Centralized timeout and polling configuration.

All values can be overridden via environment variables:
    TIMEOUT_CONNECT - Connection establishment timeout (default: 30s)
    TIMEOUT_WRITE - Request body send timeout (default: 30s)
    TIMEOUT_POOL - Connection pool acquisition timeout (default: 60s)
    TIMEOUT_READ - Read timeout for provider responses (default: 300s)
    TASK_POLL_INTERVAL - Seconds between async task status checks (default: 2s)
    TASK_POLL_MAX_ATTEMPTS - Status checks before giving up (default: 60)
"""

import logging
import os

import httpx

lib_logger = logging.getLogger("token_rotator")


class TimeoutConfig:
    """
    Centralized timeout configuration for provider requests.

    All values can be overridden via environment variables.
    """

    _CONNECT = 30.0
    _WRITE = 30.0
    _POOL = 60.0
    # Gradio queues and image generation can take minutes
    _READ = 300.0
    _POLL_INTERVAL = 2.0
    _POLL_MAX_ATTEMPTS = 60

    @classmethod
    def _get_env_float(cls, key: str, default: float) -> float:
        """Get a float value from environment variable, or return default."""
        value = os.environ.get(key)
        if value is not None:
            try:
                return float(value)
            except ValueError:
                lib_logger.warning(
                    f"Invalid value for {key}: {value}. Using default: {default}"
                )
        return default

    @classmethod
    def _get_env_int(cls, key: str, default: int) -> int:
        value = os.environ.get(key)
        if value is not None:
            try:
                parsed = int(value)
                if parsed > 0:
                    return parsed
            except ValueError:
                pass
            lib_logger.warning(
                f"Invalid value for {key}: {value}. Using default: {default}"
            )
        return default

    @classmethod
    def connect(cls) -> float:
        return cls._get_env_float("TIMEOUT_CONNECT", cls._CONNECT)

    @classmethod
    def write(cls) -> float:
        return cls._get_env_float("TIMEOUT_WRITE", cls._WRITE)

    @classmethod
    def pool(cls) -> float:
        return cls._get_env_float("TIMEOUT_POOL", cls._POOL)

    @classmethod
    def read(cls) -> float:
        return cls._get_env_float("TIMEOUT_READ", cls._READ)

    @classmethod
    def poll_interval(cls) -> float:
        """Seconds to wait before each async task status check."""
        return cls._get_env_float("TASK_POLL_INTERVAL", cls._POLL_INTERVAL)

    @classmethod
    def poll_max_attempts(cls) -> int:
        """Number of status checks before an async task counts as timed out."""
        return cls._get_env_int("TASK_POLL_MAX_ATTEMPTS", cls._POLL_MAX_ATTEMPTS)

    @classmethod
    def httpx_timeout(cls) -> httpx.Timeout:
        """Timeout object for the shared httpx.AsyncClient."""
        return httpx.Timeout(
            connect=cls.connect(),
            read=cls.read(),
            write=cls.write(),
            pool=cls.pool(),
        )
