import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .error_handler import ClassifiedError, mask_credential
from .utils.paths import get_logs_dir


class JsonFormatter(logging.Formatter):
    """Formats dict messages as one JSON object per line."""

    def format(self, record):
        return json.dumps(record.msg, ensure_ascii=False)


# Module-level state for lazy initialization
_rotation_logger: Optional[logging.Logger] = None
_configured_logs_dir: Optional[Path] = None


def configure_rotation_logger(logs_dir: Optional[Union[Path, str]] = None) -> None:
    """
    Point the rotation log at a specific logs directory.

    Call this before first use to override the default location. If not
    called, get_logs_dir() is used on first use.
    """
    global _configured_logs_dir, _rotation_logger
    _configured_logs_dir = Path(logs_dir) if logs_dir else None
    if _rotation_logger is not None:
        for handler in list(_rotation_logger.handlers):
            handler.close()
            _rotation_logger.removeHandler(handler)
    # Reconfigured on next use
    _rotation_logger = None


def _setup_rotation_logger(logs_dir: Path) -> logging.Logger:
    logger = logging.getLogger("token_rotator.rotations")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger.handlers.clear()

    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            logs_dir / "rotations.log",
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=2,
            encoding="utf-8",
        )
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    except OSError as e:
        logging.getLogger("token_rotator").warning(
            f"Cannot create rotation log file handler: {e}"
        )
        logger.addHandler(logging.NullHandler())

    return logger


def get_rotation_logger() -> logging.Logger:
    """Get the rotation logger, initializing it lazily if needed."""
    global _rotation_logger

    if _rotation_logger is None:
        logs_dir = _configured_logs_dir if _configured_logs_dir else get_logs_dir()
        _rotation_logger = _setup_rotation_logger(logs_dir)

    return _rotation_logger


main_lib_logger = logging.getLogger("token_rotator")


def log_rotation(
    provider: str,
    credential: str,
    attempt: int,
    max_attempts: int,
    classified: ClassifiedError,
) -> None:
    """
    Record a quota-triggered credential switch.

    Writes a JSON line to rotations.log and a one-line warning to the library
    logger. Only the masked credential is ever written.
    """
    error = classified.original_exception
    masked = mask_credential(credential)

    record = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "provider": provider,
        "credential_ending": masked,
        "attempt_number": attempt,
        "max_attempts": max_attempts,
        "error_type": type(error).__name__,
        "classified_as": classified.error_type,
        "status_code": classified.status_code,
        "error_message": str(error)[:2000],
    }

    try:
        get_rotation_logger().info(record)
    except OSError as e:
        main_lib_logger.warning(f"Failed to write to rotations.log: {e}")

    main_lib_logger.warning(
        f"{provider} credential {masked} exhausted "
        f"(attempt {attempt}/{max_attempts}, {type(error).__name__}). "
        f"Switching to next credential."
    )
