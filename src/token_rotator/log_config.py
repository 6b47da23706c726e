"""
Application-level logging setup.

The library itself only logs to `logging.getLogger("token_rotator")` and never
installs handlers beyond a NullHandler. Applications call configure_logging()
once at startup to get:

- a colored console handler (INFO and above)
- logs/token_rotator.log with INFO and above
- logs/token_rotator_debug.log with DEBUG records from this library only
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

import colorlog

from .utils.paths import get_logs_dir

_installed_handlers: List[logging.Handler] = []


class RotatorDebugFilter(logging.Filter):
    """Lets through DEBUG records from the token_rotator loggers only."""

    def filter(self, record):
        return record.levelno == logging.DEBUG and record.name.startswith(
            "token_rotator"
        )


class NoLiteLLMLogFilter(logging.Filter):
    def filter(self, record):
        return not record.name.startswith("LiteLLM")


def configure_logging(
    logs_dir: Optional[Union[Path, str]] = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Install console and file handlers. Safe to call more than once; handlers
    from a previous call are replaced.

    Returns:
        The library logger
    """
    logs_dir = Path(logs_dir) if logs_dir else get_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)

    lib_logger = logging.getLogger("token_rotator")
    root_logger = logging.getLogger()

    for handler in _installed_handlers:
        root_logger.removeHandler(handler)
        lib_logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    console_handler = colorlog.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )
    console_handler.addFilter(NoLiteLLMLogFilter())

    file_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    info_file_handler = logging.FileHandler(
        logs_dir / "token_rotator.log", encoding="utf-8"
    )
    info_file_handler.setLevel(logging.INFO)
    info_file_handler.setFormatter(file_format)

    debug_file_handler = logging.FileHandler(
        logs_dir / "token_rotator_debug.log", encoding="utf-8"
    )
    debug_file_handler.setLevel(logging.DEBUG)
    debug_file_handler.setFormatter(file_format)
    debug_file_handler.addFilter(RotatorDebugFilter())

    handlers = [console_handler, info_file_handler, debug_file_handler]
    root_logger.setLevel(logging.DEBUG)
    for handler in handlers:
        root_logger.addHandler(handler)
        # The library logger does not propagate, so it gets the handlers too
        lib_logger.addHandler(handler)
        _installed_handlers.append(handler)
    lib_logger.setLevel(logging.DEBUG)

    logging.getLogger("httpx").setLevel(logging.WARNING)

    # LiteLLM logs through its own logger; keep it off the console
    litellm_logger = logging.getLogger("LiteLLM")
    litellm_logger.handlers = []
    litellm_logger.propagate = False

    return lib_logger
