"""
Where the token rotator keeps its files.

The data root is the directory of a frozen (PyInstaller) executable, or the
current working directory otherwise. It holds `.env`, `token_status.json`
and the `logs/` directory.
"""

import os
import sys
from pathlib import Path


def get_default_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    return Path.cwd()


def get_logs_dir() -> Path:
    """`<root>/logs`, created on first use."""
    logs_dir = get_default_root() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def get_token_status_file() -> Path:
    """
    JSON file holding per-provider exhaustion records.

    TOKEN_STATUS_FILE overrides the default `<root>/token_status.json`.
    """
    override = os.environ.get("TOKEN_STATUS_FILE")
    if override:
        return Path(override).expanduser()
    return get_default_root() / "token_status.json"
