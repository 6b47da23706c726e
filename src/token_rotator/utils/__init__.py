# src/token_rotator/utils/__init__.py

from .paths import (
    get_default_root,
    get_logs_dir,
    get_token_status_file,
)
from .resilient_io import ResilientStateWriter, atomic_write_text

__all__ = [
    "get_default_root",
    "get_logs_dir",
    "get_token_status_file",
    "ResilientStateWriter",
    "atomic_write_text",
]
