"""Atomic file writes and tolerant reads for settings and exports.

Settings files may be read by the API while the CLI rewrites them, so every
write goes through a temp file + ``os.replace``. Reads take a shared lock
where ``fcntl`` exists.
"""
import json
import os
from pathlib import Path
from typing import Any

from .logging_utils import logger

# fcntl is Unix-only; on Windows the atomic rename is the only guard.
try:
    import fcntl
    HAS_FLOCK = True
except ImportError:
    HAS_FLOCK = False


def _replace(tmp_path: Path, path: Path) -> None:
    try:
        os.replace(tmp_path, path)
    except OSError:
        # Windows can refuse to replace an open target
        if path.exists():
            path.unlink()
        os.rename(tmp_path, path)


def atomic_write_text(path: Path, text: str, *, encoding: str = 'utf-8') -> None:
    """Write text atomically using temp file + rename.

    Args:
        path: Target file path
        text: Full file content
        encoding: File encoding (default: utf-8)

    Raises:
        OSError: If the write or rename fails
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + '.tmp')

    try:
        with open(tmp_path, 'w', encoding=encoding, newline='') as f:
            if HAS_FLOCK:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        _replace(tmp_path, path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def atomic_write_json(path: Path, data: Any, *, encoding: str = 'utf-8') -> None:
    """Serialize ``data`` as indented JSON and write it atomically."""
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + '\n', encoding=encoding)


def safe_read_json(path: Path, default: Any = None, *, encoding: str = 'utf-8') -> Any:
    """Read JSON, returning ``default`` when the file is missing or unreadable.

    Args:
        path: File path to read
        default: Value returned on error (default: None)
        encoding: File encoding (default: utf-8)

    Returns:
        Parsed JSON data, or default if read/parse fails
    """
    path = Path(path)
    if not path.exists():
        return default

    try:
        with open(path, 'r', encoding=encoding) as f:
            if HAS_FLOCK:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warn("json_read_failed", path=str(path), error=str(e))
        return default
