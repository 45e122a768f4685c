"""Structured logging for the service matcher.

Events are logged by name with keyword fields, e.g.
``logger.info("tabular_enrichment_done", records=12, tables=2)``.
Output is one JSON object per line when stdout is not a terminal (CI,
containers, log shippers) and a colored ``key=value`` line on a terminal.
"""
import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO


LEVELS = {'DEBUG': 0, 'INFO': 1, 'WARN': 2, 'ERROR': 3}

_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARN': '\033[33m',
    'ERROR': '\033[31m',
}
_RESET = '\033[0m'


class StructuredLogger:
    """Event logger that writes JSON lines in production, readable text in dev."""

    def __init__(self, level: str = 'INFO', fmt: Optional[str] = None):
        """Initialize logger.

        Args:
            level: Minimum log level (DEBUG, INFO, WARN, ERROR)
            fmt: Force ``json`` or ``text``; autodetected from the TTY when None
        """
        self.level = level.upper() if level.upper() in LEVELS else 'INFO'
        if fmt in ('json', 'text'):
            self._as_text = fmt == 'text'
        else:
            self._as_text = sys.stdout.isatty()

    def set_level(self, level: str) -> None:
        level = (level or '').upper()
        if level in LEVELS:
            self.level = level

    def is_enabled(self, level: str) -> bool:
        return LEVELS.get(level.upper(), 1) >= LEVELS[self.level]

    def _stream(self, level: str) -> TextIO:
        return sys.stderr if level in ('WARN', 'ERROR') else sys.stdout

    def _format_text(self, level: str, event: str, fields: dict) -> str:
        parts = [f"{_COLORS.get(level, '')}[{level}]{_RESET} {event}"]
        kv_parts = []
        for k, v in fields.items():
            if isinstance(v, (dict, list, tuple)):
                v = json.dumps(v, default=str)[:100]
            kv_parts.append(f"{k}={v}")
        if kv_parts:
            parts.append("| " + " ".join(kv_parts))
        return " ".join(parts)

    def _log(self, level: str, event: str, **fields: Any) -> None:
        level = level.upper()
        if not self.is_enabled(level):
            return

        if self._as_text:
            line = self._format_text(level, event, fields)
        else:
            entry = {
                'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                'level': level,
                'msg': event,
                **fields,
            }
            line = json.dumps(entry, default=str)

        print(line, file=self._stream(level))

    def debug(self, event: str, **fields: Any) -> None:
        self._log('DEBUG', event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._log('INFO', event, **fields)

    def warn(self, event: str, **fields: Any) -> None:
        self._log('WARN', event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._log('ERROR', event, **fields)


# Shared logger; LOG_LEVEL and LOG_FORMAT are read once at import time.
logger = StructuredLogger(
    level=os.getenv('LOG_LEVEL', 'INFO'),
    fmt=(os.getenv('LOG_FORMAT') or '').strip().lower() or None,
)
