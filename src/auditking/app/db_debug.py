from __future__ import annotations

import itertools
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock


_DB_DEBUG_ENV = "AUDITKING_DB_DEBUG"
_DB_DEBUG_LOG_ENV = "AUDITKING_DB_DEBUG_LOG"
_REDACTED_VALUE = "<redacted>"
_REDACTED_KEYS = frozenset(
    {
        "access_token",
        "api_key",
        "apikey",
        "authorization",
        "password",
        "secret",
        "service_role",
        "service_role_key",
        "token",
    }
)
_TRUTHY = frozenset({"1", "true", "yes", "on", "y"})
_LOCK = Lock()
_SEQUENCE = itertools.count(1)
_LOGGER = logging.getLogger("auditking.db")


def db_debug_enabled() -> bool:
    return str(os.getenv(_DB_DEBUG_ENV, "") or "").strip().casefold() in _TRUTHY


def db_debug(event: str, **payload: object) -> None:
    """Trace a storage or identity event as one JSON line.

    Lines always go to the ``auditking.db`` logger at DEBUG level. With
    ``AUDITKING_DB_DEBUG`` set they are also appended to the file named by
    ``AUDITKING_DB_DEBUG_LOG``, or to stderr when no file is configured.
    """
    enabled = db_debug_enabled()
    if not enabled and not _LOGGER.isEnabledFor(logging.DEBUG):
        return
    line = json.dumps(trace_record(event, payload), ensure_ascii=True, default=str)
    _LOGGER.debug(line)
    if not enabled:
        return
    target = str(os.getenv(_DB_DEBUG_LOG_ENV, "") or "").strip()
    if target and _append_line(Path(target).expanduser(), line):
        return
    try:
        sys.stderr.write(f"[db-debug] {line}\n")
        sys.stderr.flush()
    except (OSError, ValueError):
        pass


def trace_record(event: str, payload: dict[str, object]) -> dict[str, object]:
    with _LOCK:
        sequence = next(_SEQUENCE)
    return {
        "seq": sequence,
        "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
        "event": str(event or "").strip() or "unknown",
        "data": redact(payload),
    }


def redact(value: object) -> object:
    """Mask credential-looking keys at any depth."""
    if isinstance(value, dict):
        return {
            str(key): _REDACTED_VALUE
            if str(key or "").strip().casefold() in _REDACTED_KEYS
            else redact(raw)
            for key, raw in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(entry) for entry in value]
    if isinstance(value, (set, frozenset)):
        return [redact(entry) for entry in sorted(value, key=str)]
    return value


def _append_line(destination: Path, line: str) -> bool:
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with destination.open("a", encoding="utf-8") as handle:
            handle.write(f"{line}\n")
    except OSError:
        return False
    return True
