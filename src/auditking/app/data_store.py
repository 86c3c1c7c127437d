from __future__ import annotations

import json
import os
import re
import shutil
import sqlite3
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Callable, Protocol

from auditking.app.checklist_models import AuditDataBundle, build_seed_bundle
from auditking.app.db_debug import db_debug
from auditking.app.errors import StorageFault


BACKEND_LOCAL_SQLITE = "local_sqlite"
BACKEND_LOCAL_JSON = "local_json"
BACKEND_MEMORY = "memory"
SNAPSHOT_STORAGE_KEY = "audit-king-local-v3"
DEFAULT_SQLITE_FILE_NAME = "auditking_data.sqlite3"
_SCHEMA_VERSION = 3
_APP_ID = "auditking"
_LOCAL_SQLITE_TABLE = "kv_store"
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True, slots=True)
class SnapshotLoadResult:
    bundle: AuditDataBundle
    source: str = "primary"
    warning: str = ""


class KeyValueStore(Protocol):
    backend: str

    def get(self, key: str) -> bytes | None:
        raise NotImplementedError

    def get_backup(self, key: str) -> bytes | None:
        raise NotImplementedError

    def set(self, key: str, data: bytes) -> None:
        raise NotImplementedError


class MemoryKeyValueStore:
    backend = BACKEND_MEMORY

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._values: dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> bytes | None:
        return self._values.get(key)

    def get_backup(self, key: str) -> bytes | None:
        return None

    def set(self, key: str, data: bytes) -> None:
        self._values[key] = bytes(data)


class LocalJsonKeyValueStore:
    """One JSON file per key, replaced atomically with a ``.bak`` copy of the previous value."""

    backend = BACKEND_LOCAL_JSON

    def __init__(self, data_root: Path | str) -> None:
        self.data_root = _normalize_path(Path(data_root))

    def file_path(self, key: str) -> Path:
        safe_key = _UNSAFE_KEY_CHARS.sub("_", key).strip("._") or "state"
        return self.data_root / f"{safe_key}.json"

    def backup_file_path(self, key: str) -> Path:
        storage_file = self.file_path(key)
        return storage_file.with_suffix(f"{storage_file.suffix}.bak")

    def get(self, key: str) -> bytes | None:
        return self._read(self.file_path(key))

    def get_backup(self, key: str) -> bytes | None:
        return self._read(self.backup_file_path(key))

    def set(self, key: str, data: bytes) -> None:
        target_path = self.file_path(key)
        backup_path = self.backup_file_path(key)
        try:
            self.data_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageFault(f"Could not create data folder {self.data_root}: {exc}") from exc

        if target_path.exists():
            try:
                shutil.copy2(target_path, backup_path)
            except OSError as exc:
                db_debug("json.backup.error", path=str(backup_path), error=str(exc))

        try:
            fd, temp_path = tempfile.mkstemp(
                prefix=f"{target_path.stem}.",
                suffix=".tmp",
                dir=str(self.data_root),
            )
        except OSError as exc:
            raise StorageFault(f"Could not write {target_path}: {exc}") from exc
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, target_path)
        except OSError as exc:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise StorageFault(f"Could not write {target_path}: {exc}") from exc

    @staticmethod
    def _read(path: Path) -> bytes | None:
        if not path.exists() or not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageFault(f"Could not read {path}: {exc}") from exc


class LocalSqliteKeyValueStore:
    """Key-value rows in a local SQLite file.

    Keys missing from SQLite are looked up in JSON files of the same folder
    (the older ``local_json`` layout) and copied over on first read.
    """

    backend = BACKEND_LOCAL_SQLITE

    def __init__(
        self,
        data_root: Path | str,
        *,
        sqlite_file_name: str = DEFAULT_SQLITE_FILE_NAME,
    ) -> None:
        self.data_root = _normalize_path(Path(data_root))
        self._sqlite_file_name = str(sqlite_file_name or DEFAULT_SQLITE_FILE_NAME).strip()
        if not self._sqlite_file_name:
            self._sqlite_file_name = DEFAULT_SQLITE_FILE_NAME
        self._legacy_json_store = LocalJsonKeyValueStore(self.data_root)

    @property
    def storage_file_path(self) -> Path:
        return self.data_root / self._sqlite_file_name

    def get(self, key: str) -> bytes | None:
        started_at = perf_counter()
        value: bytes | None = None
        if self.storage_file_path.exists():
            try:
                with self._connect() as connection:
                    self._ensure_schema(connection)
                    row = connection.execute(
                        f"select payload from {_LOCAL_SQLITE_TABLE} where key = ? limit 1",
                        (key,),
                    ).fetchone()
            except (sqlite3.Error, OSError) as exc:
                db_debug("sqlite.get.error", path=str(self.storage_file_path), key=key, error=str(exc))
                raise StorageFault(f"SQLite data file could not be read: {exc}") from exc
            if row is not None:
                raw = row[0]
                value = raw.encode("utf-8") if isinstance(raw, str) else bytes(raw)

        if value is None:
            value = self._migrate_legacy_json(key)
        db_debug(
            "sqlite.get",
            key=key,
            found=value is not None,
            duration_ms=elapsed_ms(started_at),
        )
        return value

    def get_backup(self, key: str) -> bytes | None:
        return None

    def set(self, key: str, data: bytes) -> None:
        started_at = perf_counter()
        saved_at_utc = datetime.now(timezone.utc).isoformat(timespec="seconds")
        try:
            with self._connect() as connection:
                self._ensure_schema(connection)
                connection.execute(
                    (
                        f"insert into {_LOCAL_SQLITE_TABLE} (key, saved_at_utc, payload) "
                        "values (?, ?, ?) "
                        "on conflict(key) do update set "
                        "saved_at_utc = excluded.saved_at_utc, "
                        "payload = excluded.payload"
                    ),
                    (key, saved_at_utc, sqlite3.Binary(data)),
                )
                connection.commit()
        except (sqlite3.Error, OSError) as exc:
            db_debug(
                "sqlite.set.error",
                path=str(self.storage_file_path),
                key=key,
                bytes=len(data),
                error=str(exc),
            )
            raise StorageFault(f"SQLite data file could not be written: {exc}") from exc
        db_debug(
            "sqlite.set",
            key=key,
            bytes=len(data),
            duration_ms=elapsed_ms(started_at),
        )

    def _migrate_legacy_json(self, key: str) -> bytes | None:
        try:
            legacy = self._legacy_json_store.get(key)
        except StorageFault as exc:
            db_debug("sqlite.migrate_json.read_error", key=key, error=str(exc))
            return None
        if legacy is None:
            return None
        try:
            self.set(key, legacy)
        except StorageFault as exc:
            db_debug("sqlite.migrate_json.error", key=key, error=str(exc))
        else:
            db_debug(
                "sqlite.migrate_json",
                json_path=str(self._legacy_json_store.file_path(key)),
                sqlite_path=str(self.storage_file_path),
            )
        return legacy

    def _connect(self) -> sqlite3.Connection:
        self.data_root.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(self.storage_file_path), timeout=4.0)

    def _ensure_schema(self, connection: sqlite3.Connection) -> None:
        connection.execute(
            f"""
            create table if not exists {_LOCAL_SQLITE_TABLE} (
                key text primary key,
                saved_at_utc text not null,
                payload blob not null
            )
            """
        )


def create_key_value_store(backend: str, data_root: Path | str) -> KeyValueStore:
    normalized_backend = str(backend or "").strip().lower()
    if normalized_backend == BACKEND_LOCAL_JSON:
        return LocalJsonKeyValueStore(data_root)
    if normalized_backend == BACKEND_MEMORY:
        return MemoryKeyValueStore()
    return LocalSqliteKeyValueStore(data_root)


def encode_snapshot(bundle: AuditDataBundle, *, backend: str) -> bytes:
    payload = {
        "app": _APP_ID,
        "schemaVersion": _SCHEMA_VERSION,
        "backend": str(backend or "").strip(),
        "savedAtUtc": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "data": bundle.to_payload(),
    }
    try:
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise StorageFault(f"Snapshot could not be encoded: {exc}") from exc


def decode_snapshot(raw: bytes) -> AuditDataBundle:
    """Parse stored bytes into a bundle; raises ``ValueError`` when the content is unusable."""
    payload = json.loads(raw.decode("utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Storage payload must be a JSON object.")
    data_payload = payload.get("data")
    bundle = AuditDataBundle.from_payload(data_payload if isinstance(data_payload, dict) else payload)
    if not bundle.users:
        raise ValueError("Storage payload has no users.")
    return bundle


def load_snapshot(
    store: KeyValueStore,
    *,
    key: str = SNAPSHOT_STORAGE_KEY,
    seed_factory: Callable[[], AuditDataBundle] = build_seed_bundle,
) -> SnapshotLoadResult:
    """Read the persisted snapshot, recovering from backup or seed data; never raises."""
    try:
        primary = store.get(key)
    except Exception as exc:
        warning = f"Stored data could not be read: {exc}."
        db_debug("snapshot.load.read_error", backend=store.backend, error=str(exc))
        return SnapshotLoadResult(bundle=seed_factory(), source="seed", warning=warning)

    if primary is None:
        db_debug("snapshot.load", backend=store.backend, source="seed")
        return SnapshotLoadResult(bundle=seed_factory(), source="seed")

    try:
        bundle = decode_snapshot(primary)
        db_debug("snapshot.load", backend=store.backend, source="primary", bytes=len(primary))
        return SnapshotLoadResult(bundle=bundle, source="primary")
    except Exception as primary_error:
        db_debug("snapshot.load.payload_invalid", backend=store.backend, error=str(primary_error))
        try:
            backup = store.get_backup(key)
        except Exception as backup_error:
            backup = None
            db_debug("snapshot.load.backup_read_error", backend=store.backend, error=str(backup_error))
        if backup is not None:
            try:
                bundle = decode_snapshot(backup)
                warning = "Stored data could not be read; recovered from backup copy."
                return SnapshotLoadResult(bundle=bundle, source="backup", warning=warning)
            except Exception as backup_error:
                warning = (
                    "Stored data and its backup could not be read. "
                    f"Primary error: {primary_error}. Backup error: {backup_error}."
                )
                return SnapshotLoadResult(bundle=seed_factory(), source="seed", warning=warning)
        warning = f"Stored data could not be read: {primary_error}."
        return SnapshotLoadResult(bundle=seed_factory(), source="seed", warning=warning)


def save_snapshot(
    store: KeyValueStore,
    bundle: AuditDataBundle,
    *,
    key: str = SNAPSHOT_STORAGE_KEY,
) -> None:
    store.set(key, encode_snapshot(bundle, backend=store.backend))


def elapsed_ms(started_at: float) -> float:
    return round((perf_counter() - started_at) * 1000.0, 2)


def _normalize_path(path: Path) -> Path:
    expanded = path.expanduser()
    try:
        return expanded.resolve()
    except OSError:
        return expanded
