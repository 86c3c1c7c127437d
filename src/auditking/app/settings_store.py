from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from auditking.app.inspection_engine import YESNO_DEFAULT_PASS, normalize_yesno_default


_APP_DIRNAME = "auditking"
_SETTINGS_FILE_NAME = "settings.json"
_SETTINGS_PATH_ENV = "AUDITKING_SETTINGS_PATH"
_DATA_FOLDER_KEY = "dataStorageFolder"
_BACKEND_KEY = "dataStorageBackend"
_YESNO_DEFAULT_KEY = "yesnoDefault"
_SUPABASE_KEYS = {
    "url": "supabaseUrl",
    "service_role_key": "supabaseServiceRoleKey",
    "profiles_table": "supabaseProfilesTable",
}
DEFAULT_DATA_STORAGE_BACKEND = "local_sqlite"
SUPPORTED_DATA_STORAGE_BACKENDS: tuple[str, ...] = ("local_sqlite", "local_json")
DEFAULT_SUPABASE_PROFILES_TABLE = "profiles"


def app_root() -> Path:
    """Folder beside the frozen executable, or the source checkout root."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[3]


@dataclass(frozen=True, slots=True)
class SupabaseSettings:
    url: str = ""
    service_role_key: str = ""
    profiles_table: str = DEFAULT_SUPABASE_PROFILES_TABLE

    @property
    def configured(self) -> bool:
        return bool(self.url) and bool(self.service_role_key)

    def to_mapping(self, *, redact_key: bool = False) -> dict[str, str]:
        masked = "********" if redact_key and self.service_role_key else self.service_role_key
        return {"url": self.url, "service_role_key": masked, "profiles_table": self.profiles_table}


def settings_path() -> Path:
    """Where user settings live.

    ``AUDITKING_SETTINGS_PATH`` wins; otherwise the platform config folder,
    falling back to ``<app root>/config`` when none is known.
    """
    override = _env_text(_SETTINGS_PATH_ENV)
    if override:
        return Path(override).expanduser()
    folders = _config_folder_candidates()
    if folders:
        return folders[0] / _SETTINGS_FILE_NAME
    return app_root() / "config" / _SETTINGS_FILE_NAME


def load_settings() -> dict[str, Any]:
    try:
        data = json.loads(settings_path().read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def save_settings(settings: Mapping[str, Any]) -> None:
    path = settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(dict(settings), indent=2), encoding="utf-8")


def default_data_storage_folder() -> Path:
    return (app_root() / "data").resolve()


def normalize_data_storage_folder(value: str | Path | None, *, default: Path | None = None) -> Path:
    text = str(value).strip() if isinstance(value, (str, Path)) else ""
    if text:
        candidate = Path(text)
    else:
        candidate = Path(default) if default is not None else default_data_storage_folder()
    candidate = candidate.expanduser()
    if not candidate.is_absolute():
        candidate = app_root() / candidate
    try:
        return candidate.resolve()
    except OSError:
        return candidate


def load_data_storage_folder(default: Path | None = None) -> Path:
    return normalize_data_storage_folder(_stored_text(_DATA_FOLDER_KEY), default=default)


def save_data_storage_folder(value: str | Path | None) -> Path:
    resolved = normalize_data_storage_folder(value)
    _update_settings({_DATA_FOLDER_KEY: str(resolved)})
    return resolved


def normalize_data_storage_backend(value: str | None, *, default: str = DEFAULT_DATA_STORAGE_BACKEND) -> str:
    for candidate in (value, default):
        token = str(candidate or "").strip().lower()
        if token in SUPPORTED_DATA_STORAGE_BACKENDS:
            return token
    return DEFAULT_DATA_STORAGE_BACKEND


def load_data_storage_backend(default: str = DEFAULT_DATA_STORAGE_BACKEND) -> str:
    return normalize_data_storage_backend(_stored_text(_BACKEND_KEY), default=default)


def save_data_storage_backend(value: str) -> str:
    resolved = normalize_data_storage_backend(value)
    _update_settings({_BACKEND_KEY: resolved})
    return resolved


def load_yesno_default(default: str = YESNO_DEFAULT_PASS) -> str:
    return normalize_yesno_default(_stored_text(_YESNO_DEFAULT_KEY) or default)


def save_yesno_default(value: str) -> str:
    resolved = normalize_yesno_default(value)
    _update_settings({_YESNO_DEFAULT_KEY: resolved})
    return resolved


def normalize_supabase_settings(value: SupabaseSettings | Mapping[str, Any] | None) -> SupabaseSettings:
    if isinstance(value, SupabaseSettings):
        source: Mapping[str, Any] = value.to_mapping()
    elif isinstance(value, Mapping):
        source = value
    else:
        source = {}
    return SupabaseSettings(
        url=str(source.get("url") or "").strip().rstrip("/"),
        service_role_key=str(source.get("service_role_key") or "").strip(),
        profiles_table=str(source.get("profiles_table") or "").strip() or DEFAULT_SUPABASE_PROFILES_TABLE,
    )


def load_supabase_settings(default: SupabaseSettings | None = None) -> SupabaseSettings:
    fallback = normalize_supabase_settings(default).to_mapping()
    stored = load_settings()
    return normalize_supabase_settings(
        {field: stored.get(key, fallback[field]) for field, key in _SUPABASE_KEYS.items()}
    )


def save_supabase_settings(value: SupabaseSettings | Mapping[str, Any]) -> SupabaseSettings:
    normalized = normalize_supabase_settings(value)
    values = normalized.to_mapping()
    _update_settings({key: values[field] for field, key in _SUPABASE_KEYS.items()})
    return normalized


def _config_folder_candidates() -> list[Path]:
    if os.name == "nt":
        roots = [_env_text("APPDATA"), _env_text("LOCALAPPDATA")]
        return [Path(root) / _APP_DIRNAME / "config" for root in roots if root]
    folders: list[Path] = []
    xdg_config_home = _env_text("XDG_CONFIG_HOME")
    if xdg_config_home:
        folders.append(Path(xdg_config_home) / _APP_DIRNAME)
    home = _env_text("HOME")
    if home:
        folders.append(Path(home) / ".config" / _APP_DIRNAME)
    return folders


def _env_text(name: str) -> str:
    return str(os.environ.get(name, "") or "").strip()


def _stored_text(key: str) -> str:
    value = load_settings().get(key)
    return value.strip() if isinstance(value, str) else ""


def _update_settings(values: Mapping[str, Any]) -> None:
    settings = load_settings()
    settings.update(values)
    save_settings(settings)
