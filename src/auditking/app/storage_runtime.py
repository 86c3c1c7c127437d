from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from auditking.app.data_store import KeyValueStore, create_key_value_store
from auditking.app.identity import SupabaseIdentityClient
from auditking.app.settings_store import (
    DEFAULT_DATA_STORAGE_BACKEND,
    DEFAULT_SUPABASE_PROFILES_TABLE,
    SupabaseSettings,
    load_data_storage_backend,
    load_data_storage_folder,
    load_supabase_settings,
    load_yesno_default,
    normalize_data_storage_backend,
    normalize_supabase_settings,
)


@dataclass(frozen=True, slots=True)
class StorageRuntimeSelection:
    backend: str
    data_root: Path
    key_value_store: KeyValueStore
    yesno_default: str
    identity_client: SupabaseIdentityClient | None = None
    warnings: tuple[str, ...] = ()


def build_storage_runtime(
    *,
    backend: str | None = None,
    data_root: Path | str | None = None,
    yesno_default: str | None = None,
    supabase_settings: SupabaseSettings | None = None,
) -> StorageRuntimeSelection:
    """Resolve where the snapshot lives and which identity provider to use.

    Explicit arguments win over saved settings; Supabase credentials missing
    from settings are taken from the environment.
    """
    normalized_backend = normalize_data_storage_backend(
        backend if backend is not None else load_data_storage_backend(),
        default=DEFAULT_DATA_STORAGE_BACKEND,
    )
    root = Path(data_root) if data_root is not None else load_data_storage_folder()
    normalized_root = _normalize_path(root)
    resolved_supabase = resolve_supabase_settings(
        supabase_settings if supabase_settings is not None else load_supabase_settings()
    )
    warnings: list[str] = []

    identity_client: SupabaseIdentityClient | None = None
    if resolved_supabase.configured:
        identity_client = SupabaseIdentityClient(resolved_supabase)
    else:
        warnings.append(
            "Supabase URL or service role key is missing. "
            "Running with local identities only."
        )

    return StorageRuntimeSelection(
        backend=normalized_backend,
        data_root=normalized_root,
        key_value_store=create_key_value_store(normalized_backend, normalized_root),
        yesno_default=yesno_default or load_yesno_default(),
        identity_client=identity_client,
        warnings=tuple(warnings),
    )


def resolve_supabase_settings(value: SupabaseSettings | None) -> SupabaseSettings:
    stored = normalize_supabase_settings(value)
    env = os.environ

    url = stored.url or _first_env(
        env,
        (
            "AUDITKING_SUPABASE_URL",
            "SUPABASE_URL",
            "VITE_SUPABASE_URL",
        ),
    )
    service_role_key = stored.service_role_key or _first_env(
        env,
        (
            "AUDITKING_SUPABASE_SERVICE_ROLE",
            "SUPABASE_SERVICE_ROLE",
            "SUPABASE_SERVICE_ROLE_KEY",
        ),
    )

    return normalize_supabase_settings(
        {
            "url": url,
            "service_role_key": service_role_key,
            "profiles_table": stored.profiles_table or DEFAULT_SUPABASE_PROFILES_TABLE,
        }
    )


def _first_env(values: Mapping[str, str], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = str(values.get(key, "") or "").strip()
        if value:
            return value
    return ""


def _normalize_path(path: Path) -> Path:
    expanded = path.expanduser()
    try:
        return expanded.resolve()
    except OSError:
        return expanded
