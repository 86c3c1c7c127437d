"""Tests for persisted settings and storage runtime resolution."""

import json

from auditking.app.data_store import LocalJsonKeyValueStore, LocalSqliteKeyValueStore
from auditking.app.identity import SupabaseIdentityClient
from auditking.app.settings_store import (
    SupabaseSettings,
    load_data_storage_backend,
    load_supabase_settings,
    load_yesno_default,
    save_data_storage_backend,
    save_data_storage_folder,
    save_supabase_settings,
    save_yesno_default,
    settings_path,
)
from auditking.app.storage_runtime import build_storage_runtime, resolve_supabase_settings


class TestSettingsStore:
    def test_path_override(self, isolated_settings):
        assert settings_path() == isolated_settings

    def test_defaults_without_file(self):
        assert load_data_storage_backend() == "local_sqlite"
        assert load_yesno_default() == "pass"
        assert not load_supabase_settings().configured

    def test_values_persist(self, isolated_settings, tmp_path):
        save_data_storage_backend("LOCAL_JSON")
        save_yesno_default("fail")
        folder = save_data_storage_folder(tmp_path / "audits")

        stored = json.loads(isolated_settings.read_text(encoding="utf-8"))
        assert stored["dataStorageBackend"] == "local_json"
        assert stored["yesnoDefault"] == "fail"
        assert stored["dataStorageFolder"] == str(folder)
        assert load_data_storage_backend() == "local_json"
        assert load_yesno_default() == "fail"

    def test_unknown_values_fall_back(self, isolated_settings):
        isolated_settings.parent.mkdir(parents=True, exist_ok=True)
        isolated_settings.write_text(
            json.dumps({"dataStorageBackend": "mongo", "yesnoDefault": "maybe"}),
            encoding="utf-8",
        )

        assert load_data_storage_backend() == "local_sqlite"
        assert load_yesno_default() == "pass"

    def test_corrupt_settings_file_is_ignored(self, isolated_settings):
        isolated_settings.parent.mkdir(parents=True, exist_ok=True)
        isolated_settings.write_text("{oops", encoding="utf-8")

        assert load_data_storage_backend() == "local_sqlite"

    def test_supabase_settings(self):
        saved = save_supabase_settings({"url": "https://demo.supabase.co/ ", "service_role_key": " key "})

        assert saved == SupabaseSettings(url="https://demo.supabase.co", service_role_key="key")
        assert load_supabase_settings() == saved
        assert saved.to_mapping(redact_key=True)["service_role_key"] == "********"


class TestStorageRuntime:
    def test_explicit_arguments_win(self, tmp_path):
        runtime = build_storage_runtime(backend="local_json", data_root=tmp_path, yesno_default="unanswered")

        assert runtime.backend == "local_json"
        assert isinstance(runtime.key_value_store, LocalJsonKeyValueStore)
        assert runtime.data_root == tmp_path.resolve()
        assert runtime.yesno_default == "unanswered"
        assert runtime.identity_client is None
        assert runtime.warnings

    def test_saved_settings_are_used(self, tmp_path):
        save_data_storage_backend("local_sqlite")
        save_data_storage_folder(tmp_path / "saved")
        save_yesno_default("fail")

        runtime = build_storage_runtime()

        assert isinstance(runtime.key_value_store, LocalSqliteKeyValueStore)
        assert runtime.data_root == (tmp_path / "saved").resolve()
        assert runtime.yesno_default == "fail"

    def test_supabase_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co/")
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "env-key")

        runtime = build_storage_runtime(data_root=tmp_path)

        assert isinstance(runtime.identity_client, SupabaseIdentityClient)
        assert runtime.identity_client.configured
        assert runtime.warnings == ()

    def test_stored_supabase_beats_environment(self, monkeypatch):
        monkeypatch.setenv("AUDITKING_SUPABASE_URL", "https://env.supabase.co")

        resolved = resolve_supabase_settings(SupabaseSettings(url="https://stored.supabase.co"))

        assert resolved.url == "https://stored.supabase.co"
        assert resolved.profiles_table == "profiles"
