"""
Shared pytest fixtures.

Settings are redirected to a temp file for every test so nothing touches the
real user config folder.

Usage:
    pytest tests/ -v
"""

from pathlib import Path

import pytest
from PySide6.QtCore import QCoreApplication

from auditking.app.checklist_models import AuditDataBundle, UserRecord, build_seed_bundle
from auditking.app.data_store import MemoryKeyValueStore


SEED_DAY = "2026-10-18"


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    settings_file = tmp_path / "config" / "settings.json"
    monkeypatch.setenv("AUDITKING_SETTINGS_PATH", str(settings_file))
    monkeypatch.delenv("AUDITKING_DB_DEBUG", raising=False)
    for name in (
        "AUDITKING_SUPABASE_URL",
        "SUPABASE_URL",
        "VITE_SUPABASE_URL",
        "AUDITKING_SUPABASE_SERVICE_ROLE",
        "SUPABASE_SERVICE_ROLE",
        "SUPABASE_SERVICE_ROLE_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    return settings_file


@pytest.fixture(scope="session")
def qt_app():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def seed_bundle() -> AuditDataBundle:
    return build_seed_bundle(today=SEED_DAY)


@pytest.fixture
def admin(seed_bundle: AuditDataBundle) -> UserRecord:
    return seed_bundle.current_user()


@pytest.fixture
def inspector() -> UserRecord:
    return UserRecord(user_id="u2", email="ins@auditking.app", name="Ina Spector", roles=["inspector"])


@pytest.fixture
def manager() -> UserRecord:
    return UserRecord(user_id="u3", email="mgr@auditking.app", name="Max Manager", roles=["manager"])


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()
