from __future__ import annotations

import pytest

from clubspace import config
from clubspace.config import Settings
from clubspace.store import FirestoreDocumentStore, SQLiteDocumentStore, build_store


@pytest.fixture(autouse=True)
def _skip_dotenv(monkeypatch):
    monkeypatch.setattr(config, "_ENV_LOADED", True)
    for name in (
        "CLUBSPACE_STORE",
        "CLUBSPACE_DB",
        "CLUBSPACE_FIRESTORE_PROJECT",
        "CLUBSPACE_FIRESTORE_TOKEN",
        "GOOGLE_OAUTH_ACCESS_TOKEN",
        "CLUBSPACE_ARCHIVE_GRACE_MINUTES",
        "CLUBSPACE_ARCHIVE_ON_READ",
        "CLUBSPACE_ARCHIVE_INTERVAL",
        "CLUBSPACE_LOG_LEVEL",
        "CLUBSPACE_AUTH_SECRET",
        "CLUBSPACE_CORS_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings.from_env()
    assert settings.store_backend == "sqlite"
    assert settings.archive_grace_minutes == 60
    assert settings.active_window_days == 10
    assert settings.archive_on_read is True
    assert settings.archive_interval_seconds == 0
    assert settings.auth_secret is None
    assert settings.cors_origins == ()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CLUBSPACE_STORE", "Firestore")
    monkeypatch.setenv("CLUBSPACE_FIRESTORE_PROJECT", "club-prod")
    monkeypatch.setenv("CLUBSPACE_ARCHIVE_GRACE_MINUTES", "90")
    monkeypatch.setenv("CLUBSPACE_ARCHIVE_ON_READ", "no")
    monkeypatch.setenv("CLUBSPACE_ARCHIVE_INTERVAL", "not-a-number")
    monkeypatch.setenv("CLUBSPACE_LOG_LEVEL", "debug")
    monkeypatch.setenv("CLUBSPACE_AUTH_SECRET", "shared")
    monkeypatch.setenv("CLUBSPACE_CORS_ORIGINS", "https://furia.club.test, ,http://localhost:5173")

    settings = Settings.from_env()
    assert settings.store_backend == "firestore"
    assert settings.firestore_project == "club-prod"
    assert settings.archive_grace_minutes == 90
    assert settings.archive_on_read is False
    assert settings.archive_interval_seconds == 0
    assert settings.log_level == "DEBUG"
    assert settings.auth_secret == "shared"
    assert settings.cors_origins == ("https://furia.club.test", "http://localhost:5173")


def test_dotenv_does_not_override_environment(tmp_path, monkeypatch):
    env_file = tmp_path / "club.env"
    env_file.write_text("# local\nCLUBSPACE_DB='from-file.db'\nCLUBSPACE_LOG_LEVEL=warning\n")
    monkeypatch.setattr(config, "_ENV_LOADED", False)
    monkeypatch.setenv("CLUBSPACE_ENV_FILE", str(env_file))
    monkeypatch.setenv("CLUBSPACE_LOG_LEVEL", "ERROR")
    monkeypatch.setenv("CLUBSPACE_DB", "placeholder")
    monkeypatch.delenv("CLUBSPACE_DB")
    monkeypatch.chdir(tmp_path)

    settings = Settings.from_env()
    assert settings.sqlite_path == "from-file.db"
    assert settings.log_level == "ERROR"


def test_build_store(tmp_path):
    sqlite = build_store(Settings(sqlite_path=str(tmp_path / "club.db")))
    assert isinstance(sqlite, SQLiteDocumentStore)

    firestore = build_store(Settings(store_backend="firestore", firestore_project="demo"))
    assert isinstance(firestore, FirestoreDocumentStore)
    assert firestore.root == "projects/demo/databases/(default)/documents"

    with pytest.raises(ValueError):
        build_store(Settings(store_backend="firestore"))
    with pytest.raises(ValueError):
        build_store(Settings(store_backend="mongo"))
