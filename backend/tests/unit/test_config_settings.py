"""Unit tests for application settings configuration."""

import json
from pathlib import Path

from client_payments.config import Settings


def test_settings_uses_backend_env_file_independent_of_cwd():
    """Settings should always include backend/.env as an env source."""
    env_files = Settings.model_config.get("env_file")
    assert env_files is not None

    normalized = {str(Path(item)) for item in env_files}
    expected_backend_env = str(Path(__file__).resolve().parents[2] / ".env")

    assert expected_backend_env in normalized
    assert str(Path(".env")) in normalized


def test_records_settings_read_from_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RECORDS_MIGRATION_MODE", "full_v2_with_legacy_mirror")
    monkeypatch.setenv("RECORDS_MAX_PATCH_OPERATIONS", "25")
    monkeypatch.setenv("DATABASE_URL", "")

    settings = Settings()

    assert settings.records_migration_mode == "full_v2_with_legacy_mirror"
    assert settings.records_max_patch_operations == 25
    assert settings.database_url == ""


def test_settings_json_overrides_migration_mode(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RECORDS_MIGRATION_MODE", raising=False)
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "settings.json").write_text(
        json.dumps({"records_migration_mode": "write_v2_read_legacy", "app_title": "ignored"}),
        encoding="utf-8",
    )

    settings = Settings()

    assert settings.records_migration_mode == "write_v2_read_legacy"
    assert settings.app_title == "Client Payments API"


def test_unreadable_settings_json_is_ignored(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RECORDS_MIGRATION_MODE", raising=False)
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "settings.json").write_text("{not json", encoding="utf-8")

    assert Settings().records_migration_mode == "legacy_only"
