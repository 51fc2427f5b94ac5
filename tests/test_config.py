"""Tests for YAML/environment settings loading."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

from profilesync.config import load_settings, save_settings
from profilesync.models import (
    DEFAULT_REQUIRED_PATHS,
    MIN_BACKUP_SYNC_MS,
    StoreType,
    ValidationError,
    build_settings,
)


def _write(path: Path, data) -> Path:
    path.write_text(yaml.dump(data), encoding="utf-8")
    return path


class TestLoadSettings:
    """load_settings() merges file, environment and overrides."""

    def test_defaults_without_sources(self):
        settings = load_settings(env={})
        assert settings.client_id is None
        assert settings.backup_sync_ms == MIN_BACKUP_SYNC_MS
        assert settings.required_paths == DEFAULT_REQUIRED_PATHS
        assert settings.store.store_type == StoreType.LOCAL

    def test_reads_yaml(self, tmp_path: Path):
        cfg = _write(tmp_path / "profilesync.yaml", {
            "data_path": str(tmp_path / "auth"),
            "client_id": "abc-1",
            "backup_sync_ms": 300_000,
            "required_paths": ["Default", "Local Storage"],
            "store": {"store_type": "local", "local_path": str(tmp_path / "nas")},
        })

        settings = load_settings(cfg, env={})

        assert settings.session_name == "session-abc-1"
        assert settings.backup_sync_ms == 300_000
        assert settings.required_paths == frozenset({"Default", "Local Storage"})
        assert settings.store.local_path == tmp_path / "nas"

    def test_env_overrides_file(self, tmp_path: Path):
        cfg = _write(tmp_path / "profilesync.yaml", {"client_id": "from-file"})
        env = {
            "PROFILESYNC_CLIENT_ID": "from-env",
            "PROFILESYNC_BACKUP_SYNC_MS": "120000",
        }

        settings = load_settings(cfg, env=env)

        assert settings.client_id == "from-env"
        assert settings.backup_sync_ms == 120_000

    def test_overrides_win_and_none_ignored(self, tmp_path: Path):
        env = {"PROFILESYNC_CLIENT_ID": "from-env"}
        settings = load_settings(env=env, client_id="explicit", data_path=None)
        assert settings.client_id == "explicit"

    def test_missing_file_uses_defaults(self, tmp_path: Path):
        settings = load_settings(tmp_path / "nope.yaml", env={})
        assert settings.client_id is None

    def test_malformed_yaml_ignored(self, tmp_path: Path, caplog):
        cfg = tmp_path / "broken.yaml"
        cfg.write_text("client_id: [unterminated\n", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="profilesync.config"):
            settings = load_settings(cfg, env={})

        assert settings.client_id is None
        assert "Failed to load config" in caplog.text

    def test_non_mapping_yaml_ignored(self, tmp_path: Path):
        cfg = tmp_path / "list.yaml"
        cfg.write_text("- one\n- two\n", encoding="utf-8")
        assert load_settings(cfg, env={}).client_id is None

    def test_invalid_values_raise(self, tmp_path: Path):
        cfg = _write(tmp_path / "bad.yaml", {"client_id": "has space"})
        with pytest.raises(ValidationError, match="client_id"):
            load_settings(cfg, env={})

    def test_interval_floor_from_env(self):
        with pytest.raises(ValidationError, match="backup_sync_ms"):
            load_settings(env={"PROFILESYNC_BACKUP_SYNC_MS": "1000"})


class TestSaveSettings:
    """save_settings() writes YAML that load_settings() reads back."""

    def test_round_trip(self, tmp_path: Path):
        original = build_settings(
            data_path=tmp_path / "auth",
            client_id="abc-1",
            backup_sync_ms=90_000,
            required_paths=frozenset({"Default", "IndexedDB"}),
        )
        cfg = tmp_path / "nested" / "profilesync.yaml"

        save_settings(original, cfg)
        loaded = load_settings(cfg, env={})

        assert loaded == original
        written = yaml.safe_load(cfg.read_text(encoding="utf-8"))
        assert written["required_paths"] == ["Default", "IndexedDB"]
