"""
Configuration loading -- YAML file first, environment on top.

    data_path: ./.wwebjs_auth
    client_id: abc-1
    backup_sync_ms: 300000
    required_paths: [Default, IndexedDB, Local Storage]
    store:
      store_type: local
      local_path: /mnt/nas/sessions
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from .models import SyncSettings, build_settings

logger = logging.getLogger("profilesync.config")

ENV_OVERRIDES = {
    "PROFILESYNC_DATA_PATH": "data_path",
    "PROFILESYNC_CLIENT_ID": "client_id",
    "PROFILESYNC_BACKUP_SYNC_MS": "backup_sync_ms",
}


def _read_yaml(config_file: Path) -> dict[str, Any]:
    if not config_file.exists():
        return {}
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        logger.warning("Failed to load config %s: %s", config_file, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: expected a mapping", config_file)
        return {}
    return data


def load_settings(
    config_file: Optional[Path] = None,
    env: Optional[dict[str, str]] = None,
    **overrides: Any,
) -> SyncSettings:
    """Load sync settings from YAML, environment, and explicit overrides.

    Later sources win: file < environment < keyword overrides.
    A malformed YAML file is logged and ignored.

    Args:
        config_file: Optional YAML config path.
        env: Environment mapping. Defaults to ``os.environ``.
        **overrides: Explicit field values; ``None`` values are ignored.

    Returns:
        Validated SyncSettings.

    Raises:
        ValidationError: If the merged values are invalid.
    """
    data: dict[str, Any] = {}
    if config_file is not None:
        data.update(_read_yaml(Path(config_file).expanduser()))

    env = os.environ if env is None else env
    for var, field in ENV_OVERRIDES.items():
        if env.get(var):
            data[field] = env[var]

    data.update({k: v for k, v in overrides.items() if v is not None})
    return build_settings(**data)


def save_settings(settings: SyncSettings, config_file: Path) -> None:
    """Persist settings as YAML.

    Args:
        settings: Settings to write.
        config_file: Destination path; parent directories are created.
    """
    config_file = Path(config_file).expanduser()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    data = settings.model_dump(mode="json")
    data["required_paths"] = sorted(data["required_paths"])
    config_file.write_text(
        yaml.dump(data, default_flow_style=False), encoding="utf-8"
    )
