"""
Pydantic models for session sync configuration and runtime state.

Settings are validated once, at construction. A bad client id or a
backup interval under one minute never reaches the scheduler.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from . import PROFILESYNC_HOME

CLIENT_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")
MIN_BACKUP_SYNC_MS = 60_000
DEFAULT_STABILIZATION_DELAY = 30.0

# Minimum set of profile entries needed to restore an authenticated session.
DEFAULT_REQUIRED_PATHS = frozenset({"Default", "IndexedDB", "Local Storage"})
DEFAULT_NESTED_DIRS = ("Default",)


class ValidationError(ValueError):
    """Raised when sync settings are invalid at construction time."""


def session_name_for(client_id: Optional[str]) -> str:
    """Derive the session name used for the local directory and remote key.

    Args:
        client_id: Optional instance identifier.

    Returns:
        ``session-<client_id>``, or ``session`` when no id is given.
    """
    return f"session-{client_id}" if client_id else "session"


def upload_archive_path(work_dir: Path, session: str) -> Path:
    """Transient archive written before each upload."""
    return Path(work_dir) / f"{session}.zip"


def download_archive_path(work_dir: Path, session: str) -> Path:
    """Transient archive the store materializes during recovery."""
    return Path(work_dir) / f"RemoteAuth-{session}.zip"


class StoreType(str, Enum):
    """Bundled session store adapters."""

    LOCAL = "local"


class StoreConfig(BaseModel):
    """Configuration for the bundled session store adapter."""

    store_type: StoreType = StoreType.LOCAL
    local_path: Optional[Path] = None


class SyncSettings(BaseModel):
    """Everything a SessionSynchronizer needs to know before it starts."""

    data_path: Path = Path(PROFILESYNC_HOME)
    client_id: Optional[str] = None
    backup_sync_ms: int = MIN_BACKUP_SYNC_MS
    stabilization_delay: float = DEFAULT_STABILIZATION_DELAY
    required_paths: frozenset[str] = DEFAULT_REQUIRED_PATHS
    nested_dirs: tuple[str, ...] = DEFAULT_NESTED_DIRS
    work_dir: Path = Path(".")
    store: StoreConfig = Field(default_factory=StoreConfig)

    @field_validator("client_id")
    @classmethod
    def client_id_must_be_clean(cls, v: Optional[str]) -> Optional[str]:
        """Only alphanumerics, underscores and hyphens are allowed."""
        if v is not None and not CLIENT_ID_PATTERN.fullmatch(v):
            raise ValueError(
                "Invalid client_id. Only alphanumeric characters, "
                f"underscores and hyphens are allowed: got '{v}'"
            )
        return v

    @field_validator("backup_sync_ms")
    @classmethod
    def interval_has_floor(cls, v: int) -> int:
        """Backups run at most once a minute."""
        if v < MIN_BACKUP_SYNC_MS:
            raise ValueError(
                f"Invalid backup_sync_ms. Accepts values starting from "
                f"{MIN_BACKUP_SYNC_MS}ms (1 minute): got {v}"
            )
        return v

    @field_validator("stabilization_delay")
    @classmethod
    def delay_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"stabilization_delay must be >= 0: got {v}")
        return v

    @property
    def session_name(self) -> str:
        """Session name derived from the client id."""
        return session_name_for(self.client_id)

    @property
    def profile_dir(self) -> Path:
        """Absolute path of the profile directory for this session."""
        return (self.data_path.expanduser() / self.session_name).resolve()


def build_settings(**values) -> SyncSettings:
    """Validate settings, converting pydantic failures to ValidationError.

    Args:
        **values: SyncSettings fields. ``None`` values fall back to defaults.

    Returns:
        Validated SyncSettings.

    Raises:
        ValidationError: If any field is invalid.
    """
    provided = {k: v for k, v in values.items() if v is not None}
    try:
        return SyncSettings(**provided)
    except PydanticValidationError as exc:
        messages = "; ".join(err["msg"] for err in exc.errors())
        raise ValidationError(messages) from exc


class RecoveryPhase(str, Enum):
    """Where a startup recovery currently is (or where it stopped)."""

    IDLE = "idle"
    CHECKING_REMOTE = "checking_remote"
    CLEARING_LOCAL = "clearing_local"
    NO_REMOTE = "no_remote"
    EXTRACTING = "extracting"
    UNPACKING = "unpacking"
    READY = "ready"
    FAILED = "failed"


class RecoveryOutcome(BaseModel):
    """Result of one recovery attempt."""

    session: str
    profile_dir: Path
    phase: RecoveryPhase = RecoveryPhase.IDLE
    remote_found: bool = False
    restored: bool = False
    failed_phase: Optional[RecoveryPhase] = None
    error: Optional[str] = None


class SyncState(BaseModel):
    """In-memory sync counters. Never persisted; the archive is the only state."""

    last_backup: Optional[datetime] = None
    last_restore: Optional[datetime] = None
    backup_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    last_error: Optional[str] = None
