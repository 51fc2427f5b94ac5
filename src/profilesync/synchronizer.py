"""
Session synchronizer -- the hooks a browser host calls.

    before_init()  ->  resolve profile path -> restore snapshot
    on_ready()     ->  start periodic backups
    on_logout()    ->  stop backups -> delete snapshot -> delete profile

The host owns the browser. We own the profile directory only while
restoring, pruning and packing it.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Any, Iterable, Optional

from .models import (
    RecoveryOutcome,
    SyncSettings,
    SyncState,
    ValidationError,
    build_settings,
)
from .recovery import RecoveryController
from .scheduler import BackupScheduler, Sleep
from .store import RemoteStoreClient, SessionStore

logger = logging.getLogger("profilesync.synchronizer")

USER_DATA_DIR_KEY = "user_data_dir"


class SessionSynchronizer:
    """Keeps one browser profile directory in sync with a session store.

    Args:
        store: Session store implementing the SessionStore operations.
        client_id: Optional instance id; alphanumerics, ``_`` and ``-`` only.
        data_path: Base directory for session profiles.
        backup_sync_ms: Backup interval in milliseconds (>= 60000).
        required_paths: Profile entries that survive pruning.
        nested_dirs: Subdirectories pruned one level down.
        stabilization_delay: Seconds before the first backup of a new session.
        work_dir: Directory for transient archives.
        settings: Pre-validated settings; overrides the keyword fields.
        sleep: Awaitable sleep used by the backup timer.

    Raises:
        ValidationError: If the store is missing or any setting is invalid.
    """

    def __init__(
        self,
        store: SessionStore,
        client_id: Optional[str] = None,
        data_path: Optional[Path] = None,
        backup_sync_ms: Optional[int] = None,
        required_paths: Optional[Iterable[str]] = None,
        nested_dirs: Optional[Iterable[str]] = None,
        stabilization_delay: Optional[float] = None,
        work_dir: Optional[Path] = None,
        settings: Optional[SyncSettings] = None,
        sleep: Optional[Sleep] = None,
    ):
        if store is None:
            raise ValidationError("A session store is required.")
        if backup_sync_ms is None and settings is None:
            raise ValidationError("backup_sync_ms is required.")

        self.settings = settings or build_settings(
            client_id=client_id,
            data_path=data_path,
            backup_sync_ms=backup_sync_ms,
            required_paths=frozenset(required_paths) if required_paths is not None else None,
            nested_dirs=tuple(nested_dirs) if nested_dirs is not None else None,
            stabilization_delay=stabilization_delay,
            work_dir=work_dir,
        )
        self.store = store
        self.client = RemoteStoreClient(store)
        self.state = SyncState()
        self.recovery = RecoveryController(
            self.client, work_dir=self.settings.work_dir, state=self.state
        )
        scheduler_kwargs: dict[str, Any] = {}
        if sleep is not None:
            scheduler_kwargs["sleep"] = sleep
        self.scheduler = BackupScheduler(
            self.client,
            required_paths=self.settings.required_paths,
            nested_dirs=self.settings.nested_dirs,
            work_dir=self.settings.work_dir,
            stabilization_delay=self.settings.stabilization_delay,
            state=self.state,
            **scheduler_kwargs,
        )
        self.last_recovery: Optional[RecoveryOutcome] = None

    @property
    def session_name(self) -> str:
        return self.settings.session_name

    @property
    def profile_dir(self) -> Path:
        return self.settings.profile_dir

    async def before_init(self, host_options: Optional[dict] = None) -> Path:
        """Restore the session before the host launches the browser.

        Args:
            host_options: Host launch options. If it already names a
                ``user_data_dir`` it must be the resolved profile path.
                The resolved path is written back into it.

        Returns:
            The profile directory the host must use.

        Raises:
            ValidationError: If ``host_options`` names a different directory.
        """
        profile_dir = self.profile_dir
        supplied = (host_options or {}).get(USER_DATA_DIR_KEY)
        if supplied and Path(supplied).expanduser().resolve() != profile_dir:
            raise ValidationError(
                "Session sync is not compatible with a user-supplied "
                f"{USER_DATA_DIR_KEY} ({supplied})."
            )

        self.last_recovery = await self.recovery.recover(self.session_name, profile_dir)
        if host_options is not None:
            host_options[USER_DATA_DIR_KEY] = str(profile_dir)
        return profile_dir

    async def on_ready(self) -> None:
        """Start periodic backups once the host reports the session ready."""
        self.scheduler.start(
            self.session_name, self.profile_dir, self.settings.backup_sync_ms
        )

    async def on_logout(self) -> None:
        """Tear down: stop backups, delete the snapshot, delete the profile.

        Backups are stopped and drained first so a late cycle cannot
        re-upload a snapshot after it was deleted. Never raises.
        """
        self.scheduler.stop()
        await self.scheduler.drain()

        try:
            if await self.client.exists(self.session_name):
                await self.client.delete(self.session_name)
        except Exception as exc:
            logger.warning("Could not delete snapshot for %s: %s", self.session_name, exc)

        profile_dir = self.profile_dir
        if profile_dir.exists():
            try:
                await asyncio.to_thread(shutil.rmtree, profile_dir, ignore_errors=True)
            except Exception as exc:
                logger.debug("Could not remove profile %s: %s", profile_dir, exc)
        logger.info("Session %s logged out", self.session_name)

    def status(self) -> dict:
        """Get current sync status.

        Returns:
            Dict with session, paths, timer state, and counters.
        """
        return {
            "session": self.session_name,
            "profile_dir": str(self.profile_dir),
            "profile_exists": self.profile_dir.exists(),
            "backup_sync_ms": self.settings.backup_sync_ms,
            "running": self.scheduler.running,
            "busy": self.scheduler.busy,
            "last_recovery": (
                self.last_recovery.model_dump(mode="json") if self.last_recovery else None
            ),
            "state": self.state.model_dump(mode="json"),
        }
