"""
Backup scheduler -- keep the remote snapshot fresh while the session runs.

    [no snapshot yet] -> wait stabilization delay -> backup
    every interval    -> backup

    backup = delete old snapshot -> prune -> pack -> save -> drop archive

One cycle at a time. A trigger that lands mid-cycle waits its turn.
A failed cycle is logged and forgotten; the next tick tries again.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional

from . import archive, pruner
from .models import (
    DEFAULT_NESTED_DIRS,
    DEFAULT_REQUIRED_PATHS,
    DEFAULT_STABILIZATION_DELAY,
    MIN_BACKUP_SYNC_MS,
    SyncState,
    ValidationError,
    upload_archive_path,
)
from .store import RemoteStoreClient

logger = logging.getLogger("profilesync.scheduler")

Sleep = Callable[[float], Awaitable[None]]


class BackupScheduler:
    """Runs serialized periodic backups of one profile directory.

    Args:
        client: Store client to upload snapshots through.
        required_paths: Entry names that survive pruning.
        nested_dirs: Subdirectories pruned one level down.
        work_dir: Directory for the transient upload archive.
        stabilization_delay: Seconds to wait before the first backup of a
            session that has no snapshot yet.
        state: Shared sync state to record results in.
        sleep: Awaitable sleep used by the timer.
    """

    def __init__(
        self,
        client: RemoteStoreClient,
        required_paths: Iterable[str] = DEFAULT_REQUIRED_PATHS,
        nested_dirs: Iterable[str] = DEFAULT_NESTED_DIRS,
        work_dir: Path = Path("."),
        stabilization_delay: float = DEFAULT_STABILIZATION_DELAY,
        state: Optional[SyncState] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.required_paths = frozenset(required_paths)
        self.nested_dirs = tuple(nested_dirs)
        self.work_dir = Path(work_dir)
        self.stabilization_delay = stabilization_delay
        self.state = state or SyncState()
        self._sleep = sleep

        self.session: Optional[str] = None
        self.profile_dir: Optional[Path] = None
        self.interval_ms: Optional[int] = None

        self._lock = asyncio.Lock()
        self._timer: Optional[asyncio.Task] = None
        self._cycles: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        """True while the timer is armed."""
        return self._timer is not None and not self._timer.done()

    @property
    def busy(self) -> bool:
        """True while a backup cycle is in flight."""
        return self._lock.locked()

    def start(self, session: str, profile_dir: Path, interval_ms: int) -> None:
        """Arm the backup timer for ``session``.

        Must be called from within a running event loop.

        Raises:
            ValidationError: If ``interval_ms`` is under one minute.
            RuntimeError: If the timer is already running.
        """
        if interval_ms < MIN_BACKUP_SYNC_MS:
            raise ValidationError(
                f"Invalid backup interval {interval_ms}ms; "
                f"minimum is {MIN_BACKUP_SYNC_MS}ms"
            )
        if self.running:
            raise RuntimeError(f"Backup timer already running for {self.session}")

        self.session = session
        self.profile_dir = Path(profile_dir)
        self.interval_ms = interval_ms
        self._timer = asyncio.get_running_loop().create_task(
            self._run(), name=f"profilesync-backup-{session}"
        )
        logger.info(
            "Backup timer started for %s (every %ds)", session, interval_ms // 1000
        )

    def stop(self) -> None:
        """Cancel the timer. A cycle already in flight is left to finish."""
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        logger.info("Backup timer stopped for %s", self.session)

    async def drain(self) -> None:
        """Wait for any in-flight backup cycle to finish."""
        if self._cycles:
            await asyncio.gather(*self._cycles, return_exceptions=True)
        # Manual backup() calls are not tracked as tasks; wait them out too.
        async with self._lock:
            pass

    async def run_cycle(self) -> bool:
        """Run one backup of the configured session now.

        Raises:
            RuntimeError: If the scheduler was never started.
        """
        if self.session is None or self.profile_dir is None:
            raise RuntimeError("Backup scheduler has no session; call start() first")
        return await self.backup(self.session, self.profile_dir)

    async def backup(self, session: str, profile_dir: Path) -> bool:
        """Back up ``profile_dir`` as the snapshot for ``session``.

        Serialized with every other cycle on this scheduler. Never raises
        for runtime failures; they are logged and recorded in state.

        Returns:
            True if a snapshot was uploaded.
        """
        async with self._lock:
            return await self._backup(session, Path(profile_dir))

    async def _backup(self, session: str, profile_dir: Path) -> bool:
        archive_path = upload_archive_path(self.work_dir, session)
        try:
            if await self.client.exists(session):
                # Leaves no snapshot at all if the save below fails.
                await self.client.delete(session)

            if not profile_dir.is_dir():
                logger.info("Profile %s not present, skipping backup", profile_dir)
                self.state.skipped_count += 1
                return False

            await asyncio.to_thread(
                pruner.prune, profile_dir, self.required_paths, self.nested_dirs
            )
            self.work_dir.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(archive.pack_to_file, profile_dir, archive_path)
            await self.client.save(session, archive_path)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.state.failure_count += 1
            self.state.last_error = f"backup: {exc}"
            logger.error("Backup of %s failed: %s", session, exc)
            return False
        finally:
            try:
                archive_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove transient archive %s: %s", archive_path, exc)

        self.state.backup_count += 1
        self.state.last_backup = datetime.now(timezone.utc)
        logger.info("Backup of %s completed", session)
        return True

    async def _spawn_cycle(self) -> None:
        # Cycles run in their own task so cancelling the timer never
        # interrupts an upload halfway.
        task = asyncio.get_running_loop().create_task(self.run_cycle())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)
        await asyncio.shield(task)

    async def _initial_snapshot_needed(self) -> bool:
        try:
            return not await self.client.exists(self.session)
        except Exception as exc:
            logger.warning("Could not check snapshot for %s: %s", self.session, exc)
            return True

    async def _run(self) -> None:
        if await self._initial_snapshot_needed():
            logger.info(
                "No snapshot for %s yet, first backup in %.0fs",
                self.session,
                self.stabilization_delay,
            )
            await self._sleep(self.stabilization_delay)
            await self._spawn_cycle()

        interval = self.interval_ms / 1000
        while True:
            await self._sleep(interval)
            await self._spawn_cycle()
