"""
Recovery -- put the last snapshot back before the browser starts.

    exists? -> clear local -> extract from store -> unpack -> ready

Recovery never blocks startup. If anything goes wrong the host starts
with an empty profile, which looks exactly like a first run. Losing a
session is recoverable; refusing to start is not.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from . import archive
from .models import RecoveryOutcome, RecoveryPhase, SyncState, download_archive_path
from .pruner import remove_path
from .store import RemoteStoreClient

logger = logging.getLogger("profilesync.recovery")


class RecoveryController:
    """Restores a profile directory from the session store on startup.

    Args:
        client: Store client to fetch snapshots through.
        work_dir: Directory for the transient downloaded archive.
        state: Shared sync state to record restores and errors in.
    """

    def __init__(
        self,
        client: RemoteStoreClient,
        work_dir: Path = Path("."),
        state: Optional[SyncState] = None,
    ):
        self.client = client
        self.work_dir = Path(work_dir)
        self.state = state or SyncState()
        self.phase = RecoveryPhase.IDLE

    def _enter(self, phase: RecoveryPhase, outcome: RecoveryOutcome) -> None:
        logger.debug("Recovery %s: %s -> %s", outcome.session, self.phase.value, phase.value)
        self.phase = phase
        outcome.phase = phase

    async def recover(self, session: str, profile_dir: Path) -> RecoveryOutcome:
        """Restore ``profile_dir`` from the snapshot stored under ``session``.

        Any existing local directory is removed first, whether or not a
        snapshot exists, so old local state never mixes with a restored
        one. Failures are logged and reported in the outcome, never
        raised.

        Args:
            session: Session name the snapshot is keyed on.
            profile_dir: Profile directory to restore into.

        Returns:
            RecoveryOutcome describing how far recovery got.
        """
        profile_dir = Path(profile_dir)
        outcome = RecoveryOutcome(session=session, profile_dir=profile_dir)
        self.phase = RecoveryPhase.IDLE
        archive_path = download_archive_path(self.work_dir, session)

        try:
            self._enter(RecoveryPhase.CHECKING_REMOTE, outcome)
            outcome.remote_found = await self.client.exists(session)

            if profile_dir.is_symlink() or profile_dir.exists():
                self._enter(RecoveryPhase.CLEARING_LOCAL, outcome)
                await asyncio.to_thread(remove_path, profile_dir)
                logger.info("Removed stale local profile: %s", profile_dir)

            if not outcome.remote_found:
                self._enter(RecoveryPhase.NO_REMOTE, outcome)
                logger.info("No remote snapshot for %s, starting fresh", session)
                self._enter(RecoveryPhase.READY, outcome)
                return outcome

            self._enter(RecoveryPhase.EXTRACTING, outcome)
            self.work_dir.mkdir(parents=True, exist_ok=True)
            await self.client.extract(session, archive_path)

            self._enter(RecoveryPhase.UNPACKING, outcome)
            profile_dir.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(archive.unpack, archive_path, profile_dir)

            self._enter(RecoveryPhase.READY, outcome)
            outcome.restored = True
            self.state.last_restore = datetime.now(timezone.utc)
            logger.info("Session %s restored to %s", session, profile_dir)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            outcome.failed_phase = self.phase
            outcome.error = str(exc)
            self._enter(RecoveryPhase.FAILED, outcome)
            self.state.last_error = f"recover: {exc}"
            logger.error(
                "Recovery of %s failed during %s: %s",
                session,
                outcome.failed_phase.value,
                exc,
            )
            await self._discard_partial(profile_dir, outcome.failed_phase)
        finally:
            try:
                archive_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove transient archive %s: %s", archive_path, exc)

        return outcome

    async def _discard_partial(self, profile_dir: Path, phase: RecoveryPhase) -> None:
        """Remove a half-unpacked profile so the host starts clean."""
        if phase != RecoveryPhase.UNPACKING or not profile_dir.exists():
            return
        try:
            await asyncio.to_thread(remove_path, profile_dir)
            logger.warning("Discarded partially restored profile: %s", profile_dir)
        except OSError as exc:
            logger.error("Could not discard partial profile %s: %s", profile_dir, exc)
