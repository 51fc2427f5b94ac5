"""
Session stores -- where the profile snapshot lives between runs.

A store is anything with four operations keyed by session name:
session_exists, save, extract, delete. Object storage, a database row,
a NAS mount. The synchronizer only ever talks to RemoteStoreClient,
which awaits whatever the store gives it and wraps every failure in
RemoteStoreError.

Local: plain filesystem copy. For NAS, mounted buckets, and tests.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .models import StoreConfig, StoreType

logger = logging.getLogger("profilesync.store")


class RemoteStoreError(Exception):
    """Raised when a session store operation fails.

    Attributes:
        operation: Store operation that failed.
        session: Session name the operation was keyed on.
        cause: Underlying exception.
    """

    def __init__(self, operation: str, session: str, cause: BaseException):
        self.operation = operation
        self.session = session
        self.cause = cause
        super().__init__(f"Store {operation} failed for '{session}': {cause}")


@runtime_checkable
class SessionStore(Protocol):
    """Capability interface a remote store must provide.

    Methods may be plain functions or coroutine functions.
    """

    def session_exists(self, session: str) -> Any:
        """Return True if a snapshot is stored under ``session``."""

    def save(self, session: str, archive_path: Path) -> Any:
        """Persist the archive at ``archive_path`` under ``session``."""

    def extract(self, session: str, archive_path: Path) -> Any:
        """Write the stored snapshot for ``session`` to ``archive_path``."""

    def delete(self, session: str) -> Any:
        """Remove the snapshot for ``session``. No-op if absent."""


class RemoteStoreClient:
    """Awaitable, error-wrapping adapter around a SessionStore."""

    def __init__(self, store: SessionStore):
        self.store = store

    async def _call(self, operation: str, session: str, *args: Any) -> Any:
        method = getattr(self.store, operation)
        try:
            if inspect.iscoroutinefunction(method):
                return await method(session, *args)
            result = await asyncio.to_thread(method, session, *args)
            if inspect.isawaitable(result):
                result = await result
            return result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise RemoteStoreError(operation, session, exc) from exc

    async def exists(self, session: str) -> bool:
        """Check whether a snapshot is stored for ``session``."""
        return bool(await self._call("session_exists", session))

    async def save(self, session: str, archive_path: Path) -> None:
        """Upload the archive at ``archive_path`` as the snapshot for ``session``.

        Raises:
            RemoteStoreError: If the archive is missing or the store fails.
        """
        if not Path(archive_path).is_file():
            raise RemoteStoreError(
                "save", session, FileNotFoundError(f"Archive not found: {archive_path}")
            )
        await self._call("save", session, Path(archive_path))
        logger.info("Snapshot saved for %s", session)

    async def extract(self, session: str, archive_path: Path) -> Path:
        """Materialize the stored snapshot for ``session`` at ``archive_path``.

        Returns:
            The local archive path.

        Raises:
            RemoteStoreError: If the store fails or writes nothing.
        """
        archive_path = Path(archive_path)
        await self._call("extract", session, archive_path)
        if not archive_path.is_file():
            raise RemoteStoreError(
                "extract",
                session,
                FileNotFoundError(f"Store did not materialize {archive_path}"),
            )
        logger.info("Snapshot extracted for %s: %s", session, archive_path)
        return archive_path

    async def delete(self, session: str) -> None:
        """Remove the stored snapshot for ``session``."""
        await self._call("delete", session)
        logger.info("Snapshot deleted for %s", session)


class LocalDirectoryStore:
    """Session store backed by a local or mounted directory.

    Snapshots are stored as ``<root>/<session>.zip``.
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, session: str) -> Path:
        return self.root / f"{session}.zip"

    def session_exists(self, session: str) -> bool:
        return self._path(session).is_file()

    def save(self, session: str, archive_path: Path) -> None:
        """Copy the archive in, replacing atomically."""
        fd, tmp_name = tempfile.mkstemp(
            dir=self.root, prefix=f".{session}-", suffix=".tmp"
        )
        os.close(fd)
        try:
            shutil.copyfile(archive_path, tmp_name)
            os.replace(tmp_name, self._path(session))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Local store saved %s -> %s", archive_path, self._path(session))

    def extract(self, session: str, archive_path: Path) -> None:
        shutil.copyfile(self._path(session), archive_path)

    def delete(self, session: str) -> None:
        self._path(session).unlink(missing_ok=True)

    def list_sessions(self) -> list[dict]:
        """List stored snapshots with their sizes.

        Returns:
            List of dicts with ``session``, ``path`` and ``size``.
        """
        return [
            {"session": f.stem, "path": f, "size": f.stat().st_size}
            for f in sorted(self.root.glob("*.zip"))
        ]


def create_store(config: StoreConfig, data_path: Path) -> SessionStore:
    """Factory function to create the configured store adapter.

    Args:
        config: Store configuration.
        data_path: Base data path, used for the default local store root.

    Returns:
        Instantiated store.

    Raises:
        ValueError: If the store type is not supported.
    """
    if config.store_type == StoreType.LOCAL:
        root = config.local_path or Path(data_path).expanduser() / "remote"
        return LocalDirectoryStore(root)
    raise ValueError(f"Unsupported store: {config.store_type}")
