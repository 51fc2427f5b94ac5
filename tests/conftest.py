"""Shared test fixtures for profilesync."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Optional

import pytest

PROFILE_FILES = {
    "Default/IndexedDB/https_web.whatsapp.com_0.indexeddb.leveldb/000003.log": b"idb-log",
    "Default/IndexedDB/https_web.whatsapp.com_0.indexeddb.leveldb/CURRENT": b"MANIFEST-000001\n",
    "Default/Local Storage/leveldb/000005.ldb": b"\x00\x01local-storage\xff",
    "Default/Cache/Cache_Data/data_0": b"cache" * 100,
    "Default/Preferences": b'{"profile": {}}',
    "Default/Cookies": b"sqlite cookies",
    "IndexedDB/blob.bin": b"root-level-idb",
    "Local State": b'{"browser": {}}',
    "Crashpad/settings.dat": b"crash",
    "Safe Browsing/UrlMalware.store": b"sb",
}

KEPT_FILES = {
    "Default/IndexedDB/https_web.whatsapp.com_0.indexeddb.leveldb/000003.log",
    "Default/IndexedDB/https_web.whatsapp.com_0.indexeddb.leveldb/CURRENT",
    "Default/Local Storage/leveldb/000005.ldb",
    "IndexedDB/blob.bin",
}


def tree_files(root: Path) -> dict[str, bytes]:
    """Map every regular file under ``root`` to its contents."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file() and not p.is_symlink()
    }


@pytest.fixture
def make_profile() -> Callable[[Path], Path]:
    """Return a builder that lays out a browser-like profile at a path."""

    def _make(root: Path) -> Path:
        for rel, data in PROFILE_FILES.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        return root

    return _make


@pytest.fixture
def profile_dir(tmp_path: Path, make_profile) -> Path:
    """Provide a populated profile directory for the default session."""
    return make_profile(tmp_path / "auth" / "session")


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Provide a directory for transient archives."""
    path = tmp_path / "work"
    path.mkdir()
    return path


class FakeStore:
    """In-memory session store with failure injection and call tracking."""

    def __init__(self):
        self.snapshots: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail: dict[str, Exception] = {}
        self.save_gate: Optional[asyncio.Event] = None
        self.save_started = asyncio.Event()
        self.active_saves = 0
        self.max_active_saves = 0

    def _record(self, operation: str, session: str) -> None:
        self.calls.append((operation, session))
        if operation in self.fail:
            raise self.fail[operation]

    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]

    async def session_exists(self, session: str) -> bool:
        self._record("session_exists", session)
        return session in self.snapshots

    async def save(self, session: str, archive_path: Path) -> None:
        self._record("save", session)
        self.active_saves += 1
        self.max_active_saves = max(self.max_active_saves, self.active_saves)
        self.save_started.set()
        try:
            if self.save_gate is not None:
                await self.save_gate.wait()
            self.snapshots[session] = Path(archive_path).read_bytes()
        finally:
            self.active_saves -= 1

    async def extract(self, session: str, archive_path: Path) -> None:
        self._record("extract", session)
        Path(archive_path).write_bytes(self.snapshots[session])

    async def delete(self, session: str) -> None:
        self._record("delete", session)
        self.snapshots.pop(session, None)


@pytest.fixture
def store() -> FakeStore:
    """Provide an empty in-memory session store."""
    return FakeStore()


class ManualSleep:
    """Stand-in for asyncio.sleep that only returns when the test says so."""

    def __init__(self):
        self.delays: list[float] = []
        self._waiters: list[asyncio.Future] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        await fut

    async def wait_for_calls(self, count: int, timeout: float = 5.0) -> None:
        """Wait until ``count`` sleeps have been requested."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while len(self.delays) < count:
            if loop.time() > deadline:
                raise AssertionError(
                    f"expected {count} sleeps, got {len(self.delays)}"
                )
            await asyncio.sleep(0.01)

    async def tick(self) -> None:
        """Release the oldest pending sleep and wait for the next one."""
        count = len(self.delays)
        fut = self._waiters.pop(0)
        fut.set_result(None)
        await self.wait_for_calls(count + 1)


@pytest.fixture
def manual_sleep() -> ManualSleep:
    """Provide a controllable sleep for the backup timer."""
    return ManualSleep()
