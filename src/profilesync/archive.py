"""
Archive codec -- profile directories in and out of tar.gz streams.

Both directions stream. Packing walks the tree and writes members one
at a time; unpacking reads members one at a time. A large profile never
sits in memory.

The browser keeps writing while we pack. Files that disappear are
skipped, files that shrink are zero-padded, files that grow are cut at
the size we saw first. The snapshot is best-effort, not transactional.
"""

from __future__ import annotations

import gzip
import logging
import os
import tarfile
import zlib
from pathlib import Path
from typing import BinaryIO, Union

logger = logging.getLogger("profilesync.archive")


class ArchiveCorruptError(Exception):
    """Raised when an archive stream cannot be decoded."""


class _FixedSizeReader:
    """Yield exactly ``size`` bytes from ``fileobj``, padding with NULs."""

    def __init__(self, fileobj: BinaryIO, size: int):
        self._fileobj = fileobj
        self._remaining = size
        self.padded = 0

    def read(self, n: int = -1) -> bytes:
        if self._remaining <= 0:
            return b""
        if n < 0 or n > self._remaining:
            n = self._remaining
        data = self._fileobj.read(n)
        if len(data) < n:
            self.padded += n - len(data)
            data += b"\0" * (n - len(data))
        self._remaining -= len(data)
        return data


def _add_file(tar: tarfile.TarFile, path: Path, arcname: str) -> bool:
    """Add one regular file, sized from the open handle.

    Returns:
        False if the file vanished before it could be opened.
    """
    try:
        fh = open(path, "rb")
    except FileNotFoundError:
        logger.debug("File vanished during pack, skipping: %s", arcname)
        return False

    with fh:
        info = tar.gettarinfo(arcname=arcname, fileobj=fh)
        reader = _FixedSizeReader(fh, info.size)
        tar.addfile(info, reader)
        if reader.padded:
            logger.debug(
                "File shrank during pack, padded %d bytes: %s",
                reader.padded,
                arcname,
            )
    return True


def _add_entry(tar: tarfile.TarFile, path: Path, arcname: str) -> bool:
    """Add a directory or symlink entry (no content)."""
    try:
        info = tar.gettarinfo(str(path), arcname=arcname)
    except FileNotFoundError:
        logger.debug("Entry vanished during pack, skipping: %s", arcname)
        return False
    if info is None:
        logger.debug("Unsupported file type, skipping: %s", arcname)
        return False
    tar.addfile(info)
    return True


def pack(directory: Path, fileobj: BinaryIO) -> int:
    """Write a gzip-compressed tar stream of ``directory`` into ``fileobj``.

    Member names are relative to ``directory``. Symlinks are stored as
    links and never followed.

    Args:
        directory: Root of the tree to archive.
        fileobj: Writable binary file object receiving the stream.

    Returns:
        Number of members written.

    Raises:
        OSError: If ``directory`` does not exist or cannot be read.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise NotADirectoryError(f"Not a directory: {directory}")
    os.listdir(directory)

    count = 0
    with tarfile.open(fileobj=fileobj, mode="w|gz") as tar:
        for root, dirs, files in os.walk(directory):
            root_path = Path(root)
            dirs.sort()
            # Symlinked dirs are listed here but never descended into.
            for name in dirs:
                full_path = root_path / name
                arcname = full_path.relative_to(directory).as_posix()
                if _add_entry(tar, full_path, arcname):
                    count += 1

            for name in sorted(files):
                full_path = root_path / name
                arcname = full_path.relative_to(directory).as_posix()
                if full_path.is_symlink() or not full_path.is_file():
                    added = _add_entry(tar, full_path, arcname)
                else:
                    added = _add_file(tar, full_path, arcname)
                if added:
                    count += 1

    logger.debug("Packed %s (%d members)", directory, count)
    return count


def pack_to_file(directory: Path, archive_path: Path) -> Path:
    """Pack ``directory`` into a tar.gz file at ``archive_path``.

    A partially written archive is removed if packing fails.

    Returns:
        The archive path.
    """
    archive_path = Path(archive_path)
    try:
        with open(archive_path, "wb") as fh:
            count = pack(directory, fh)
    except BaseException:
        archive_path.unlink(missing_ok=True)
        raise

    logger.info(
        "Archive written: %s (%d members, %d bytes)",
        archive_path,
        count,
        archive_path.stat().st_size,
    )
    return archive_path


def unpack(source: Union[Path, str, BinaryIO], destination: Path) -> int:
    """Extract a tar.gz stream into an existing ``destination`` directory.

    Members are filtered with tarfile's ``data`` filter, so absolute
    paths, ``..`` traversal and links pointing outside ``destination``
    are skipped with a warning.

    Args:
        source: Archive path or readable binary file object.
        destination: Existing directory to extract into.

    Returns:
        Number of members extracted.

    Raises:
        ArchiveCorruptError: If the stream is not a valid tar.gz archive.
        OSError: If ``destination`` is missing or a write fails.
    """
    destination = Path(destination)
    if not destination.is_dir():
        raise NotADirectoryError(f"Extraction target is not a directory: {destination}")

    if isinstance(source, (str, Path)):
        with open(source, "rb") as fh:
            return _unpack_stream(fh, destination)
    return _unpack_stream(source, destination)


def _unpack_stream(fileobj: BinaryIO, destination: Path) -> int:
    count = 0
    skipped = 0
    try:
        with tarfile.open(fileobj=fileobj, mode="r|gz") as tar:
            for member in tar:
                try:
                    tar.extract(member, path=destination, filter="data")
                except tarfile.FilterError as exc:
                    logger.warning("Skipping unsafe archive member: %s", exc)
                    skipped += 1
                    continue
                count += 1
    except (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile) as exc:
        raise ArchiveCorruptError(f"Malformed archive: {exc}") from exc

    logger.info(
        "Archive unpacked to %s (%d members, %d skipped)",
        destination,
        count,
        skipped,
    )
    return count
