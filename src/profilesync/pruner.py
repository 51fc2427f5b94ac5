"""
Profile pruner -- keep what restores the session, drop the rest.

Browser profiles are mostly caches. Only a handful of entries carry the
authenticated session, and those live in two places: the profile root
and its ``Default`` subdirectory. Pruning applies the same allow-list at
both levels.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable, Optional

from .models import DEFAULT_NESTED_DIRS

logger = logging.getLogger("profilesync.pruner")


def remove_path(path: Path) -> bool:
    """Remove a file, symlink or directory tree.

    Returns:
        False if the entry was already gone.
    """
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except FileNotFoundError:
        return False
    return True


def _prune_level(
    directory: Path,
    required_paths: frozenset[str],
    root: Path,
    dry_run: bool,
) -> list[str]:
    removed: list[str] = []
    try:
        children = sorted(directory.iterdir())
    except FileNotFoundError:
        return removed

    for child in children:
        if child.name in required_paths:
            continue
        rel = child.relative_to(root).as_posix()
        if dry_run or remove_path(child):
            removed.append(rel)
    return removed


def prune(
    profile_dir: Path,
    required_paths: Iterable[str],
    nested_dirs: Optional[Iterable[str]] = None,
    dry_run: bool = False,
) -> list[str]:
    """Delete every profile entry not named in ``required_paths``.

    The filter runs on the immediate children of ``profile_dir``, then
    again one level inside each of ``nested_dirs`` that exists. Entries
    that are already gone are skipped. Running it twice is a no-op.

    Args:
        profile_dir: Root of the browser profile.
        required_paths: Entry names that must survive.
        nested_dirs: Subdirectories to prune one level down.
            Defaults to ``("Default",)``.
        dry_run: Report what would be removed without deleting.

    Returns:
        Relative paths of the removed (or removable) entries.

    Raises:
        OSError: If an entry cannot be removed, e.g. permission denied.
    """
    profile_dir = Path(profile_dir)
    keep = frozenset(required_paths)
    nested = DEFAULT_NESTED_DIRS if nested_dirs is None else tuple(nested_dirs)

    removed = _prune_level(profile_dir, keep, profile_dir, dry_run)
    for name in nested:
        sub = profile_dir / name
        if sub.is_dir() and not sub.is_symlink():
            removed.extend(_prune_level(sub, keep, profile_dir, dry_run))

    if dry_run:
        logger.info("Prune dry-run on %s: %d entries removable", profile_dir, len(removed))
    else:
        logger.info("Pruned %s: %d entries removed", profile_dir, len(removed))
    return removed
