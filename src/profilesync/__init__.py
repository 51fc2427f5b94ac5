"""
profilesync -- remote-backed persistence for browser profile directories.

Snapshot the profile. Prune it to what matters. Ship it to the store.
Restore it before the browser ever opens.

Entry point for hosts: profilesync.synchronizer.SessionSynchronizer
"""

import os

__version__ = "0.1.0"

PROFILESYNC_HOME = os.environ.get("PROFILESYNC_HOME", "./.wwebjs_auth")

from .models import SyncSettings, ValidationError  # noqa: E402
from .synchronizer import SessionSynchronizer  # noqa: E402

__all__ = ["SessionSynchronizer", "SyncSettings", "ValidationError"]
