"""Shared utilities for CLI command modules.

Provides the Rich console, logging setup, and the option set every
session command accepts.
"""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

import click
from rich.console import Console

from .. import PROFILESYNC_HOME
from ..config import load_settings
from ..models import SyncSettings, ValidationError
from ..store import create_store

console = Console()
logger = logging.getLogger("profilesync.cli")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Configure console logging for CLI runs."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger("profilesync")
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def session_options(func: Callable) -> Callable:
    """Attach the config/data-path/client-id/store-path options."""

    @click.option("--config", "config_file", default=None, type=click.Path(),
                  help="YAML config file.")
    @click.option("--data-path", default=None, type=click.Path(),
                  help=f"Base directory for session profiles (default {PROFILESYNC_HOME}).")
    @click.option("--client-id", default=None, help="Session instance id.")
    @click.option("--store-path", default=None, type=click.Path(),
                  help="Directory of the local session store.")
    @functools.wraps(func)
    def wrapper(config_file, data_path, client_id, store_path, **kwargs):
        settings = resolve_settings(config_file, data_path, client_id, store_path)
        store = create_store(settings.store, settings.data_path)
        return func(settings=settings, store=store, **kwargs)

    return wrapper


def resolve_settings(
    config_file: Optional[str],
    data_path: Optional[str],
    client_id: Optional[str],
    store_path: Optional[str],
) -> SyncSettings:
    """Build settings from CLI options, exiting on invalid values."""
    try:
        settings = load_settings(
            Path(config_file) if config_file else None,
            data_path=Path(data_path) if data_path else None,
            client_id=client_id,
        )
    except ValidationError as exc:
        console.print(f"[bold red]Invalid settings:[/] {exc}")
        sys.exit(2)
    if store_path:
        settings.store.local_path = Path(store_path)
    return settings


def human_size(size: int) -> str:
    """Format a byte count for display."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / 1024 / 1024:.1f} MB"

