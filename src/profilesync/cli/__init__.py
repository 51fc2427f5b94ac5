"""
profilesync CLI -- inspect and operate session snapshots by hand.

The host normally drives everything through SessionSynchronizer.
These commands exist for operators: check what is stored, force a
backup, restore onto a fresh machine, or wipe a session.

Entry point: profilesync.cli:main
"""

from __future__ import annotations

import click

from .. import __version__
from ._common import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="profilesync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """profilesync -- remote-backed browser session profiles."""
    setup_logging(verbose)


# ---------------------------------------------------------------------------
# Register command groups from modular files
# ---------------------------------------------------------------------------

from .session import register_session_commands  # noqa: E402

register_session_commands(main)
