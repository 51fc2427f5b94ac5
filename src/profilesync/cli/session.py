"""Session commands: status, backup, restore, prune, clear."""

from __future__ import annotations

import asyncio
import json
import sys

import click
from rich.panel import Panel
from rich.table import Table

from ..models import SyncSettings
from ..pruner import prune as prune_profile
from ..recovery import RecoveryController
from ..scheduler import BackupScheduler
from ..store import LocalDirectoryStore, RemoteStoreClient, SessionStore
from ..synchronizer import SessionSynchronizer
from ._common import console, human_size, session_options


def register_session_commands(main: click.Group) -> None:
    """Register the session commands on the main CLI group."""

    @main.command()
    @session_options
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def status(settings: SyncSettings, store: SessionStore, json_out: bool):
        """Show the local profile and stored snapshot for a session."""
        session = settings.session_name
        profile_dir = settings.profile_dir
        client = RemoteStoreClient(store)
        stored = asyncio.run(client.exists(session))

        snapshots = store.list_sessions() if isinstance(store, LocalDirectoryStore) else []

        if json_out:
            click.echo(json.dumps({
                "session": session,
                "profile_dir": str(profile_dir),
                "profile_exists": profile_dir.exists(),
                "snapshot_stored": stored,
                "snapshots": [
                    {"session": s["session"], "size": s["size"]} for s in snapshots
                ],
            }, indent=2))
            return

        console.print()
        console.print(Panel(
            f"Session: [bold]{session}[/]\n"
            f"Profile: [cyan]{profile_dir}[/] "
            + ("[green]present[/]" if profile_dir.exists() else "[dim]absent[/]")
            + "\nSnapshot: "
            + ("[green]stored[/]" if stored else "[yellow]none[/]"),
            title="profilesync",
            border_style="bright_blue",
        ))

        if snapshots:
            table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
            table.add_column("Session", style="cyan")
            table.add_column("Size", justify="right")
            for snap in snapshots:
                table.add_row(snap["session"], human_size(snap["size"]))
            console.print(table)
        console.print()

    @main.command()
    @session_options
    def backup(settings: SyncSettings, store: SessionStore):
        """Prune, pack and upload the session profile now."""
        scheduler = BackupScheduler(
            RemoteStoreClient(store),
            required_paths=settings.required_paths,
            nested_dirs=settings.nested_dirs,
            work_dir=settings.work_dir,
        )
        console.print(f"\n  Backing up [cyan]{settings.session_name}[/]...", end=" ")
        ok = asyncio.run(scheduler.backup(settings.session_name, settings.profile_dir))
        if not ok:
            reason = scheduler.state.last_error or "profile directory not found"
            console.print(f"[red]failed[/]\n  [dim]{reason}[/]")
            sys.exit(1)
        console.print("[green]done[/]")

    @main.command()
    @session_options
    def restore(settings: SyncSettings, store: SessionStore):
        """Replace the local profile with the stored snapshot."""
        controller = RecoveryController(RemoteStoreClient(store), work_dir=settings.work_dir)
        outcome = asyncio.run(
            controller.recover(settings.session_name, settings.profile_dir)
        )
        if outcome.error:
            console.print(
                f"[bold red]Restore failed[/] during {outcome.failed_phase.value}: "
                f"{outcome.error}"
            )
            sys.exit(1)
        if outcome.restored:
            console.print(f"[green]Restored[/] {outcome.session} to [cyan]{outcome.profile_dir}[/]")
        else:
            console.print(f"[yellow]No snapshot stored for {outcome.session}.[/]")

    @main.command()
    @session_options
    @click.option("--dry-run", is_flag=True, help="List entries without deleting.")
    def prune(settings: SyncSettings, store: SessionStore, dry_run: bool):
        """Delete profile entries that are not needed to restore the session."""
        profile_dir = settings.profile_dir
        if not profile_dir.is_dir():
            console.print(f"[bold red]No profile at[/] {profile_dir}")
            sys.exit(1)

        removed = prune_profile(
            profile_dir, settings.required_paths, settings.nested_dirs, dry_run=dry_run
        )
        verb = "Would remove" if dry_run else "Removed"
        console.print(f"\n  {verb} [bold]{len(removed)}[/] entries from {profile_dir}")
        for rel in removed:
            console.print(f"    [dim]{rel}[/]")

    @main.command()
    @session_options
    @click.option("--yes", is_flag=True, help="Skip confirmation.")
    def clear(settings: SyncSettings, store: SessionStore, yes: bool):
        """Delete the stored snapshot and the local profile."""
        if not yes:
            click.confirm(
                f"Delete snapshot and profile for {settings.session_name}?", abort=True
            )
        sync = SessionSynchronizer(store, settings=settings)
        asyncio.run(sync.on_logout())
        console.print(f"[green]Cleared[/] {settings.session_name}")
