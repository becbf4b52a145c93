"""CLI output formatting functions.

This module contains functions for displaying sync outcomes, reconciliation
details and calendar listings on the command line.
"""

from typing import TYPE_CHECKING, Any

import click

from calsync.sync.collection import CollectionInfo, LocalMirror, format_color

if TYPE_CHECKING:
    from calsync.sync.engine import SyncOutcome
    from calsync.sync.reconciler import ReconcileResult

# Entries shown per list before truncating
MAX_LISTED = 10


def _echo_urls(title: str, marker: str, urls: list[str]) -> None:
    if not urls:
        return
    click.echo(f"\n{title}:")
    for url in urls[:MAX_LISTED]:
        click.echo(f"  {marker} {url}")
    if len(urls) > MAX_LISTED:
        click.echo(f"  ... and {len(urls) - MAX_LISTED} more")


def show_reconcile_details(result: "ReconcileResult") -> None:
    """
    Display the calendars a reconciliation created, updated and deleted.

    Args:
        result: The ReconcileResult to display
    """
    click.echo("\n=== Local Calendar Changes ===")
    _echo_urls("Created", "+", result.created)
    _echo_urls("Updated", "~", result.updated)
    _echo_urls("Deleted", "-", result.deleted)
    if result.errors:
        click.echo(click.style("\nFailed:", fg="red"))
        for entry in result.errors[:MAX_LISTED]:
            click.echo(f"  ! {entry.operation} {entry.url}: {entry.error}")


def show_outcome(outcome: "SyncOutcome", verbose: bool = False) -> None:
    """
    Display the outcome of one sync pass.

    Args:
        outcome: The SyncOutcome to display
        verbose: Also list the reconciled calendars
    """
    label = click.style(outcome.account_id, bold=True)

    if outcome.skipped:
        click.echo(f"{label}: " + click.style("skipped (preconditions not met)", fg="yellow"))
        return

    if outcome.failure is not None:
        status = click.style("failed", fg="red")
    elif outcome.cancelled:
        status = click.style("cancelled", fg="yellow")
    else:
        status = click.style("ok", fg="green")
    click.echo(f"{label}: {status} - {outcome.summary()}")

    if outcome.failure is not None:
        click.echo(f"  {outcome.failure.message}")
    if verbose and outcome.reconcile is not None:
        show_reconcile_details(outcome.reconcile)


def show_calendars(
    collections: dict[str, CollectionInfo], mirrors: dict[str, LocalMirror]
) -> None:
    """
    Display the remote calendars of an account and their local mirrors.

    Args:
        collections: Cached remote calendars keyed by url
        mirrors: Local mirrors keyed by url
    """
    if not collections and not mirrors:
        click.echo("No calendars found. Run 'calsync sync' to fetch them.")
        return

    click.echo(f"{'Sync':<5} {'Local':<6} {'Color':<8} {'Name':<30} URL")
    click.echo("-" * 80)
    for url, info in collections.items():
        sync = click.style("yes", fg="green") if info.sync else click.style("no ", fg="yellow")
        local = "yes" if url in mirrors else "-"
        flags = " (read-only)" if info.read_only else ""
        click.echo(
            f"{sync:<5} {local:<6} {format_color(info.color):<8} "
            f"{info.title[:30]:<30} {url}{flags}"
        )

    orphaned = [url for url in mirrors if url not in collections]
    if orphaned:
        click.echo(
            click.style(
                f"\n{len(orphaned)} local calendar(s) will be removed on next sync:",
                fg="yellow",
            )
        )
        for url in orphaned:
            click.echo(f"  - {url}")


def show_sync_state(account_id: str, state: "dict[str, Any] | None") -> None:
    """
    Display the recorded outcome of an account's latest pass.

    Args:
        account_id: Account to display
        state: Sync state from the database, or None if never synced
    """
    if not state:
        click.echo(f"{account_id}: Never synced")
        return

    last_sync = state.get("last_sync_at")
    last_success = state.get("last_success_at")
    click.echo(
        f"{account_id}: Last sync: {last_sync or 'Never'}, "
        f"last success: {last_success or 'Never'}, "
        f"calendars synced: {state.get('collections_synced', 0)}"
    )
    if state.get("skipped"):
        click.echo("  Last pass skipped (preconditions not met)")
    if state.get("last_error"):
        click.echo(click.style(f"  Last error: {state['last_error']}", fg="red"))
    if state.get("database_error"):
        click.echo(click.style("  Local storage error", fg="red"))
    if state.get("delay_until"):
        click.echo(f"  Server asked to wait until {state['delay_until']}")
