"""
calsync command line.

Mirrors the calendars of journal server accounts into local calendars and
keeps them synchronized, once (``calsync sync``) or in the background
(``calsync daemon start``).

Usage:
    calsync init-config                   # write a commented config.yaml
    calsync sync                          # one pass for every account
    calsync sync -a personal --manual     # one account, skip the checks
    calsync list-calendars -a personal
    calsync select-calendar <url> -a personal --disable
    calsync status
"""

import sys
from pathlib import Path
from typing import Any, NoReturn, Optional

import click

from calsync import __version__
from calsync.cli.formatters import show_calendars, show_outcome, show_sync_state
from calsync.config.accounts import AccountConfigError, AccountSettingsProvider
from calsync.config.generator import save_config_file
from calsync.config.loader import DEFAULT_CONFIG_FILE, ConfigError, ConfigLoader
from calsync.storage.db import SyncDatabase
from calsync.storage.mirror import LocalMirrorStore
from calsync.sync.collection import SERVICE_CALDAV
from calsync.sync.runner import SyncRunner, build_orchestrator
from calsync.utils import resolve_config_dir
from calsync.utils.logging import cleanup_old_logs, get_logger, setup_logging

# SQLite file inside the configuration directory
DEFAULT_DATABASE_FILE = "calsync.db"

logger = get_logger(__name__)


def fail(message: str) -> NoReturn:
    """Print an error in red on stderr and exit with status 1."""
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


def get_config_dir(config_dir: Optional[str]) -> Path:
    return resolve_config_dir(config_dir)


def get_database_path(ctx: click.Context) -> Path:
    """The configured ``database`` path, else calsync.db in the config dir."""
    configured = ctx.obj["config"].get("database")
    if configured:
        return Path(configured).expanduser()
    return ctx.obj["config_dir"] / DEFAULT_DATABASE_FILE


def open_database(ctx: click.Context) -> SyncDatabase:
    db_path = get_database_path(ctx)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    database = SyncDatabase(str(db_path))
    database.initialize()
    return database


def load_accounts(ctx: click.Context, account: Optional[str] = None) -> AccountSettingsProvider:
    """
    Parse the ``accounts`` section.

    Exits if an entry is invalid, or if ``account`` is given but not configured.
    """
    try:
        settings = AccountSettingsProvider.from_config(ctx.obj["config"])
    except AccountConfigError as e:
        fail(str(e))
    if account is not None and account not in settings:
        fail(f"Unknown account '{account}' ({', '.join(settings.account_ids) or 'none configured'})")
    return settings


def read_config(config_dir: Path, config_file: Path) -> dict[str, Any]:
    """Load and validate the config file; a broken file only warns."""
    loader = ConfigLoader(config_dir=config_dir)
    try:
        config = loader.load_from_file(config_file)
        loader.validate(config)
    except ConfigError as e:
        click.echo(click.style(f"Warning: ignoring configuration file: {e}", fg="yellow"), err=True)
        return {}
    return config


@click.group()
@click.version_option(version=__version__, prog_name="calsync")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level.")
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(file_okay=False),
    envvar="CALSYNC_CONFIG_DIR",
    help="Directory of config.yaml, the database and logs (default: ~/.calsync).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(dir_okay=False),
    envvar="CALSYNC_CONFIG_FILE",
    help="Use this configuration file instead of <config dir>/config.yaml.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: Optional[str],
    config_file: Optional[str],
) -> None:
    """
    Calendar collection sync for journal servers.

    Keeps a local mirror of the calendars hosted on each configured journal
    server account and synchronizes every mirrored calendar.
    """
    ctx.ensure_object(dict)
    directory = get_config_dir(config_dir)
    path = Path(config_file).expanduser() if config_file else directory / DEFAULT_CONFIG_FILE
    config = read_config(directory, path)

    verbose = verbose or bool(config.get("verbose", False))
    ctx.obj.update(config_dir=directory, config_file=path, config=config, verbose=verbose)

    log_dir = Path(config["log_dir"]).expanduser() if config.get("log_dir") else None
    setup_logging(verbose=verbose, log_dir=log_dir)
    cleanup_old_logs(log_dir=log_dir, keep_count=config.get("log_retention_count", 10))


# =============================================================================
# Sync
# =============================================================================


@cli.command("sync")
@click.option("--account", "-a", default=None, help="Only this account (default: all).")
@click.option(
    "--manual",
    "-m",
    is_flag=True,
    help="Run even if the account is disabled or the network looks unusable.",
)
@click.pass_context
def sync_command(ctx: click.Context, account: Optional[str], manual: bool) -> None:
    """
    Synchronize calendar collections.

    Fetches the calendar list from the server, creates, updates and removes
    local calendars to match it, then synchronizes each local calendar.
    Exits with status 1 if any pass failed.

    Examples:

        calsync sync

        calsync sync --account personal --manual
    """
    settings = load_accounts(ctx, account)
    account_ids = [account] if account else settings.account_ids
    if not account_ids:
        click.echo("No accounts configured. Add one to the 'accounts' section of")
        click.echo(f"  {ctx.obj['config_file']}")
        sys.exit(1)

    try:
        database = open_database(ctx)
        runner = SyncRunner(build_orchestrator(ctx.obj["config"], database, settings), database)
    except Exception as e:
        logger.exception(f"Cannot set up sync: {e}")
        fail(str(e))

    failed = False
    for account_id in account_ids:
        outcome = runner.run(account_id, manual=manual)
        show_outcome(outcome, verbose=ctx.obj["verbose"])
        failed = failed or outcome.has_errors
    if failed:
        sys.exit(1)


# =============================================================================
# Status
# =============================================================================


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """
    Show accounts, their latest pass and standing failure notifications.
    """
    config_file: Path = ctx.obj["config_file"]
    found = "present" if config_file.exists() else click.style("missing", fg="red")
    click.echo(f"Config directory: {ctx.obj['config_dir']}")
    click.echo(f"Config file:      {config_file} ({found})")

    settings = load_accounts(ctx)
    click.echo(f"Accounts: {', '.join(settings.account_ids) or 'none configured'}\n")

    if not get_database_path(ctx).exists():
        click.echo("Sync database: none yet (no pass has run)")
        return

    try:
        database = open_database(ctx)
        states = {a.account_id: database.get_sync_state(a.account_id) for a in settings}
        notifications = database.get_notifications()
    except Exception as e:
        logger.exception(f"Cannot read sync status: {e}")
        fail(str(e))

    for account_id, state in states.items():
        show_sync_state(account_id, state)

    if notifications:
        click.echo(click.style("\nNotifications:", fg="yellow"))
        for notification in notifications:
            click.echo(
                click.style(notification["title"], fg="red") + f" ({notification['created_at']})"
            )
            click.echo(f"  {notification['message']}")


# =============================================================================
# Calendars
# =============================================================================


@cli.command("list-calendars")
@click.option("--account", "-a", required=True, help="Account whose calendars to show.")
@click.pass_context
def list_calendars_command(ctx: click.Context, account: str) -> None:
    """
    List the calendars of an account.

    Uses the calendar list fetched by the last sync and shows for each
    calendar whether it is selected and mirrored locally.
    """
    load_accounts(ctx, account)
    try:
        database = open_database(ctx)
        service_id = database.get_service(account, SERVICE_CALDAV)
        collections = database.list_collections(service_id, supports_vevent=True)
        with LocalMirrorStore(database).session() as store:
            mirrors = {mirror.url: mirror for mirror in store.find(account)}
    except Exception as e:
        logger.exception(f"Cannot list calendars of {account}: {e}")
        fail(str(e))

    click.echo(f"Calendars of {account}:\n")
    show_calendars(collections, mirrors)


@cli.command("select-calendar")
@click.argument("url")
@click.option("--account", "-a", required=True, help="Account the calendar belongs to.")
@click.option("--enable/--disable", default=True, help="Mirror the calendar or stop mirroring it.")
@click.pass_context
def select_calendar_command(ctx: click.Context, url: str, account: str, enable: bool) -> None:
    """
    Choose whether a calendar is mirrored.

    A deselected calendar loses its local calendar on the next sync.

    Example:

        calsync select-calendar 6f1c... --account personal --disable
    """
    load_accounts(ctx, account)
    try:
        database = open_database(ctx)
        service_id = database.get_service(account, SERVICE_CALDAV)
        known = service_id is not None and database.set_collection_sync(service_id, url, enable)
    except Exception as e:
        logger.exception(f"Cannot change selection of {url}: {e}")
        fail(str(e))

    if not known:
        click.echo("Run 'calsync sync' to fetch the calendar list first.", err=True)
        fail(f"No calendar {url} known for {account}")

    change = "selected for" if enable else "removed from"
    logger.info(f"{account}: calendar {url} {change} sync")
    click.echo(click.style(f"Calendar {url} {change} sync.", fg="green"))
    click.echo("Applied on the next sync.")


# =============================================================================
# Setup and maintenance
# =============================================================================


@cli.command("init-config")
@click.option("--force", is_flag=True, help="Replace an existing configuration file.")
@click.pass_context
def init_config_command(ctx: click.Context, force: bool) -> None:
    """
    Write a configuration file listing every option.

    Options are commented out with their defaults; add accounts under
    ``accounts``.
    """
    config_file = ctx.obj["config_file"]
    saved, error = save_config_file(config_file, overwrite=force)
    if not saved:
        logger.error(f"Cannot write {config_file}: {error}")
        fail(str(error))

    click.echo(click.style(f"Wrote {config_file}", fg="green"))
    click.echo("Add your journal server accounts under 'accounts', then run 'calsync sync'.")


@cli.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def reset_command(ctx: click.Context, yes: bool) -> None:
    """
    Forget all local sync state.

    Drops the cached calendar lists, local calendars, recorded pass outcomes
    and notifications. Server data is not touched; the next sync rebuilds
    the local calendars.
    """
    if not get_database_path(ctx).exists():
        click.echo("No sync database yet, nothing to reset.")
        return

    if not yes:
        click.confirm("Delete all local calendars and sync state?", abort=True)

    try:
        database = open_database(ctx)
        database.clear_all_state()
        database.vacuum()
    except Exception as e:
        logger.exception(f"Reset failed: {e}")
        fail(str(e))

    logger.info("Local sync state cleared")
    click.echo(click.style("Local sync state cleared.", fg="green"))


# =============================================================================
# Daemon
# =============================================================================


def get_pid_file(ctx: click.Context) -> Path:
    from calsync.daemon import DEFAULT_PID_FILE

    configured = ctx.obj["config"].get("daemon_pid_file")
    return Path(configured).expanduser() if configured else DEFAULT_PID_FILE


@cli.group("daemon")
def daemon_group() -> None:
    """
    Run sync passes in the background.

    Examples:

        calsync daemon start --interval 30m

        calsync daemon status

        calsync daemon stop
    """


@daemon_group.command("start")
@click.option(
    "--interval",
    "-i",
    default=None,
    help="Time between cycles, e.g. 30s, 5m, 1h, 1d (default: daemon_interval or 1h).",
)
@click.option("--no-initial-sync", is_flag=True, help="Wait one interval before the first cycle.")
@click.pass_context
def daemon_start_command(ctx: click.Context, interval: Optional[str], no_initial_sync: bool) -> None:
    """
    Start the daemon in the foreground.

    Every cycle runs one scheduled pass per account, several accounts at a
    time. An account whose server asked to retry later sits out until then.
    SIGTERM or Ctrl+C stops the daemon once running passes finished their
    current calendar.
    """
    from calsync.daemon import (
        DEFAULT_MAX_WORKERS,
        DaemonAlreadyRunningError,
        DaemonError,
        DaemonScheduler,
        parse_interval,
    )

    config = ctx.obj["config"]
    interval = interval or config.get("daemon_interval", "1h")
    try:
        seconds = parse_interval(interval)
    except ValueError as e:
        fail(str(e))

    settings = load_accounts(ctx)
    if not settings.account_ids:
        fail("No accounts configured.")

    scheduler = DaemonScheduler(
        interval=seconds,
        pid_file=get_pid_file(ctx),
        run_immediately=not no_initial_sync,
        max_workers=config.get("daemon_max_workers", DEFAULT_MAX_WORKERS),
    )
    scheduler.set_accounts(settings.account_ids)

    click.echo(f"Syncing {', '.join(settings.account_ids)} every {interval} (Ctrl+C to stop)")
    if ctx.obj["verbose"]:
        click.echo(f"  PID file: {scheduler.pid_file}")
        click.echo(f"  First cycle: {'after one interval' if no_initial_sync else 'now'}")

    try:
        database = open_database(ctx)
        runner = SyncRunner(build_orchestrator(config, database, settings), database)
        scheduler.set_sync_callback(
            lambda account_id, cancel_event: runner.run(account_id, cancel_event=cancel_event)
        )
        scheduler.run()
    except DaemonAlreadyRunningError as e:
        click.echo("Stop it first with 'calsync daemon stop'.", err=True)
        fail(str(e))
    except DaemonError as e:
        logger.error(f"Daemon failed: {e}")
        fail(str(e))
    except Exception as e:
        logger.exception(f"Daemon crashed: {e}")
        fail(str(e))

    click.echo(click.style("Daemon stopped.", fg="green"))


@daemon_group.command("stop")
@click.pass_context
def daemon_stop_command(ctx: click.Context) -> None:
    """
    Stop the running daemon.

    Running passes finish their current calendar first.
    """
    from calsync.daemon import DaemonScheduler

    pid_file = get_pid_file(ctx)
    pid = DaemonScheduler.get_running_pid(pid_file)
    if pid is None:
        click.echo("No daemon running.")
        return

    if not DaemonScheduler.stop_running_daemon(pid_file):
        fail(f"Could not signal daemon {pid}")
    logger.info(f"Asked daemon {pid} to stop")
    click.echo(click.style(f"Asked daemon {pid} to stop.", fg="green"))


@daemon_group.command("status")
@click.pass_context
def daemon_status_command(ctx: click.Context) -> None:
    """Show whether the daemon is running."""
    from calsync.daemon import DaemonScheduler, PIDFileError, PIDFileManager

    pid_file = get_pid_file(ctx)
    try:
        pid = DaemonScheduler.get_running_pid(pid_file)
        leftover = PIDFileManager(pid_file).read() if pid is None else None
    except PIDFileError as e:
        fail(str(e))

    if pid is not None:
        click.echo(f"Daemon: {click.style('running', fg='green')} (PID {pid})")
    else:
        click.echo(f"Daemon: {click.style('stopped', fg='yellow')}")
        if leftover is not None:
            click.echo(f"Leftover PID file of process {leftover}, replaced on next start.")
        else:
            click.echo("No daemon running.")

    if ctx.obj["verbose"]:
        click.echo(f"PID file: {pid_file}")
