################################################################################
# VOL-DOCKA
#
# @file:        backup_commands.py
# @module:      vol_docka.commands.backup_commands
# @description: CLI commands for backup runs, volume listing and impact analysis.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""Backup-related commands."""

from typing import List, Optional

import typer
from pydantic import ValidationError

from ..helpers import Config, RunSettings, SystemUtils, get_logger
from ..helpers.ui_utils import (
    console,
    create_status_table,
    create_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from ..cores import (
    BackupManager,
    ConnectionCheckError,
    DaemonQuery,
    ImpactAnalyzer,
    RemoteShell,
    SafeExitManager,
)
from ..types import RunStatus, RunSummary

logger = get_logger(__name__)


def get_config(ctx: typer.Context) -> Optional[Config]:
    """Get config from context."""
    return ctx.obj.get("config")


def ensure_config(ctx: typer.Context) -> Config:
    """Ensure config exists or exit."""
    cfg = get_config(ctx)
    if not cfg:
        print_error("No configuration found")
        typer.echo("Run: vol-docka new-config")
        raise typer.Exit(code=1)
    return cfg


def build_shell(
    cfg: Config,
    host: Optional[str] = None,
    user: Optional[str] = None,
    ssh_key: Optional[str] = None,
) -> RemoteShell:
    """RemoteShell from config with per-run overrides."""
    host = host or cfg.remote_host
    if not host:
        print_error("No remote host configured")
        typer.echo("Set [remote] host in the config, REMOTE_HOST, or pass --host")
        raise typer.Exit(code=2)
    return RemoteShell(
        host=host,
        user=user or cfg.remote_user,
        ssh_key=ssh_key or cfg.ssh_key,
        connect_timeout=cfg.getint("remote", "connect_timeout", 10),
    )


def build_settings(cfg: Config, **overrides) -> RunSettings:
    """RunSettings from config + CLI flags; invalid values exit with code 2."""
    try:
        return RunSettings.from_config(cfg, **overrides)
    except ValidationError as e:
        print_error("Invalid run settings:")
        for err in e.errors():
            field = ".".join(str(p) for p in err["loc"])
            typer.echo(f"  - {field}: {err['msg']}")
        raise typer.Exit(code=2)


def build_query(cfg: Config, shell: RemoteShell) -> DaemonQuery:
    return DaemonQuery(
        shell,
        check_all_contexts=cfg.getboolean("remote", "check_all_contexts", True),
        include_system_docker=cfg.getboolean("remote", "include_system_docker", True),
    )


def preflight(shell: RemoteShell) -> None:
    """Local tools + ssh reachability; exits 1 on failure."""
    missing = SystemUtils.missing_tools()
    if missing:
        print_error(f"Missing required tools: {', '.join(missing)}")
        raise typer.Exit(code=1)
    try:
        shell.check_connection()
    except ConnectionCheckError as e:
        print_error(str(e))
        typer.echo("Please check:")
        typer.echo("  1. The remote host is reachable")
        typer.echo("  2. SSH key authentication is set up")
        typer.echo("  3. The remote user has Docker permissions")
        raise typer.Exit(code=1)


def render_summary(summary: RunSummary) -> None:
    """Print the end-of-run summary."""
    title = "Dry Run Summary" if summary.dry_run else "Backup Summary"
    table = create_status_table(title)
    table.add_row("Status", summary.status.value)
    table.add_row("Duration", SystemUtils.format_duration(summary.duration_seconds))
    table.add_row("Volumes", f"{summary.succeeded}/{summary.processed} succeeded")
    if not summary.dry_run and summary.total_bytes:
        table.add_row("Downloaded", SystemUtils.format_bytes(summary.total_bytes))

    stop = summary.stop_report
    restart = summary.restart_report
    table.add_row("Containers stopped", str(len(stop.stopped)))
    if stop.killed:
        table.add_row("Containers killed", ", ".join(stop.killed))
    table.add_row("Containers restarted", str(len(restart.restarted)))
    if summary.containers_not_managed:
        table.add_row("Containers", "[yellow]not managed (running during backup)[/yellow]")
    console.print(table)

    if not summary.dry_run:
        for outcome in summary.outcomes:
            if outcome.succeeded and outcome.local_path:
                print_info(
                    f"{outcome.volume}: {outcome.local_path} "
                    f"({SystemUtils.format_bytes(outcome.size_bytes)})"
                )

    for volume in summary.failed_volumes:
        print_error(f"Backup failed: {volume}")
    for name, err in stop.failures.items():
        print_warning(f"Stop failed: {name}: {err}")
    for name, err in restart.failures.items():
        print_error(f"Restart failed: {name}: {err}")
    if restart.skipped and restart.still_stopped:
        print_warning("Auto-restart disabled, containers left stopped:")
    elif restart.still_stopped:
        print_error("Containers still stopped, manual intervention required:")
    for name in restart.still_stopped:
        typer.echo(f"  - {name}")

    if summary.message and summary.status is not RunStatus.COMPLETED:
        typer.echo(summary.message)
    if summary.status is RunStatus.COMPLETED and not summary.dry_run:
        print_success("Backup completed")


# -------------------------
# Commands
# -------------------------

def cmd_backup(
    ctx: typer.Context,
    volumes: Optional[List[str]] = None,
    interactive: Optional[bool] = None,
    auto_confirm: Optional[bool] = None,
    dry_run: bool = False,
    stop_timeout: Optional[int] = None,
    force_stop: Optional[bool] = None,
    auto_restart: Optional[bool] = None,
    keep: Optional[int] = None,
    workers: Optional[str] = None,
    compress: Optional[bool] = None,
    progress: Optional[bool] = None,
    verbose: bool = False,
    host: Optional[str] = None,
    user: Optional[str] = None,
    ssh_key: Optional[str] = None,
):
    """Back up remote Docker volumes."""
    cfg = ensure_config(ctx)
    settings = build_settings(
        cfg,
        interactive=interactive,
        auto_confirm=auto_confirm,
        dry_run=dry_run,
        stop_timeout=stop_timeout,
        force_stop=force_stop,
        auto_restart=auto_restart,
        keep_backups=keep,
        parallel_workers=workers,
        compress=compress,
        show_progress=progress,
        verbose=verbose,
    )
    shell = build_shell(cfg, host, user, ssh_key)

    missing = SystemUtils.missing_tools()
    if missing:
        print_error(f"Missing required tools: {', '.join(missing)}")
        raise typer.Exit(code=1)

    if settings.dry_run:
        print_warning("DRY RUN MODE - No changes will be made")

    exit_manager = SafeExitManager.get_instance()
    exit_manager.install_handlers()
    try:
        summary = BackupManager(shell, settings).run(volumes or None)
    finally:
        exit_manager.restore_handlers()

    render_summary(summary)
    if summary.exit_code:
        raise typer.Exit(code=summary.exit_code)


def cmd_list(
    ctx: typer.Context,
    host: Optional[str] = None,
    user: Optional[str] = None,
    ssh_key: Optional[str] = None,
):
    """List remote volumes with their exclusion status."""
    cfg = ensure_config(ctx)
    shell = build_shell(cfg, host, user, ssh_key)
    preflight(shell)

    volumes = build_query(cfg, shell).list_volumes()
    if not volumes:
        print_warning("No Docker volumes found")
        return

    excluded = set(cfg.exclude_volumes)
    table = create_table(
        f"Docker volumes on {shell.host}",
        [("#", "dim", 4), ("Volume", "cyan", None), ("Scope", "white", None), ("Backup", "white", None)],
    )
    for i, (name, scope) in enumerate(volumes.items(), 1):
        table.add_row(str(i), name, scope.name,
                      "[yellow]excluded[/yellow]" if name in excluded else "[green]yes[/green]")
    console.print(table)


def cmd_impact(
    ctx: typer.Context,
    volumes: Optional[List[str]] = None,
    host: Optional[str] = None,
    user: Optional[str] = None,
    ssh_key: Optional[str] = None,
):
    """Show which containers reference each volume (read-only)."""
    cfg = ensure_config(ctx)
    shell = build_shell(cfg, host, user, ssh_key)
    preflight(shell)

    query = build_query(cfg, shell)
    available = query.list_volumes()
    if volumes:
        missing = [v for v in volumes if v not in available]
        if missing:
            print_error(f"Volume(s) not found on remote host: {', '.join(missing)}")
            raise typer.Exit(code=1)
        selected = list(dict.fromkeys(volumes))
    else:
        selected = list(available)

    if not selected:
        print_warning("No Docker volumes found")
        return

    impact = ImpactAnalyzer(query).analyze(selected)
    table = create_table(
        "Volume impact",
        [("Volume", "cyan", None), ("Container", "white", None), ("Status", "white", None),
         ("Mount", "dim", None), ("Scope", "dim", None)],
    )
    for volume, refs in impact.items():
        if not refs:
            table.add_row(volume, "-", "-", "-", "-")
            continue
        for ref in refs:
            style = "green" if ref.is_running else "dim"
            table.add_row(
                volume, ref.name, f"[{style}]{ref.status.value}[/{style}]",
                ref.mount_path if ref.mount_confirmed else "(unconfirmed)",
                ref.scope.name if ref.scope else "-",
            )
    console.print(table)
    typer.echo(
        f"\n{impact.running_count} running of {impact.total_count} container(s) "
        f"would be stopped for a backup of {len(selected)} volume(s)"
    )


# -------------------------
# Registration
# -------------------------

def register(app: typer.Typer):
    """Register all backup commands."""

    @app.command("backup")
    def _backup_cmd(
        ctx: typer.Context,
        volume: Optional[List[str]] = typer.Option(
            None, "--volume", "-V", help="Back up only these volumes (repeatable)"
        ),
        interactive: Optional[bool] = typer.Option(
            None, "--interactive/--non-interactive", help="Prompt for selection and consent"
        ),
        auto_confirm: Optional[bool] = typer.Option(
            None, "--auto-confirm", "-y", help="Stop running containers without asking"
        ),
        dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Simulate, change nothing"),
        stop_timeout: Optional[int] = typer.Option(
            None, "--stop-timeout", help="Seconds to wait for a graceful stop"
        ),
        force_stop: Optional[bool] = typer.Option(
            None, "--force-stop", help="Kill containers that fail to stop"
        ),
        no_auto_restart: bool = typer.Option(
            False, "--no-auto-restart", help="Leave stopped containers stopped"
        ),
        keep: Optional[int] = typer.Option(
            None, "--keep", help="Local backups to keep per volume (0 = all)"
        ),
        workers: Optional[str] = typer.Option(
            None, "--workers", help="Parallel volume backups (number or 'auto')"
        ),
        no_compress: bool = typer.Option(False, "--no-compress", help="Disable rsync compression"),
        no_progress: bool = typer.Option(False, "--no-progress", help="Hide transfer progress"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose transfer output"),
        host: Optional[str] = typer.Option(None, "--host", help="Remote host (overrides config)"),
        user: Optional[str] = typer.Option(None, "--user", help="Remote user (overrides config)"),
        key: Optional[str] = typer.Option(None, "--key", help="SSH key file (overrides config)"),
    ):
        """Back up remote Docker volumes."""
        cmd_backup(
            ctx,
            volumes=volume,
            interactive=interactive,
            auto_confirm=auto_confirm,
            dry_run=dry_run,
            stop_timeout=stop_timeout,
            force_stop=force_stop,
            auto_restart=False if no_auto_restart else None,
            keep=keep,
            workers=workers,
            compress=False if no_compress else None,
            progress=False if no_progress else None,
            verbose=verbose,
            host=host,
            user=user,
            ssh_key=key,
        )

    @app.command("list")
    def _list_cmd(
        ctx: typer.Context,
        host: Optional[str] = typer.Option(None, "--host", help="Remote host (overrides config)"),
        user: Optional[str] = typer.Option(None, "--user", help="Remote user (overrides config)"),
        key: Optional[str] = typer.Option(None, "--key", help="SSH key file (overrides config)"),
    ):
        """List remote Docker volumes."""
        cmd_list(ctx, host, user, key)

    @app.command("impact")
    def _impact_cmd(
        ctx: typer.Context,
        volume: Optional[List[str]] = typer.Option(
            None, "--volume", "-V", help="Analyse only these volumes"
        ),
        host: Optional[str] = typer.Option(None, "--host", help="Remote host (overrides config)"),
        user: Optional[str] = typer.Option(None, "--user", help="Remote user (overrides config)"),
        key: Optional[str] = typer.Option(None, "--key", help="SSH key file (overrides config)"),
    ):
        """Show containers that would be stopped for a backup."""
        cmd_impact(ctx, volume, host, user, key)
