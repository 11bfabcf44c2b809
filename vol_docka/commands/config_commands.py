"""Configuration management commands."""

import os
import subprocess
from pathlib import Path
from typing import Optional

import typer

from ..helpers import Config, SystemUtils, create_default_config, get_logger
from ..helpers.ui_utils import console, create_status_table, print_error, print_success, print_warning
from ..cores import ConnectionCheckError
from .backup_commands import build_shell, ensure_config

logger = get_logger(__name__)


# -------------------------
# Commands
# -------------------------

def cmd_config(ctx: typer.Context):
    """Show current configuration."""
    cfg = ensure_config(ctx)

    typer.echo(f"Configuration file: {cfg.config_file}")
    typer.echo("=" * 60)

    for section, options in cfg.sections().items():
        typer.echo(f"\n[{section}]")
        for option, value in options.items():
            if 'password' in option.lower() or 'token' in option.lower():
                value = '***MASKED***'
            typer.echo(f"  {option} = {value}")


def cmd_new_config(
    force: bool = False,
    edit: bool = False,
    path: Optional[Path] = None,
):
    """Create new configuration file."""
    target = Path(path).expanduser() if path else None
    if target is None:
        for candidate in Config.search_paths():
            if candidate.exists():
                target = candidate
                break

    if target is not None and target.exists() and not force:
        print_warning(f"Config already exists at: {target}")
        typer.echo("Use --force to overwrite")
        raise typer.Exit(code=1)

    typer.echo("Creating new configuration...")
    created_path = create_default_config(target, force=True)
    print_success(f"Config created at: {created_path}")
    typer.echo("Important settings to configure:")
    typer.echo("  • [remote] host    - Docker host to back up")
    typer.echo("  • [remote] ssh_key - Key for passwordless ssh")
    typer.echo("  • [backup] local_dir - Where backups are stored")

    if edit:
        editor = os.environ.get('EDITOR', 'nano')
        typer.echo(f"\nOpening in {editor}...")
        subprocess.call([editor, str(created_path)])


def cmd_check(ctx: typer.Context, skip_ssh: bool = False):
    """Validate configuration, local tools and ssh connectivity."""
    cfg = ensure_config(ctx)
    ok = True

    table = create_status_table("Vol-Docka check")
    table.add_row("Config file", str(cfg.config_file))
    tools = SystemUtils.check_required_tools()
    for tool, present in tools.items():
        table.add_row(f"Tool: {tool}", "[green]found[/green]" if present else "[red]missing[/red]")
        ok = ok and present
    table.add_row("CPU / RAM", f"{SystemUtils.get_cpu_count()} CPUs, {SystemUtils.get_available_ram():.1f} GB")
    console.print(table)

    errors = cfg.validate()
    for err in errors:
        print_error(err)
    if errors:
        ok = False
    else:
        print_success("Configuration valid")

    if not skip_ssh and cfg.remote_host:
        shell = build_shell(cfg)
        try:
            shell.check_connection()
            print_success(f"SSH connection to {shell.target} OK")
        except ConnectionCheckError as e:
            print_error(str(e))
            ok = False

    if not ok:
        raise typer.Exit(code=1)


# -------------------------
# Registration
# -------------------------

def register(app: typer.Typer):
    """Register all configuration commands."""

    @app.command("show-config")
    def _config_cmd(ctx: typer.Context):
        """Show current configuration."""
        cmd_config(ctx)

    @app.command("new-config")
    def _new_config_cmd(
        force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing config"),
        edit: bool = typer.Option(False, "--edit/--no-edit", help="Open in editor after creation"),
        path: Optional[Path] = typer.Option(None, "--path", help="Custom config path"),
    ):
        """Create new configuration file."""
        cmd_new_config(force, edit, path)

    @app.command("check")
    def _check_cmd(
        ctx: typer.Context,
        skip_ssh: bool = typer.Option(False, "--skip-ssh", help="Do not test the ssh connection"),
    ):
        """Validate configuration and connectivity."""
        cmd_check(ctx, skip_ssh)
