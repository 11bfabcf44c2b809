#!/usr/bin/env python3
################################################################################
# VOL-DOCKA
#
# @file:        __main__.py
# @module:      vol_docka.__main__
# @description: Typer-based CLI entry point orchestrating Vol-Docka operations.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""
Vol-Docka main CLI

Typer-based CLI following the "tool bench" pattern:
- Configuration is loaded once at startup
- Commands retrieve tools from context instead of parameters
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from .helpers import Config, VERSION, get_logger, log_manager
from .helpers.ui_utils import console
from .commands import backup_commands, config_commands

app = typer.Typer(
    name="vol-docka",
    add_completion=False,
    help="Vol-Docka - consistent backups of remote Docker volumes.",
)
logger = get_logger(__name__)


# -------------------------
# Application Context
# -------------------------

@app.callback()
def initialize_context(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to configuration file."
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)."
    ),
    debug: bool = typer.Option(False, "--debug", help="Debug logging and tracebacks."),
):
    """
    Initialize application context before any command runs.
    Sets up logging and loads configuration once.
    """
    ctx.ensure_object(dict)

    try:
        cfg = Config(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] could not load configuration: {escape(str(e))}")
        cfg = None

    level = "DEBUG" if debug else (log_level or (cfg.get("logging", "level", "INFO") if cfg else "INFO"))
    try:
        log_manager.configure(
            level=str(level),
            log_file=(cfg.get("logging", "file") or None) if cfg else None,
            max_size_mb=cfg.getint("logging", "max_size_mb", 10) if cfg else 10,
            backup_count=cfg.getint("logging", "backup_count", 3) if cfg else 3,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=2)

    ctx.obj["config"] = cfg
    ctx.obj["config_path"] = config_path
    ctx.obj["debug"] = debug


# -------------------------
# Version
# -------------------------

@app.command("version")
def cmd_version():
    """Show Vol-Docka version."""
    console.print(f"[cyan]Vol-Docka[/cyan] v{VERSION}")


backup_commands.register(app)
config_commands.register(app)


# -------------------------
# Entrypoint
# -------------------------

def cli_main():
    """
    Entry point for CLI

    This function is called by the console script entry point.
    """
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        if "--debug" in sys.argv:
            raise
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
