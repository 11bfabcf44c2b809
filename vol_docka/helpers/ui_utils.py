################################################################################
# VOL-DOCKA
#
# @file:        ui_utils.py
# @module:      vol_docka.helpers.ui_utils
# @description: Rich-based CLI output helpers, prompts and subprocess execution.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - run_command() registers every child with SafeExitManager so a signal
#   terminates ssh/rsync before the exit handlers run
################################################################################

"""
CLI Utilities for Vol-Docka

Rich-based helpers for consistent CLI output, prompts, and the single
subprocess entry point used by all remote operations.
"""

from __future__ import annotations

import subprocess
from typing import List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .logging import get_logger

console = Console()
logger = get_logger(__name__)


class SubprocessError(Exception):
    """A command exited non-zero (or timed out)."""

    def __init__(self, cmd: Sequence[str], returncode: int, stderr: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"Command failed ({returncode}): {' '.join(self.cmd)}"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)


def run_command(
    cmd: Sequence[str],
    description: str = "",
    timeout: Optional[float] = None,
    check: bool = True,
    capture: bool = True,
) -> subprocess.CompletedProcess:
    """
    Run a local command, tracked for signal-safe termination.

    Args:
        cmd: Command and arguments
        description: Human readable label for logs
        timeout: Optional timeout in seconds
        check: Raise SubprocessError on non-zero exit
        capture: Capture stdout/stderr; False streams to the terminal

    Returns:
        CompletedProcess with text stdout/stderr

    Raises:
        SubprocessError: On non-zero exit (check=True) or timeout
    """
    from ..cores.safe_exit_manager import SafeExitManager

    cmd = [str(c) for c in cmd]
    label = description or cmd[0]
    logger.debug(f"Running: {label}: {' '.join(cmd)}")

    pipe = subprocess.PIPE if capture else None
    try:
        proc = subprocess.Popen(cmd, stdout=pipe, stderr=pipe, text=True)
    except FileNotFoundError:
        raise SubprocessError(cmd, 127, f"{cmd[0]}: command not found")

    manager = SafeExitManager.get_instance()
    cleanup_id = manager.register_process(proc.pid, label)
    try:
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            raise SubprocessError(cmd, -1, f"Timed out after {timeout}s: {label}")
    finally:
        manager.unregister_process(cleanup_id)

    result = subprocess.CompletedProcess(cmd, proc.returncode, stdout or "", stderr or "")
    if check and result.returncode != 0:
        raise SubprocessError(cmd, result.returncode, result.stderr)
    return result


def print_success(message: str):
    """Print success message with green checkmark"""
    console.print(f"[green]✓[/green] {escape(message)}")


def print_error(message: str):
    """Print error message with red X"""
    console.print(f"[red]✗[/red] {escape(message)}")


def print_warning(message: str):
    """Print warning message with yellow warning symbol"""
    console.print(f"[yellow]⚠[/yellow]  {escape(message)}")


def print_info(message: str):
    """Print info message with cyan arrow"""
    console.print(f"[cyan]→[/cyan] {escape(message)}")


def create_table(title: str, columns: List[tuple]) -> Table:
    """
    Create a styled Rich table

    Args:
        title: Table title
        columns: List of (name, style, width) tuples; width may be None

    Returns:
        Rich Table instance
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    for name, style, width in columns:
        table.add_column(name, style=style, width=width)
    return table


def create_status_table(title: str = "") -> Table:
    """Create a pre-configured status table (Property | Value format)."""
    table = Table(title=title, box=box.SIMPLE, show_header=False)
    table.add_column("Property", style="cyan", width=24)
    table.add_column("Value", style="white")
    return table


def confirm_action(message: str, default_no: bool = True) -> bool:
    """
    Confirm action with clear y/N or Y/n prompt.

    Args:
        message: Question to ask
        default_no: If True, default is No (y/N); if False, default is Yes (Y/n)

    Returns:
        True if user confirmed, False otherwise
    """
    if default_no:
        prompt = f"{message} [y/N]"
    else:
        prompt = f"{message} [Y/n]"

    response = console.input(f"[cyan]{prompt}:[/cyan] ").strip().lower()

    if response in ("y", "yes"):
        return True
    elif response in ("n", "no"):
        return False
    else:
        # Empty = use default
        return not default_no
