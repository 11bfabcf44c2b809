################################################################################
# VOL-DOCKA
#
# @file:        remote_shell.py
# @module:      vol_docka.cores.remote_shell
# @description: Runs commands on the remote Docker host over ssh.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - BatchMode=yes: never block on a password prompt
# - Arguments are shell-quoted; the remote side sees exactly one command line
################################################################################

"""
Remote command execution over ssh.

Every daemon query, stop/start call, and archive command goes through
RemoteShell.run(). The class owns nothing but connection parameters.
"""

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..helpers.constants import SSH_CONNECT_TIMEOUT, DEFAULT_REMOTE_USER
from ..helpers.logging import get_logger
from ..helpers.ui_utils import SubprocessError, run_command
from ..types import DaemonScope

logger = get_logger(__name__)


class RemoteCommandError(SubprocessError):
    """A command on the remote host exited non-zero."""

    def __init__(self, cmd: Sequence[str], returncode: int, stderr: str = "", host: str = ""):
        super().__init__(cmd, returncode, stderr)
        self.host = host


class ConnectionCheckError(Exception):
    """The ssh preflight against the remote host failed."""


class RemoteShell:
    """
    ssh wrapper for one remote host.

    Args:
        host: Remote hostname or IP
        user: Remote user
        ssh_key: Optional identity file
        connect_timeout: ssh ConnectTimeout in seconds
    """

    def __init__(
        self,
        host: str,
        user: str = DEFAULT_REMOTE_USER,
        ssh_key: Optional[Path] = None,
        connect_timeout: int = SSH_CONNECT_TIMEOUT,
    ):
        if not host:
            raise ValueError("Remote host is required")
        self.host = host
        self.user = user or DEFAULT_REMOTE_USER
        self.ssh_key = Path(ssh_key).expanduser() if ssh_key else None
        self.connect_timeout = connect_timeout

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    def ssh_options(self) -> List[str]:
        opts = []
        if self.ssh_key:
            opts += ["-i", str(self.ssh_key)]
        opts += [
            "-o", f"ConnectTimeout={self.connect_timeout}",
            "-o", "BatchMode=yes",
        ]
        return opts

    def ssh_command(self, remote_command: str) -> List[str]:
        return ["ssh", *self.ssh_options(), self.target, remote_command]

    def rsync_ssh(self) -> str:
        """Value for rsync -e."""
        return shlex.join(["ssh", *self.ssh_options()])

    def run(
        self,
        command: Union[str, Sequence[str]],
        description: str = "",
        check: bool = True,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run a command on the remote host.

        A sequence is quoted argument by argument; a string is passed as-is
        to the remote shell.

        Raises:
            RemoteCommandError: On non-zero exit when check is True
        """
        remote = command if isinstance(command, str) else shlex.join(str(c) for c in command)
        cmd = self.ssh_command(remote)
        try:
            return run_command(cmd, description or remote, timeout=timeout, check=check)
        except SubprocessError as e:
            raise RemoteCommandError(e.cmd, e.returncode, e.stderr, host=self.host) from e

    def docker(
        self,
        scope: DaemonScope,
        *args: str,
        description: str = "",
        check: bool = True,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """Run a docker CLI command against the given scope."""
        return self.run(
            [*scope.docker_cmd, *args],
            description=description,
            check=check,
            timeout=timeout,
        )

    def check_connection(self) -> None:
        """
        Verify ssh access before anything is touched.

        Raises:
            ConnectionCheckError: If the host is unreachable or auth fails
        """
        logger.info(f"Testing SSH connection to {self.target}")
        try:
            self.run(["echo", "Connection successful"], description="ssh preflight",
                     timeout=self.connect_timeout + 5)
        except SubprocessError as e:
            raise ConnectionCheckError(
                f"Cannot connect to {self.target}: {e.stderr or e}"
            ) from e
        logger.debug(f"SSH connection to {self.target} OK")
