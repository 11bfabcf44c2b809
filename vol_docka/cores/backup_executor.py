################################################################################
# VOL-DOCKA
#
# @file:        backup_executor.py
# @module:      vol_docka.cores.backup_executor
# @description: Archives a volume on the remote host and downloads it with rsync.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Donor mode: busybox --volumes-from <container>, tar of its mount path
# - Direct mode: busybox with the volume mounted at /volume_data
# - Layout: <local_dir>/<volume>/<YYYYMMDD_HHMMSS>/<archive>, plus "latest"
# - Remote temp archives are tracked and removed by cleanup_remote()
################################################################################

"""
Backup executor: one volume in, one local archive out.
"""

from __future__ import annotations

import os
import shlex
import shutil
import threading
import time
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Callable, List, Optional

from ..helpers.constants import (
    BACKUP_TIMESTAMP_FORMAT,
    DIRECT_BACKUP_LABEL,
    DIRECT_MOUNT_PATH,
    LATEST_LINK_NAME,
)
from ..helpers.logging import get_logger
from ..helpers.run_settings import RunSettings
from ..helpers.ui_utils import SubprocessError, run_command
from ..types import ContainerRef, DaemonScope, RunOutcome
from .remote_shell import RemoteShell

logger = get_logger(__name__)


class BackupExecutor:
    """
    Args:
        shell: Remote shell for the docker host
        settings: temp_dir, local_dir, archive_image, compress, show_progress,
                  verbose, dry_run
        stream_output: Let rsync write progress to the terminal
        clock: Timestamp source (injectable for tests)
    """

    def __init__(
        self,
        shell: RemoteShell,
        settings: RunSettings,
        stream_output: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.shell = shell
        self.settings = settings
        self.stream_output = stream_output
        self._clock = clock
        self._remote_files: List[str] = []
        self._lock = threading.Lock()

    # --------------- Paths ---------------

    def archive_path(self, volume: str, label: str, timestamp: str) -> str:
        return str(PurePosixPath(self.settings.temp_dir) / f"{volume}_{label}_{timestamp}.tar.gz")

    def volume_dir(self, volume: str) -> Path:
        return Path(self.settings.local_dir) / volume

    # --------------- Remote archive ---------------

    def archive_command(
        self, volume: str, scope: DaemonScope, donor: Optional[ContainerRef], remote_file: str
    ) -> List[str]:
        archive = f"/backup/{PurePosixPath(remote_file).name}"
        base = [*scope.docker_cmd, "run", "--rm"]
        if donor is None:
            return base + [
                "-v", f"{volume}:{DIRECT_MOUNT_PATH}",
                "-v", f"{self.settings.temp_dir}:/backup",
                self.settings.archive_image,
                "tar", "czf", archive, "-C", DIRECT_MOUNT_PATH, ".",
            ]
        return base + [
            "--volumes-from", donor.name,
            "-v", f"{self.settings.temp_dir}:/backup",
            self.settings.archive_image,
            "tar", "czf", archive, "-C", "/", donor.mount_path.lstrip("/") or ".",
        ]

    def create_archive(
        self,
        volume: str,
        scope: DaemonScope,
        donor: Optional[ContainerRef],
        timestamp: str,
    ) -> str:
        """
        Create the archive in the remote temp dir.

        Raises:
            RemoteCommandError: If mkdir or the archive container fails
        """
        label = donor.name if donor else DIRECT_BACKUP_LABEL
        remote_file = self.archive_path(volume, label, timestamp)

        self.shell.run(["mkdir", "-p", self.settings.temp_dir], description="create remote temp dir")

        if donor is None:
            logger.info(
                f"Creating backup archive using direct mount (mount: {DIRECT_MOUNT_PATH})",
                extra={"volume": volume},
            )
        else:
            logger.info(
                f"Creating backup archive from container {donor.name} (mount: {donor.mount_path})",
                extra={"volume": volume, "container": donor.name},
            )

        with self._lock:
            self._remote_files.append(remote_file)
        self.shell.run(
            self.archive_command(volume, scope, donor, remote_file),
            description=f"archive {volume}",
        )
        logger.info(f"Backup archive created: {remote_file}", extra={"volume": volume})
        return remote_file

    # --------------- Transfer ---------------

    def rsync_command(self, remote_file: str, destination: Path) -> List[str]:
        cmd = ["rsync", "-a", "-e", self.shell.rsync_ssh()]
        if self.settings.compress:
            cmd.append("-z")
        if self.settings.show_progress:
            cmd += ["--progress", "--stats"]
        if self.settings.verbose:
            cmd.append("-v")
        if self.settings.dry_run:
            cmd.append("-n")
        cmd += [f"{self.shell.target}:{remote_file}", str(destination)]
        return cmd

    def download(self, remote_file: str, destination: Path) -> Path:
        """
        Fetch remote_file into destination directory.

        Raises:
            SubprocessError: If rsync fails
        """
        name = PurePosixPath(remote_file).name
        run_command(
            self.rsync_command(remote_file, destination / name),
            description=f"rsync {name}",
            capture=not self.stream_output,
        )
        logger.info(f"Downloaded backup: {name}")
        return destination / name

    @staticmethod
    def update_latest(volume_dir: Path, timestamp: str) -> None:
        link = volume_dir / LATEST_LINK_NAME
        if link.is_symlink() or link.exists():
            link.unlink()
        os.symlink(timestamp, link)

    # --------------- Volume ---------------

    def backup_volume(
        self,
        volume: str,
        scope: DaemonScope,
        donor: Optional[ContainerRef] = None,
    ) -> RunOutcome:
        """Archive + download one volume; never raises for remote failures."""
        started = time.monotonic()
        timestamp = self._clock().strftime(BACKUP_TIMESTAMP_FORMAT)
        mode = "donor" if donor else "direct"
        outcome = RunOutcome(volume=volume, succeeded=False, mode=mode,
                             donor=donor.name if donor else None)
        log_ctx = {"volume": volume, "context": scope.name}

        if self.settings.dry_run:
            label = donor.name if donor else DIRECT_BACKUP_LABEL
            logger.info(
                f"[DRY RUN] Would create {self.archive_path(volume, label, timestamp)}",
                extra=log_ctx,
            )
            outcome.succeeded = True
            outcome.local_path = self.volume_dir(volume) / timestamp
            return outcome

        logger.info(f"Backing up volume: {volume}", extra=log_ctx)
        current = self.volume_dir(volume) / timestamp
        try:
            current.mkdir(parents=True, exist_ok=True)
            remote_file = self.create_archive(volume, scope, donor, timestamp)
            outcome.local_path = self.download(remote_file, current)
            if outcome.local_path.is_file():
                outcome.size_bytes = outcome.local_path.stat().st_size
            self.update_latest(self.volume_dir(volume), timestamp)
            outcome.succeeded = True
            logger.info(f"Volume {volume} backed up successfully", extra=log_ctx)
        except (SubprocessError, OSError) as e:
            outcome.error = getattr(e, "stderr", "") or str(e)
            logger.error(f"Backup failed: {outcome.error}", extra=log_ctx)
            if current.exists() and not any(current.iterdir()):
                shutil.rmtree(current, ignore_errors=True)
        finally:
            outcome.duration_seconds = time.monotonic() - started
        return outcome

    # --------------- Cleanup ---------------

    def pending_remote_files(self) -> List[str]:
        with self._lock:
            return list(self._remote_files)

    def cleanup_remote(self) -> None:
        """Remove tracked temp archives and the temp dir if empty."""
        with self._lock:
            files, self._remote_files = self._remote_files, []
        if not files or self.settings.dry_run:
            return

        logger.info("Cleaning up remote temporary files...")
        for remote_file in files:
            try:
                self.shell.run(["rm", "-f", remote_file], description="remove temp archive")
            except SubprocessError as e:
                logger.warning(f"Could not remove remote file {remote_file}: {e.stderr or e}")
        try:
            self.shell.run(
                f"rmdir {shlex.quote(self.settings.temp_dir)} 2>/dev/null || true",
                description="remove remote temp dir",
                check=False,
            )
        except SubprocessError as e:
            logger.warning(f"Could not remove remote temp dir: {e.stderr or e}")
