################################################################################
# VOL-DOCKA
#
# @file:        retention_manager.py
# @module:      vol_docka.cores.retention_manager
# @description: Prunes old local timestamp directories per volume.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""Local retention: keep the newest N backups of a volume."""

from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import List

from ..helpers.constants import BACKUP_DIR_PATTERN
from ..helpers.logging import get_logger

logger = get_logger(__name__)

_BACKUP_DIR_RE = re.compile(BACKUP_DIR_PATTERN)


class RetentionManager:
    """
    Args:
        local_dir: Root of the local backup tree
        keep: Number of timestamp directories to keep (0 disables pruning)
        dry_run: Only log what would be removed
    """

    def __init__(self, local_dir: Path, keep: int, dry_run: bool = False):
        self.local_dir = Path(local_dir)
        self.keep = keep
        self.dry_run = dry_run

    def backups(self, volume: str) -> List[Path]:
        """Timestamp directories of volume, newest first."""
        volume_dir = self.local_dir / volume
        if not volume_dir.is_dir():
            return []
        dirs = [
            p for p in volume_dir.iterdir()
            if p.is_dir() and not p.is_symlink() and _BACKUP_DIR_RE.match(p.name)
        ]
        return sorted(dirs, key=lambda p: p.name, reverse=True)

    def prune(self, volume: str) -> List[Path]:
        """Remove backups beyond the newest `keep`; returns removed (or would-be) paths."""
        if self.keep <= 0:
            return []

        old = self.backups(volume)[self.keep:]
        if not old:
            return []

        logger.info(
            f"Cleaning up old backups (keeping {self.keep} most recent)",
            extra={"volume": volume},
        )
        removed = []
        for path in old:
            if self.dry_run:
                logger.info(f"Would remove: {path.name}", extra={"volume": volume})
                removed.append(path)
                continue
            try:
                shutil.rmtree(path)
                logger.info(f"Removing old backup: {path.name}", extra={"volume": volume})
                removed.append(path)
            except OSError as e:
                logger.error(f"Could not remove {path}: {e}", extra={"volume": volume})
        return removed
