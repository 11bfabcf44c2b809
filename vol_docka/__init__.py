################################################################################
# VOL-DOCKA
#
# @file:        __init__.py
# @module:      vol_docka
# @description: Exposes version, logging, and core managers for package consumers.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""
Vol-Docka: consistent backups of Docker volumes on a remote host.

Containers holding a volume open are stopped before the archive is taken
and restarted afterwards, also when the run fails or is interrupted.
"""

from .helpers.constants import VERSION

__version__ = VERSION
__author__ = "Vol-Docka Contributors"

from .helpers.logging import get_logger, log_manager, StructuredFormatter

from .types import (
    ContainerRef,
    ContainerStatus,
    ImpactRecord,
    StoppedSet,
    RunOutcome,
    RunSummary,
)

from .helpers.config import Config
from .helpers.run_settings import RunSettings
from .cores.backup_manager import BackupManager
from .cores.remote_shell import RemoteShell

__all__ = [
    "VERSION",
    "ContainerRef",
    "ContainerStatus",
    "ImpactRecord",
    "StoppedSet",
    "RunOutcome",
    "RunSummary",
    "Config",
    "RunSettings",
    "BackupManager",
    "RemoteShell",
    "get_logger",
    "log_manager",
    "StructuredFormatter",
]
