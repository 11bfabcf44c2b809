################################################################################
# VOL-DOCKA
#
# @file:        system_utils.py
# @module:      vol_docka.helpers.system_utils
# @description: Local resource probes, tool checks and formatting helpers.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""
System utilities module for Vol-Docka.

Resource monitoring on the local machine (RAM, CPU, disk) used to size
parallel transfers, plus checks for the local tools the backup needs.
"""

import shutil
from pathlib import Path
from typing import Dict, List

import psutil

from .constants import RAM_WORKER_THRESHOLDS, MAX_PARALLEL_WORKERS
from .logging import get_logger

logger = get_logger(__name__)

# Local binaries the backup pipeline shells out to
REQUIRED_TOOLS = ["ssh", "rsync"]


class SystemUtils:
    """
    System utilities for resource management and dependency checking.
    """

    @staticmethod
    def check_tool(name: str) -> bool:
        """Check if a binary is available in PATH."""
        return shutil.which(name) is not None

    @staticmethod
    def check_required_tools() -> Dict[str, bool]:
        """Availability of every local tool the backup needs."""
        return {tool: SystemUtils.check_tool(tool) for tool in REQUIRED_TOOLS}

    @staticmethod
    def missing_tools() -> List[str]:
        return [t for t, ok in SystemUtils.check_required_tools().items() if not ok]

    @staticmethod
    def get_available_ram() -> float:
        """
        Get total system RAM in gigabytes.

        Returns:
            RAM in GB
        """
        try:
            memory = psutil.virtual_memory()
            return memory.total / (1024 ** 3)
        except Exception as e:
            logger.error(f"Failed to get RAM info: {e}")
            return 2.0  # Conservative default

    @staticmethod
    def get_available_disk_space(path: str = ".") -> float:
        """
        Get free disk space in gigabytes for path (or its nearest existing parent).
        """
        probe = Path(path).expanduser().absolute()
        while not probe.exists() and probe != probe.parent:
            probe = probe.parent
        try:
            usage = psutil.disk_usage(str(probe))
            return usage.free / (1024 ** 3)
        except Exception as e:
            logger.error(f"Failed to get disk space for {probe}: {e}")
            return 0.0

    @staticmethod
    def get_cpu_count() -> int:
        try:
            return psutil.cpu_count(logical=True) or 1
        except Exception:
            return 1

    @staticmethod
    def get_optimal_workers() -> int:
        """
        Calculate optimal number of parallel transfer workers.

        Returns:
            Recommended number of workers
        """
        ram_gb = SystemUtils.get_available_ram()
        cpu_count = SystemUtils.get_cpu_count()

        ram_workers = 1
        for threshold_gb, workers in RAM_WORKER_THRESHOLDS:
            if ram_gb <= threshold_gb:
                ram_workers = workers
                break

        optimal = max(1, min(ram_workers, cpu_count, MAX_PARALLEL_WORKERS))

        logger.debug(
            f"System has {ram_gb:.1f}GB RAM, {cpu_count} CPUs. "
            f"Recommending {optimal} workers."
        )
        return optimal

    @staticmethod
    def format_bytes(size_bytes: float) -> str:
        """Format bytes into human-readable string (e.g. "1.50 GB")."""
        for unit in ["B", "KB", "MB", "GB", "TB"]:
            if size_bytes < 1024.0:
                return f"{size_bytes:.2f} {unit}"
            size_bytes /= 1024.0
        return f"{size_bytes:.2f} PB"

    @staticmethod
    def format_duration(seconds: float) -> str:
        """
        Format duration into human-readable string.

        Returns:
            Formatted string (e.g., "2h 15m 30s")
        """
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = int(seconds % 60)

        parts = []
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        if secs > 0 or not parts:
            parts.append(f"{secs}s")

        return " ".join(parts)
