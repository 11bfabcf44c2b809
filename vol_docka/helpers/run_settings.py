################################################################################
# VOL-DOCKA
#
# @file:        run_settings.py
# @module:      vol_docka.helpers.run_settings
# @description: Validated, immutable run-mode settings merged from config and CLI flags.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""
Pydantic model for the settings of a single backup run.

Config values are read once, CLI flags override them, and the result is
validated here so the cores never see out-of-range values.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    DEFAULT_ARCHIVE_IMAGE,
    DEFAULT_DOCKER_ROOT,
    DEFAULT_KEEP_BACKUPS,
    DEFAULT_LOCAL_BACKUP_DIR,
    DEFAULT_REMOTE_TEMP_DIR,
    CONTAINER_STOP_TIMEOUT,
    RESTART_PACING_DELAY,
    MAX_PARALLEL_WORKERS,
)


class RunSettings(BaseModel):
    """Run mode and tuning knobs for one backup run."""

    model_config = ConfigDict(frozen=True)

    # Interaction
    interactive: bool = Field(default=True, description="Prompt the operator")
    auto_confirm: bool = Field(
        default=False, description="Stop running containers without asking"
    )
    dry_run: bool = Field(default=False, description="Simulate, touch nothing")
    verbose: bool = Field(default=False, description="Verbose transfer output")

    # Container handling
    stop_timeout: int = Field(
        default=CONTAINER_STOP_TIMEOUT, ge=1, le=600,
        description="Graceful stop timeout in seconds",
    )
    force_stop: bool = Field(default=False, description="Kill after failed stop")
    auto_restart: bool = Field(default=True, description="Restart stopped containers")
    restart_delay: float = Field(
        default=RESTART_PACING_DELAY, ge=0, description="Pause between restarts"
    )
    verify_running: bool = Field(
        default=True, description="Confirm running state after start"
    )

    # Backup
    local_dir: Path = Field(default=Path(DEFAULT_LOCAL_BACKUP_DIR))
    temp_dir: str = Field(default=DEFAULT_REMOTE_TEMP_DIR)
    exclude_volumes: List[str] = Field(default_factory=list)
    keep_backups: int = Field(default=DEFAULT_KEEP_BACKUPS, ge=0)
    compress: bool = True
    show_progress: bool = True
    parallel_workers: Union[int, Literal["auto"]] = Field(default=1)
    archive_image: str = Field(default=DEFAULT_ARCHIVE_IMAGE)
    direct_fallback: bool = Field(
        default=True,
        description="Use direct volume mount when the donor cannot be stopped",
    )

    # Discovery
    docker_root: str = Field(default=DEFAULT_DOCKER_ROOT)
    auto_detect_docker_root: bool = True
    check_all_contexts: bool = True
    include_system_docker: bool = True

    @field_validator("local_dir", mode="before")
    @classmethod
    def validate_local_dir(cls, v: Any) -> Path:
        """Convert string to Path"""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("temp_dir")
    @classmethod
    def validate_temp_dir(cls, v: str) -> str:
        v = v.rstrip("/")
        if not v.startswith("/"):
            raise ValueError("temp_dir must be an absolute path on the remote host")
        return v

    @field_validator("parallel_workers", mode="before")
    @classmethod
    def validate_workers(cls, v: Union[int, str]) -> Union[int, str]:
        """Validate worker count"""
        if v in ("auto", -1):
            return "auto"
        if isinstance(v, str) and v.isdigit():
            v = int(v)
        if isinstance(v, int) and not isinstance(v, bool):
            if v < 1 or v > MAX_PARALLEL_WORKERS:
                raise ValueError(
                    f"parallel_workers must be between 1 and {MAX_PARALLEL_WORKERS}"
                )
            return v
        raise ValueError("parallel_workers must be 'auto' or an integer")

    @field_validator("exclude_volumes", mode="before")
    @classmethod
    def validate_excludes(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            v = v.split(",")
        return list(dict.fromkeys(item.strip() for item in v if item and item.strip()))

    @classmethod
    def from_config(cls, cfg, **overrides: Optional[Any]) -> "RunSettings":
        """
        Build settings from a Config, applying non-None CLI overrides.

        Raises:
            pydantic.ValidationError: If any merged value is out of range
        """
        values: Dict[str, Any] = {
            "stop_timeout": cfg.getint("containers", "stop_timeout", CONTAINER_STOP_TIMEOUT),
            "force_stop": cfg.getboolean("containers", "force_stop"),
            "auto_restart": cfg.getboolean("containers", "auto_restart", True),
            "auto_confirm": cfg.getboolean("containers", "auto_confirm"),
            "restart_delay": cfg.getfloat("containers", "restart_delay", RESTART_PACING_DELAY),
            "verify_running": cfg.getboolean("containers", "verify_running", True),
            "local_dir": cfg.get("backup", "local_dir", DEFAULT_LOCAL_BACKUP_DIR),
            "temp_dir": cfg.get("backup", "temp_dir", DEFAULT_REMOTE_TEMP_DIR),
            "exclude_volumes": cfg.getlist("backup", "exclude_volumes"),
            "keep_backups": cfg.getint("backup", "keep_backups", DEFAULT_KEEP_BACKUPS),
            "compress": cfg.getboolean("backup", "compress", True),
            "show_progress": cfg.getboolean("backup", "show_progress", True),
            "parallel_workers": cfg.getint("backup", "parallel_workers", 1),
            "archive_image": cfg.get("backup", "archive_image", DEFAULT_ARCHIVE_IMAGE),
            "direct_fallback": cfg.getboolean("backup", "direct_fallback", True),
            "docker_root": cfg.get("remote", "docker_root", DEFAULT_DOCKER_ROOT),
            "auto_detect_docker_root": cfg.getboolean("remote", "auto_detect_docker_root", True),
            "check_all_contexts": cfg.getboolean("remote", "check_all_contexts", True),
            "include_system_docker": cfg.getboolean("remote", "include_system_docker", True),
        }
        for key, value in overrides.items():
            if value is not None:
                values[key] = value
        return cls(**values)

    def effective_workers(self) -> int:
        """Resolve 'auto' via system resources."""
        if self.parallel_workers == "auto":
            from .system_utils import SystemUtils

            return SystemUtils.get_optimal_workers()
        return int(self.parallel_workers)
