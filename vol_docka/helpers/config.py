################################################################################
# VOL-DOCKA
#
# @file:        config.py
# @module:      vol_docka.helpers.config
# @description: Manages configuration discovery, defaults, validation, and persistence.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Searches DEFAULT_CONFIG_PATHS before creating a fresh config file
# - Offers typed getters with sane defaults and environment overrides
# - REMOTE_HOST / REMOTE_USER / SSH_KEY are honoured for [remote]
################################################################################

"""
Configuration management for Vol-Docka.

Handles reading, writing, and validating configuration files,
and creates default configurations when needed.
"""

from __future__ import annotations

import configparser
import os
import tempfile
from pathlib import Path
from typing import Optional, Dict, Any, List

from .constants import (
    DEFAULT_CONFIG_PATHS,
    DEFAULT_REMOTE_USER,
    DEFAULT_DOCKER_ROOT,
    DEFAULT_LOCAL_BACKUP_DIR,
    DEFAULT_REMOTE_TEMP_DIR,
    DEFAULT_KEEP_BACKUPS,
    DEFAULT_ARCHIVE_IMAGE,
    CONTAINER_STOP_TIMEOUT,
    RESTART_PACING_DELAY,
    SSH_CONNECT_TIMEOUT,
)
from .logging import get_logger

logger = get_logger(__name__)

# Bare variables kept for older cron setups
LEGACY_ENV_OVERRIDES = {
    ("remote", "host"): "REMOTE_HOST",
    ("remote", "user"): "REMOTE_USER",
    ("remote", "ssh_key"): "SSH_KEY",
}


def get_default_config() -> Dict[str, Dict[str, Any]]:
    """Default configuration values."""
    return {
        "remote": {
            "host": "",
            "user": DEFAULT_REMOTE_USER,
            "ssh_key": "",
            "connect_timeout": SSH_CONNECT_TIMEOUT,
            "docker_root": DEFAULT_DOCKER_ROOT,
            "auto_detect_docker_root": "true",
            "check_all_contexts": "true",
            "include_system_docker": "true",
        },
        "backup": {
            "local_dir": DEFAULT_LOCAL_BACKUP_DIR,
            "temp_dir": DEFAULT_REMOTE_TEMP_DIR,
            "exclude_volumes": "",  # comma-separated
            "keep_backups": DEFAULT_KEEP_BACKUPS,
            "compress": "true",
            "show_progress": "true",
            "parallel_workers": 1,
            "archive_image": DEFAULT_ARCHIVE_IMAGE,
            "direct_fallback": "true",
        },
        "containers": {
            "stop_timeout": CONTAINER_STOP_TIMEOUT,
            "force_stop": "false",
            "auto_restart": "true",
            "auto_confirm": "false",
            "restart_delay": RESTART_PACING_DELAY,
            "verify_running": "true",
        },
        "logging": {
            "level": "INFO",
            "file": "",
            "max_size_mb": 10,
            "backup_count": 3,
        },
    }


class Config:
    """
    Manages application configuration.

    Loads configuration from INI files, provides defaults and validation.

    Attributes:
        config_file: Path to the configuration file
        _config: ConfigParser instance
        _defaults: Default configuration values
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Optional path to configuration file.
                         If not provided, searches standard locations.
        """
        self._defaults = get_default_config()
        self._config = configparser.ConfigParser(interpolation=None)

        self.config_file = self._find_config_file(config_path)

        if not self.config_file.exists():
            logger.info(f"Creating default configuration at {self.config_file}")
            create_default_config(self.config_file)

        self._load_config()

    @staticmethod
    def search_paths() -> List[Path]:
        """Locations searched when no explicit path is given."""
        return [
            Path(DEFAULT_CONFIG_PATHS["user"]).expanduser(),
            Path(DEFAULT_CONFIG_PATHS["root"]).expanduser(),
        ]

    def _find_config_file(self, config_path: Optional[Path] = None) -> Path:
        """Find or determine configuration file path."""
        if config_path:
            if isinstance(config_path, str):
                config_path = Path(config_path)
            config_path = config_path.expanduser().resolve()
            try:
                config_path.parent.mkdir(parents=True, exist_ok=True, mode=0o755)
            except PermissionError as e:
                logger.error(
                    f"Cannot create config directory {config_path.parent}: {e}"
                )
                raise
            return config_path

        for p in self.search_paths():
            if p.exists():
                if os.access(p, os.R_OK):
                    logger.debug(f"Using config file: {p}")
                    return p
                else:
                    logger.warning(f"Config file exists but not readable: {p}")

        path = Path(
            DEFAULT_CONFIG_PATHS["root"]
            if os.geteuid() == 0
            else DEFAULT_CONFIG_PATHS["user"]
        ).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True, mode=0o755)
        logger.debug(f"Using default config path: {path}")
        return path

    def _load_config(self):
        """Load configuration from file with UTF-8 encoding."""
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                self._config.read_file(f)
            logger.debug(f"Configuration loaded from {self.config_file}")
        except UnicodeDecodeError as e:
            logger.error(f"Config file encoding error (expected UTF-8): {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise

    def get(self, section: str, option: str, fallback: Any = None) -> Any:
        """
        Get configuration value with environment override support.
        """
        env_var = f"VOL_DOCKA_{section.upper()}_{option.upper()}"
        env_value = os.environ.get(env_var)
        if env_value:
            logger.debug(f"Using environment override for {section}.{option}")
            return env_value

        legacy_var = LEGACY_ENV_OVERRIDES.get((section, option))
        if legacy_var and os.environ.get(legacy_var):
            return os.environ[legacy_var]

        try:
            return self._config.get(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError):
            if section in self._defaults and option in self._defaults[section]:
                default_value = self._defaults[section][option]
                if default_value is not None:
                    return default_value
            return fallback

    def getint(self, section: str, option: str, fallback: int = 0) -> int:
        """Get integer configuration value."""
        value = self.get(section, option, fallback)
        if isinstance(value, str):
            if value.lower() == "auto":
                return -1
            try:
                return int(value)
            except ValueError:
                logger.warning(f"Invalid integer value for {section}.{option}: {value}")
                return fallback
        return int(value) if value is not None else fallback

    def getfloat(self, section: str, option: str, fallback: float = 0.0) -> float:
        """Get float configuration value."""
        value = self.get(section, option, fallback)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid number for {section}.{option}: {value}")
            return fallback

    def getboolean(self, section: str, option: str, fallback: bool = False) -> bool:
        """Get boolean configuration value."""
        value = self.get(section, option, str(fallback))
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "yes", "1", "on")
        return fallback

    def getlist(
        self, section: str, option: str, fallback: List[str] = None
    ) -> List[str]:
        """Get list configuration value (comma-separated)."""
        value = self.get(section, option)
        if value:
            items = [i.strip() for i in str(value).split(",") if i.strip()]
            return list(dict.fromkeys(items))
        return fallback or []

    def set(self, section: str, option: str, value: Any):
        """Set configuration value."""
        if not self._config.has_section(section):
            self._config.add_section(section)
        self._config.set(section, option, str(value))

    def save(self):
        """Save configuration to file atomically with proper permissions."""
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self.config_file.parent, prefix=".vol-docka-config-", suffix=".tmp"
        )
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                self._config.write(f)
            os.replace(temp_path, self.config_file)
            os.chmod(self.config_file, 0o600)
            logger.info(f"Configuration saved to {self.config_file}")
        except Exception as e:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            logger.error(f"Failed to save configuration: {e}")
            raise

    def sections(self) -> Dict[str, Dict[str, str]]:
        """Effective configuration (defaults merged with file values)."""
        merged: Dict[str, Dict[str, str]] = {}
        for section, options in self._defaults.items():
            merged[section] = {opt: str(self.get(section, opt, "")) for opt in options}
        for section in self._config.sections():
            merged.setdefault(section, {})
            for option in self._config.options(section):
                merged[section][option] = str(self.get(section, option, ""))
        return merged

    def validate(self) -> List[str]:
        """Validate required values, ranges & paths."""
        errors = []

        if not self.remote_host:
            errors.append("remote.host is required (or set REMOTE_HOST)")

        ssh_key = self.ssh_key
        if ssh_key and not ssh_key.is_file():
            errors.append(f"SSH key file not found: {ssh_key}")

        connect_timeout = self.getint("remote", "connect_timeout")
        if not 0 < connect_timeout <= 300:
            errors.append(f"connect_timeout out of range (1-300): {connect_timeout}")

        stop_timeout = self.getint("containers", "stop_timeout")
        if not 0 < stop_timeout <= 600:
            errors.append(f"stop_timeout out of range (1-600): {stop_timeout}")

        keep = self.getint("backup", "keep_backups")
        if keep < 0:
            errors.append(f"keep_backups must not be negative: {keep}")

        workers = self.getint("backup", "parallel_workers")
        if workers != -1 and not 1 <= workers <= 32:
            errors.append(f"parallel_workers out of range (1-32 or 'auto'): {workers}")

        if self.getfloat("containers", "restart_delay") < 0:
            errors.append("restart_delay must not be negative")

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        log_level = str(self.get("logging", "level", "INFO")).upper()
        if log_level not in valid_levels:
            errors.append(
                f"Invalid log level: {log_level}. Valid: {', '.join(valid_levels)}"
            )

        return errors

    # --------------- Properties ---------------

    @property
    def remote_host(self) -> str:
        return (self.get("remote", "host") or "").strip()

    @property
    def remote_user(self) -> str:
        return (self.get("remote", "user") or DEFAULT_REMOTE_USER).strip()

    @property
    def ssh_key(self) -> Optional[Path]:
        key = (self.get("remote", "ssh_key") or "").strip()
        return Path(key).expanduser() if key else None

    @property
    def exclude_volumes(self) -> List[str]:
        return self.getlist("backup", "exclude_volumes")


def create_default_config(path: Optional[Path] = None, force: bool = False) -> Path:
    """
    Create default configuration file.

    Args:
        path: Path where to create config file
        force: Overwrite existing file if True

    Returns:
        Path to the config file
    """
    if path is None:
        path = Path(
            DEFAULT_CONFIG_PATHS["root"]
            if os.geteuid() == 0
            else DEFAULT_CONFIG_PATHS["user"]
        )

    path = Path(path).expanduser()

    if path.exists() and not force:
        logger.warning(f"Configuration file already exists at {path}")
        return path

    path.parent.mkdir(parents=True, exist_ok=True, mode=0o755)

    config = configparser.ConfigParser(interpolation=None)
    for section, options in get_default_config().items():
        config.add_section(section)
        for option, value in options.items():
            config.set(section, option, str(value))

    temp_fd, temp_path = tempfile.mkstemp(
        dir=path.parent, prefix=".vol-docka-config-", suffix=".tmp"
    )
    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
            f.write("# Vol-Docka Configuration File\n")
            f.write("# =============================\n")
            f.write("# Generated automatically\n")
            f.write("# Encoding: UTF-8\n")
            f.write("#\n")
            f.write("# Environment variable overrides:\n")
            f.write("#   VOL_DOCKA_<SECTION>_<OPTION> - Override any option\n")
            f.write("#   REMOTE_HOST, REMOTE_USER, SSH_KEY - Override [remote]\n\n")
            config.write(f)
        os.replace(temp_path, path)
        os.chmod(path, 0o600)
        logger.info(f"Default configuration created at {path}")
    except Exception as e:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        logger.error(f"Failed to create default config: {e}")
        raise

    return path
