"""Helper modules and utilities for Vol-Docka."""

from .config import Config, create_default_config
from .constants import VERSION, DEFAULT_CONFIG_PATHS
from .logging import get_logger, log_manager
from .run_settings import RunSettings
from .system_utils import SystemUtils

__all__ = [
    'Config',
    'create_default_config',
    'VERSION',
    'DEFAULT_CONFIG_PATHS',
    'get_logger',
    'log_manager',
    'RunSettings',
    'SystemUtils',
]
