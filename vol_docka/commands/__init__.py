"""CLI command modules for Vol-Docka."""

from . import (
    backup_commands,
    config_commands,
)

__all__ = [
    'backup_commands',
    'config_commands',
]
