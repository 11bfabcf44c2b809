################################################################################
# VOL-DOCKA
#
# @file:        constants.py
# @module:      vol_docka.helpers.constants
# @description: Shared defaults for remote access, container handling and backups.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""
Constants used throughout the Vol-Docka application.

This module defines all constant values used across different modules
to ensure consistency and ease of maintenance.
"""

from pathlib import Path

# Version information
VERSION = "1.0.0"

# Default paths
DEFAULT_CONFIG_PATHS = {
    'root': Path('/etc/vol-docka.conf'),
    'user': Path.home() / '.config' / 'vol-docka' / 'config.conf'
}

# Remote host
DEFAULT_REMOTE_USER = 'root'
DEFAULT_DOCKER_ROOT = '/var/lib/docker/volumes'
SSH_CONNECT_TIMEOUT = 10

# Daemon scopes
DEFAULT_CONTEXT = 'default'
SYSTEM_SCOPE = 'system'

# Local / remote backup paths
DEFAULT_LOCAL_BACKUP_DIR = './docker-backups'
DEFAULT_REMOTE_TEMP_DIR = '/tmp/docker-backups'
LATEST_LINK_NAME = 'latest'
BACKUP_TIMESTAMP_FORMAT = '%Y%m%d_%H%M%S'
BACKUP_DIR_PATTERN = r'^20\d{2}[01]\d[0-3]\d_[0-2]\d[0-5]\d[0-5]\d$'
DEFAULT_KEEP_BACKUPS = 7

# Archive creation
DEFAULT_ARCHIVE_IMAGE = 'busybox'
DIRECT_BACKUP_LABEL = 'direct-backup'
DIRECT_MOUNT_PATH = '/volume_data'
DEFAULT_MOUNT_PATH = '/data'

# Timeouts (in seconds)
CONTAINER_STOP_TIMEOUT = 30
RESTART_PACING_DELAY = 1.0
PROCESS_TERMINATE_GRACE = 5

# Worker sizing for parallel transfers
RAM_WORKER_THRESHOLDS = [
    (2, 1),    # <= 2GB: 1 worker
    (4, 2),    # <= 4GB: 2 workers
    (8, 3),    # <= 8GB: 3 workers
    (float('inf'), 4)  # > 8GB: 4 workers
]
MAX_PARALLEL_WORKERS = 32

# Exit codes
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 0
EXIT_USAGE = 2

# Logging
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
