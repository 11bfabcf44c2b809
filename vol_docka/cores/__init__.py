"""Core business logic modules for Vol-Docka."""

from .backup_manager import BackupManager
from .backup_executor import BackupExecutor
from .consent_gate import ConsentAction, ConsentDecision, ConsentGate, UserCancelled
from .container_coordinator import ContainerCoordinator, CoordinatorState
from .daemon_query import DaemonControl, DaemonQuery
from .dry_run_manager import DryRunReport
from .impact_analyzer import ImpactAnalyzer
from .remote_shell import ConnectionCheckError, RemoteCommandError, RemoteShell
from .retention_manager import RetentionManager
from .safe_exit_manager import (
    CleanupHandler,
    SafeExitManager,
    ServiceContinuityHandler,
)
from .volume_selector import SelectionError, VolumeSelector

__all__ = [
    'BackupManager',
    'BackupExecutor',
    'ConsentAction',
    'ConsentDecision',
    'ConsentGate',
    'UserCancelled',
    'ContainerCoordinator',
    'CoordinatorState',
    'DaemonControl',
    'DaemonQuery',
    'DryRunReport',
    'ImpactAnalyzer',
    'ConnectionCheckError',
    'RemoteCommandError',
    'RemoteShell',
    'RetentionManager',
    'CleanupHandler',
    'SafeExitManager',
    'ServiceContinuityHandler',
    'SelectionError',
    'VolumeSelector',
]
