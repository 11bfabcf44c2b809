################################################################################
# VOL-DOCKA
#
# @file:        safe_exit_manager.py
# @module:      vol_docka.cores.safe_exit_manager
# @description: Signal-safe shutdown: terminate children, then run exit handlers.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Process layer: every run_command() child is tracked and killed on signal
# - Strategy layer: handlers run by priority (10 restart, 50 cleanup)
# - A second signal while cleanup runs exits immediately
################################################################################

"""
SafeExitManager: two-layer exit safety.

1. Process layer: tracked subprocesses (ssh, rsync) get SIGTERM, a grace
   period, then SIGKILL.
2. Strategy layer: registered ExitHandlers restore the remote host
   (restart stopped containers, remove temp archives).
"""

from __future__ import annotations

import os
import signal
import sys
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..helpers.constants import PROCESS_TERMINATE_GRACE
from ..helpers.logging import get_logger

logger = get_logger(__name__)


@dataclass
class TrackedProcess:
    pid: int
    name: str
    registered_at: float = field(default_factory=time.time)


class ExitHandler(ABC):
    """Cleanup strategy run on SIGINT/SIGTERM."""

    name: str = "exit_handler"
    priority: int = 100

    @abstractmethod
    def cleanup(self) -> None:
        ...


class SafeExitManager:
    """Process-wide singleton; use get_instance()."""

    _instance: Optional["SafeExitManager"] = None
    _instance_lock = threading.Lock()

    def __init__(self):
        if SafeExitManager._instance is not None:
            raise RuntimeError("Use SafeExitManager.get_instance()")
        self._processes: Dict[str, TrackedProcess] = {}
        self._handlers: List[Tuple[ExitHandler, int]] = []
        self._lock = threading.RLock()
        self._cleanup_in_progress = False
        self._original_sigint = None
        self._original_sigterm = None

    @classmethod
    def get_instance(cls) -> "SafeExitManager":
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the singleton (tests)."""
        with cls._instance_lock:
            cls._instance = None

    def install_handlers(self) -> None:
        """Install SIGINT/SIGTERM handlers (main thread only)."""
        self._original_sigint = signal.signal(signal.SIGINT, self._signal_handler)
        self._original_sigterm = signal.signal(signal.SIGTERM, self._signal_handler)
        logger.debug("Signal handlers installed")

    def restore_handlers(self) -> None:
        if self._original_sigint is not None:
            signal.signal(signal.SIGINT, self._original_sigint)
            self._original_sigint = None
        if self._original_sigterm is not None:
            signal.signal(signal.SIGTERM, self._original_sigterm)
            self._original_sigterm = None

    # --------------- Process layer ---------------

    def register_process(self, pid: int, name: str) -> str:
        cleanup_id = uuid.uuid4().hex
        with self._lock:
            self._processes[cleanup_id] = TrackedProcess(pid=pid, name=name)
        return cleanup_id

    def unregister_process(self, cleanup_id: str) -> None:
        with self._lock:
            self._processes.pop(cleanup_id, None)

    def _terminate_all_processes(self) -> None:
        with self._lock:
            processes = list(self._processes.values())
            self._processes.clear()
        if not processes:
            return

        logger.warning(f"Terminating {len(processes)} running subprocess(es)")
        for proc in processes:
            try:
                os.kill(proc.pid, signal.SIGTERM)
            except ProcessLookupError:
                pass
            except OSError as e:
                logger.debug(f"SIGTERM to {proc.name} ({proc.pid}) failed: {e}")

        time.sleep(PROCESS_TERMINATE_GRACE)

        for proc in processes:
            try:
                os.kill(proc.pid, 0)
            except ProcessLookupError:
                continue
            except OSError:
                continue
            try:
                logger.warning(f"Killing {proc.name} ({proc.pid})")
                os.kill(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except OSError as e:
                logger.debug(f"SIGKILL to {proc.name} ({proc.pid}) failed: {e}")

    # --------------- Strategy layer ---------------

    def register_handler(self, handler: ExitHandler) -> None:
        with self._lock:
            self._handlers.append((handler, handler.priority))
            self._handlers.sort(key=lambda item: item[1])

    def unregister_handler(self, handler: ExitHandler) -> None:
        with self._lock:
            self._handlers = [(h, p) for h, p in self._handlers if h is not handler]

    def _run_all_handlers(self) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler, _ in handlers:
            try:
                logger.info(f"Running exit handler: {handler.name}")
                handler.cleanup()
            except Exception as e:
                logger.error(f"Exit handler {handler.name} failed: {e}")

    def _signal_handler(self, signum, frame) -> None:
        exit_code = 128 + signum
        if self._cleanup_in_progress:
            logger.warning("Second signal during cleanup, forcing exit")
            sys.exit(exit_code)
            return

        self._cleanup_in_progress = True
        name = signal.Signals(signum).name
        logger.warning(f"Received {name}, cleaning up before exit")

        self._terminate_all_processes()
        self._run_all_handlers()

        logger.warning(f"Exiting after {name} (code {exit_code})")
        sys.exit(exit_code)


class ServiceContinuityHandler(ExitHandler):
    """Restarts containers the coordinator stopped (priority 10)."""

    name = "service_continuity"
    priority = 10

    def __init__(self, coordinator=None):
        self._coordinator = coordinator

    def attach(self, coordinator) -> None:
        self._coordinator = coordinator

    def cleanup(self) -> None:
        if self._coordinator is None:
            return
        stopped = self._coordinator.stopped.names()
        if stopped:
            logger.warning(f"Restarting {len(stopped)} container(s) after interruption")
        report = self._coordinator.restart_phase()
        if report.still_stopped:
            logger.error(
                "Containers still stopped, restart manually: " + ", ".join(report.still_stopped)
            )


class CleanupHandler(ExitHandler):
    """Runs one cleanup callback, e.g. remote temp-file removal (priority 50)."""

    priority = 50

    def __init__(self, name: str = "cleanup", callback: Optional[Callable[[], None]] = None):
        self.name = name
        self._callback = callback

    def cleanup(self) -> None:
        if self._callback is not None:
            try:
                self._callback()
            except Exception as e:
                logger.error(f"Cleanup '{self.name}' failed: {e}")
