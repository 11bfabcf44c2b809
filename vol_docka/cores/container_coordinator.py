################################################################################
# VOL-DOCKA
#
# @file:        container_coordinator.py
# @module:      vol_docka.cores.container_coordinator
# @description: Stops implicated containers once and restarts them in reverse order.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Container identity is the name; one container backing many volumes is
#   stopped once and restarted once
# - Restart is LIFO and each name is attempted at most once per run, also
#   when the signal handler re-enters restart_phase() mid-loop
# - Only an inspected "running" state counts as a successful restart
################################################################################

"""
Stop/restart coordinator.

Owns the StoppedSet of a run. The stop phase, on-the-fly stops from the
backup phase, and the restart phase (normal exit or signal) all go
through one instance guarded by a re-entrant lock.
"""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from ..helpers.constants import DEFAULT_CONTEXT
from ..helpers.logging import get_logger
from ..helpers.run_settings import RunSettings
from ..helpers.ui_utils import SubprocessError
from ..types import (
    ContainerRef,
    ContainerStatus,
    DaemonScope,
    ImpactRecord,
    RestartReport,
    StopReport,
    StoppedSet,
)
from .daemon_query import DaemonControl, scope_for_context

logger = get_logger(__name__)


class CoordinatorState(str, Enum):
    IDLE = "idle"
    STOPPING = "stopping"
    STOPPED = "stopped"
    BACKING_UP = "backing_up"
    RESTARTING = "restarting"
    DONE = "done"


class ContainerCoordinator:
    """
    Args:
        control: Docker stop/kill/start/inspect calls
        settings: stop_timeout, force_stop, auto_restart, restart_delay,
                  verify_running, dry_run
        sleep: Pacing function between restarts (injectable for tests)
    """

    def __init__(
        self,
        control: DaemonControl,
        settings: RunSettings,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.control = control
        self.settings = settings
        self._sleep = sleep

        self.stopped = StoppedSet()
        self.state = CoordinatorState.IDLE
        self.stop_report = StopReport(simulated=settings.dry_run)
        self.restart_report = RestartReport()

        self._scopes: Dict[str, DaemonScope] = {}
        self._in_flight: Optional[str] = None
        self._restarting: Optional[str] = None
        self._attempted: Set[str] = set()
        self._lock = threading.RLock()

    # --------------- Stop ---------------

    def stop_phase(self, impact: ImpactRecord) -> StopReport:
        """Stop every distinct running container referenced by impact."""
        with self._lock:
            self.state = CoordinatorState.STOPPING
            names = impact.running_names()
            if not names:
                logger.info("No running containers need to be stopped.")
            else:
                logger.info(f"Stopping {len(names)} container(s) that use the selected volumes")

            for name in names:
                ref = impact.find(name)
                self._stop_one(name, ref.scope if ref else None)

            self.state = CoordinatorState.STOPPED

            if len(self.stopped):
                logger.info(
                    f"Stopped {len(self.stopped)} container(s): {', '.join(self.stopped.names())}"
                )
            return self.stop_report

    def ensure_stopped(self, ref: ContainerRef) -> bool:
        """
        Make sure a donor container is down before its volume is archived.

        Returns True if it is stopped by this run, False if it could not be
        stopped (earlier failure, or the restart phase already began).
        """
        with self._lock:
            if ref.name in self.stopped:
                return True
            if ref.name in self.stop_report.failures:
                return False
            if self.state in (CoordinatorState.RESTARTING, CoordinatorState.DONE):
                logger.warning(
                    "Not stopping container, restart phase already started",
                    extra={"container": ref.name, "volume": ref.volume},
                )
                return False
            logger.info(
                "Stopping donor container on the fly",
                extra={"container": ref.name, "volume": ref.volume},
            )
            return self._stop_one(ref.name, ref.scope)

    def mark_backing_up(self) -> None:
        with self._lock:
            if self.state not in (CoordinatorState.RESTARTING, CoordinatorState.DONE):
                self.state = CoordinatorState.BACKING_UP

    def _stop_one(self, name: str, scope: Optional[DaemonScope]) -> bool:
        if name in self.stopped:
            return True

        scope = scope or scope_for_context(DEFAULT_CONTEXT)
        self._scopes[name] = scope
        log_ctx = {"container": name, "context": scope.name}

        if self.settings.dry_run:
            logger.info(f"[DRY RUN] Would stop container: {name}", extra=log_ctx)
            self.stopped.add(name)
            self.stop_report.stopped.append(name)
            return True

        logger.info(f"Stopping container: {name}", extra=log_ctx)
        self._in_flight = name
        try:
            try:
                self.control.stop(scope, name, self.settings.stop_timeout)
                self.stopped.add(name)
                self.stop_report.stopped.append(name)
                logger.info(f"Container {name} stopped gracefully", extra=log_ctx)
                return True
            except SubprocessError as e:
                if not self.settings.force_stop:
                    logger.error(
                        f"Failed to stop container: {name} (use --force-stop to force)",
                        extra=log_ctx,
                    )
                    self.stop_report.failures[name] = e.stderr or str(e)
                    return False
                logger.warning(f"Graceful stop failed, force stopping container: {name}",
                               extra=log_ctx)

            try:
                self.control.kill(scope, name)
            except SubprocessError as e:
                logger.error(f"Failed to force stop container: {name}", extra=log_ctx)
                self.stop_report.failures[name] = e.stderr or str(e)
                return False
            self.stopped.add(name)
            self.stop_report.stopped.append(name)
            self.stop_report.killed.append(name)
            logger.info(f"Container {name} force stopped", extra=log_ctx)
            return True
        finally:
            self._in_flight = None

    # --------------- Restart ---------------

    def restart_phase(self) -> RestartReport:
        """
        Restart everything in the StoppedSet, last stopped first.

        Safe to call more than once: names already attempted are skipped,
        so a signal handler calling this after (or during) the normal-flow
        call adds no second attempt.
        """
        with self._lock:
            report = self.restart_report

            if not self.settings.auto_restart:
                if self.state is not CoordinatorState.DONE:
                    report.skipped = True
                    report.still_stopped = self.stopped.names()
                    if report.still_stopped:
                        logger.warning(
                            "Auto-restart of containers is disabled; still stopped: "
                            + ", ".join(report.still_stopped)
                        )
                    self.state = CoordinatorState.DONE
                return report

            self.state = CoordinatorState.RESTARTING
            candidates = self._restart_candidates()
            pending = [n for n in candidates if n not in self._attempted]

            # Re-entered from a signal while a start was in flight; its ssh
            # child has been terminated, so the outcome is unknown.
            interrupted = self._restarting
            self._restarting = None
            if interrupted is not None and interrupted in self.stopped:
                logger.warning(
                    f"Restart of {interrupted} was interrupted, trying once more",
                    extra={"container": interrupted},
                )
                self._restart_one(interrupted, report)

            if pending:
                logger.info(f"Restarting {len(pending)} stopped container(s)...")
            elif not report.attempted:
                logger.info("No containers to restart")

            for name in pending:
                if name in self._attempted:
                    continue
                if report.attempted:
                    self._sleep(self.settings.restart_delay)
                self._attempted.add(name)
                report.attempted.append(name)
                self._restarting = name
                try:
                    self._restart_one(name, report)
                finally:
                    self._restarting = None

            report.still_stopped = self.stopped.names()
            self.state = CoordinatorState.DONE

            if report.restarted:
                logger.info(f"Successfully restarted {len(report.restarted)} container(s)")
            if report.failures:
                logger.error(
                    f"Failed to restart {len(report.failures)} container(s): "
                    + ", ".join(report.failures)
                )
            return report

    def _restart_candidates(self) -> List[str]:
        names = self.stopped.reversed_names()
        # A stop interrupted mid-call may have landed; try it first.
        if self._in_flight and self._in_flight not in names:
            names.insert(0, self._in_flight)
        return names

    def _restart_one(self, name: str, report: RestartReport) -> None:
        scope = self._scopes.get(name) or scope_for_context(DEFAULT_CONTEXT)
        log_ctx = {"container": name, "context": scope.name}

        if self.settings.dry_run:
            logger.info(f"[DRY RUN] Would restart container: {name}", extra=log_ctx)
            self.stopped.discard(name)
            report.restarted.append(name)
            return

        logger.info(f"Restarting container: {name}", extra=log_ctx)
        try:
            self.control.start(scope, name)
        except SubprocessError as e:
            logger.error(f"Failed to restart container: {name}", extra=log_ctx)
            report.failures[name] = e.stderr or str(e)
            return

        if self.settings.verify_running:
            try:
                status = self.control.state(scope, name)
            except SubprocessError as e:
                logger.error(f"Could not inspect container after start: {name}", extra=log_ctx)
                report.failures[name] = e.stderr or str(e)
                return
            if status is not ContainerStatus.RUNNING:
                logger.error(
                    f"Container {name} did not start successfully (status: {status.value})",
                    extra=log_ctx,
                )
                report.failures[name] = f"status after start: {status.value}"
                return

        self.stopped.discard(name)
        report.restarted.append(name)
        logger.info(f"Successfully restarted container: {name}", extra=log_ctx)
