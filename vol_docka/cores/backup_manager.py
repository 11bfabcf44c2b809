################################################################################
# VOL-DOCKA
#
# @file:        backup_manager.py
# @module:      vol_docka.cores.backup_manager
# @description: Runs the full pipeline from discovery to restart and retention.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Order: preflight -> discovery -> selection -> impact -> consent ->
#   stop -> backup -> restart -> retention
# - stop/backup run inside try/finally; restart is attempted on every exit
# - Exit handlers cover SIGINT/SIGTERM between stop and restart
################################################################################

"""
Backup orchestration for Vol-Docka.

BackupManager wires the collaborators together and turns one run into a
RunSummary. It never raises for per-volume or per-container failures;
UserCancelled ends the run with a cancelled summary.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from ..helpers.logging import get_logger
from ..helpers.run_settings import RunSettings
from ..types import (
    DaemonScope,
    ImpactRecord,
    RunOutcome,
    RunStatus,
    RunSummary,
    VolumePlan,
)
from .backup_executor import BackupExecutor
from .consent_gate import ConsentAction, ConsentDecision, ConsentGate, UserCancelled
from .container_coordinator import ContainerCoordinator
from .daemon_query import DaemonControl, DaemonQuery
from .dry_run_manager import DryRunReport
from .impact_analyzer import ImpactAnalyzer
from .remote_shell import ConnectionCheckError, RemoteShell
from .retention_manager import RetentionManager
from .safe_exit_manager import CleanupHandler, SafeExitManager, ServiceContinuityHandler
from .volume_selector import SelectionError, VolumeSelector

logger = get_logger(__name__)


class BackupManager:
    """
    Orchestrates one backup run against one remote host.

    Args:
        shell: Remote shell for the docker host
        settings: Validated run settings
        confirm: Yes/no callable for interactive prompts
        selector: Volume selector (exclusions + picker)
        sleep: Pacing between container restarts
        clock: Timestamp source for backup directories
    """

    def __init__(
        self,
        shell: RemoteShell,
        settings: RunSettings,
        confirm: Optional[Callable[[str, bool], bool]] = None,
        selector: Optional[VolumeSelector] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.shell = shell
        self.settings = settings
        self.query = DaemonQuery(
            shell,
            check_all_contexts=settings.check_all_contexts,
            include_system_docker=settings.include_system_docker,
        )
        self.control = DaemonControl(shell, self.query)
        self.analyzer = ImpactAnalyzer(self.query)
        self.gate = ConsentGate(settings, confirm)
        self.coordinator = ContainerCoordinator(self.control, settings, sleep=sleep)
        self.max_workers = settings.effective_workers()
        self.executor = BackupExecutor(
            shell,
            settings,
            stream_output=settings.show_progress and self.max_workers == 1,
            clock=clock,
        )
        self.retention = RetentionManager(
            settings.local_dir, settings.keep_backups, dry_run=settings.dry_run
        )
        self.selector = selector or VolumeSelector(settings.exclude_volumes, confirm=confirm)
        self.docker_root = settings.docker_root

    # --------------- Discovery & selection ---------------

    def discover(self) -> Dict[str, DaemonScope]:
        if self.settings.auto_detect_docker_root:
            self.docker_root = self.query.detect_docker_root(self.settings.docker_root)
        logger.info(f"Retrieving Docker volumes from {self.shell.host}")
        return self.query.list_volumes()

    def select(
        self, available: Dict[str, DaemonScope], requested: Optional[Sequence[str]] = None
    ) -> List[str]:
        names = list(available)
        if requested:
            return self.selector.explicit(names, list(requested))
        if self.settings.interactive:
            return self.selector.pick(names)
        return self.selector.filter(names)

    def plan(
        self, volumes: Sequence[str], available: Dict[str, DaemonScope], impact: ImpactRecord
    ) -> List[VolumePlan]:
        return [
            VolumePlan(volume=v, scope=available[v], containers=impact.containers_for(v))
            for v in volumes
        ]

    # --------------- Run ---------------

    def run(self, requested: Optional[Sequence[str]] = None) -> RunSummary:
        """Run the whole pipeline and return its summary."""
        started = time.monotonic()
        summary = RunSummary(status=RunStatus.COMPLETED, dry_run=self.settings.dry_run)

        try:
            self.shell.check_connection()
            available = self.discover()
            if not available:
                summary.status = RunStatus.FAILED
                summary.message = (
                    "Failed to retrieve Docker volumes. Make sure Docker is running "
                    "and accessible on the remote host."
                )
                logger.error(summary.message)
                return self._finish(summary, started)

            volumes = self.select(available, requested)
            if not volumes:
                summary.status = RunStatus.NOTHING_TO_DO
                summary.message = "No volumes selected for backup"
                logger.warning(summary.message)
                return self._finish(summary, started)

            logger.info(f"Volumes to back up: {', '.join(volumes)}")
            impact = self.analyzer.analyze(volumes)
            decision = self.gate.decide(impact)
            summary.containers_not_managed = decision.action is ConsentAction.NOT_MANAGED
            plans = self.plan(volumes, available, impact)

            if self.settings.dry_run:
                DryRunReport(self.settings).generate(plans, impact, decision, self.shell.target)

            summary.outcomes = self.execute(plans, impact, decision)
        except UserCancelled as e:
            summary.status = RunStatus.CANCELLED
            summary.message = str(e)
            logger.info(f"Run cancelled: {e}")
        except ConnectionCheckError as e:
            summary.status = RunStatus.FAILED
            summary.message = str(e)
            logger.error(summary.message)
        except SelectionError as e:
            summary.status = RunStatus.FAILED
            summary.message = str(e)
            logger.error(summary.message)

        if summary.status is RunStatus.COMPLETED and summary.failed_volumes:
            summary.status = RunStatus.FAILED
        return self._finish(summary, started)

    def execute(
        self, plans: List[VolumePlan], impact: ImpactRecord, decision: ConsentDecision
    ) -> List[RunOutcome]:
        """
        Stop -> backup -> restart, with restart guaranteed on every exit path.

        Raises:
            UserCancelled: If the operator declines after stop failures
        """
        exit_manager = SafeExitManager.get_instance()
        continuity = ServiceContinuityHandler(self.coordinator)
        cleanup = CleanupHandler(name="remote_temp_files", callback=self.executor.cleanup_remote)
        exit_manager.register_handler(continuity)
        exit_manager.register_handler(cleanup)

        manage = decision.stop_containers
        try:
            if manage:
                report = self.coordinator.stop_phase(impact)
                self.gate.allow_after_stop_failures(report)
            self.coordinator.mark_backing_up()
            outcomes = self._backup_all(plans, manage)
        finally:
            try:
                self.executor.cleanup_remote()
            finally:
                self.coordinator.restart_phase()
                exit_manager.unregister_handler(cleanup)
                exit_manager.unregister_handler(continuity)

        for outcome in outcomes:
            if outcome.succeeded:
                self.retention.prune(outcome.volume)
        return outcomes

    # --------------- Per volume ---------------

    def _backup_all(self, plans: List[VolumePlan], manage: bool) -> List[RunOutcome]:
        if self.max_workers > 1 and len(plans) > 1:
            logger.info(f"Backing up {len(plans)} volumes with {self.max_workers} workers")
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                return list(pool.map(lambda p: self._backup_one(p, manage), plans))
        return [self._backup_one(plan, manage) for plan in plans]

    def _backup_one(self, plan: VolumePlan, manage: bool) -> RunOutcome:
        try:
            if manage:
                for ref in plan.containers:
                    if ref.is_running and ref.name not in self.coordinator.stopped:
                        self.coordinator.ensure_stopped(ref)

            donor = self._choose_donor(plan)
            blocker = donor or next((ref for ref in plan.containers if ref.is_running), None)
            if blocker is not None and blocker.is_running and blocker.name not in self.coordinator.stopped:
                if not self.settings.direct_fallback:
                    logger.error(
                        f"Container {blocker.name} is still running and direct fallback is disabled",
                        extra={"volume": plan.volume, "container": blocker.name},
                    )
                    return RunOutcome(
                        volume=plan.volume, succeeded=False, donor=blocker.name,
                        error=f"container {blocker.name} is running",
                    )
                logger.warning(
                    f"Container {blocker.name} is running; falling back to direct volume mount",
                    extra={"volume": plan.volume, "container": blocker.name},
                )
                donor = None

            if donor is None and plan.containers:
                scope = plan.scope
            else:
                scope = (donor.scope if donor and donor.scope else plan.scope)
            return self.executor.backup_volume(plan.volume, scope, donor)
        except Exception as e:
            logger.error(f"Unexpected error during backup: {e}", extra={"volume": plan.volume})
            return RunOutcome(volume=plan.volume, succeeded=False, error=str(e))

    def _choose_donor(self, plan: VolumePlan):
        """
        Pick the container whose mount is reused for the archive.

        Only refs whose mount inspect confirmed qualify; a container matched
        by the mount scan alone may hold a different volume with a similar
        name. Among those, prefer one that is down.
        """
        confirmed = [ref for ref in plan.containers if ref.mount_confirmed]
        for ref in confirmed:
            if ref.name in self.coordinator.stopped or not ref.is_running:
                return ref
        if plan.containers and not confirmed:
            logger.info(
                "No container mount of this volume confirmed, using direct mode",
                extra={"volume": plan.volume},
            )
        return plan.donor

    def _finish(self, summary: RunSummary, started: float) -> RunSummary:
        summary.stop_report = self.coordinator.stop_report
        summary.restart_report = self.coordinator.restart_report
        summary.duration_seconds = time.monotonic() - started
        return summary
