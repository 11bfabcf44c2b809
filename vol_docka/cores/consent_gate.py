################################################################################
# VOL-DOCKA
#
# @file:        consent_gate.py
# @module:      vol_docka.cores.consent_gate
# @description: Decides whether running containers may be stopped for this run.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - The running count comes from the ImpactRecord only, never recomputed
# - A declined prompt raises UserCancelled; callers report it, not a failure
# - The confirm callable is never invoked in non-interactive or dry-run mode
################################################################################

"""
Consent gate between impact analysis and the container stop phase.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..helpers.logging import get_logger
from ..helpers.run_settings import RunSettings
from ..helpers.ui_utils import confirm_action, console, create_table
from ..types import ImpactRecord, StopReport

logger = get_logger(__name__)

ConfirmFn = Callable[[str, bool], bool]


class UserCancelled(Exception):
    """The operator declined; the run ends without touching anything further."""


class ConsentAction(str, Enum):
    PROCEED = "proceed"            # nothing running, no stop phase
    STOP = "stop"                  # enter the stop phase
    NOT_MANAGED = "not_managed"    # running containers are left alone


@dataclass(frozen=True)
class ConsentDecision:
    action: ConsentAction
    running_count: int
    simulated: bool = False

    @property
    def stop_containers(self) -> bool:
        return self.action is ConsentAction.STOP


def default_confirm(question: str, default: bool) -> bool:
    return confirm_action(question, default_no=not default)


class ConsentGate:
    """
    Args:
        settings: Run mode (interactive, auto_confirm, dry_run)
        confirm: Yes/no callable, only used in interactive runs
    """

    def __init__(self, settings: RunSettings, confirm: Optional[ConfirmFn] = None):
        self.settings = settings
        self.confirm = confirm or default_confirm

    def decide(self, impact: ImpactRecord) -> ConsentDecision:
        running = impact.running_count

        if running == 0:
            logger.info("No running containers detected. Proceeding with backup.")
            return ConsentDecision(ConsentAction.PROCEED, 0)

        if not self.settings.interactive:
            if self.settings.auto_confirm:
                logger.warning(
                    f"{running} running container(s) detected in non-interactive mode "
                    "with auto-confirm. Containers will be stopped."
                )
                return ConsentDecision(ConsentAction.STOP, running, self.settings.dry_run)
            logger.warning(
                f"{running} running container(s) detected but running non-interactively "
                "without auto-confirm. Containers will not be stopped."
            )
            logger.warning("Use --interactive or --auto-confirm to enable container management.")
            return ConsentDecision(ConsentAction.NOT_MANAGED, running, self.settings.dry_run)

        if self.settings.dry_run:
            logger.info(f"[DRY RUN] Would prompt to stop {running} running container(s)")
            return ConsentDecision(ConsentAction.STOP, running, simulated=True)

        self._show_running(impact)

        if self.settings.auto_confirm:
            logger.info("Auto-confirm is enabled. Containers will be stopped automatically.")
            return ConsentDecision(ConsentAction.STOP, running)

        if not self._ask("Do you want to stop these containers and continue with the backup?"):
            logger.info("Backup cancelled by user")
            raise UserCancelled("Stopping running containers was declined")

        logger.info("User confirmed to stop containers and continue with backup")
        return ConsentDecision(ConsentAction.STOP, running)

    def allow_after_stop_failures(self, report: StopReport) -> None:
        """
        Decide whether the backup continues after some stops failed.

        Raises:
            UserCancelled: Operator chose not to continue (interactive only)
        """
        if not report.has_failures:
            return

        failed = ", ".join(report.failures)
        logger.error(f"Failed to stop some containers: {failed}")

        if self.settings.interactive and not self.settings.dry_run:
            if not self._ask("Continue with backup anyway?"):
                logger.info("Backup cancelled due to container stop failures.")
                raise UserCancelled(f"Stop failures: {failed}")
            return

        logger.warning(
            "Continuing with backup despite container stop failures (non-interactive mode)"
        )

    def _ask(self, question: str) -> bool:
        """Closed stdin counts as the default answer, no."""
        try:
            return self.confirm(question, False)
        except EOFError:
            logger.warning("No operator input available, treating as no")
            return False

    def _show_running(self, impact: ImpactRecord) -> None:
        table = create_table(
            "Containers that will be stopped",
            [("Container", "cyan", None), ("Scope", "white", None),
             ("Mount", "white", None), ("Volumes", "yellow", None)],
        )
        for name in impact.running_names():
            ref = impact.find(name)
            volumes = [v for v, refs in impact.items() if any(r.name == name for r in refs)]
            table.add_row(name, str(ref.scope or "-"), ref.mount_path, ", ".join(volumes))
        console.print()
        console.print(table)
        logger.warning("Stopping these containers is required for a consistent backup.")
        if self.settings.auto_restart:
            logger.warning("The containers will be automatically restarted after the backup completes.")
