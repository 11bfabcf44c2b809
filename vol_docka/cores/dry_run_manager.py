################################################################################
# VOL-DOCKA
#
# @file:        dry_run_manager.py
# @module:      vol_docka.cores.dry_run_manager
# @description: Prints what a backup run would do without touching anything.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
################################################################################

"""
Dry run simulation report for Vol-Docka.

Shows the volumes that would be backed up, the containers that would be
stopped, and the archive paths that would be created.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from ..helpers.constants import BACKUP_TIMESTAMP_FORMAT, DIRECT_BACKUP_LABEL
from ..helpers.logging import get_logger
from ..helpers.run_settings import RunSettings
from ..helpers.system_utils import SystemUtils
from ..helpers.ui_utils import console, create_status_table, create_table
from ..types import ImpactRecord, VolumePlan
from .consent_gate import ConsentDecision

logger = get_logger(__name__)


class DryRunReport:
    """
    Generates dry run reports for backup runs.
    """

    def __init__(self, settings: RunSettings, utils: Optional[SystemUtils] = None):
        self.settings = settings
        self.utils = utils or SystemUtils()

    def archive_path(self, plan: VolumePlan, timestamp: str) -> str:
        label = plan.donor.name if plan.donor else DIRECT_BACKUP_LABEL
        return f"{self.settings.temp_dir}/{plan.volume}_{label}_{timestamp}.tar.gz"

    def would_stop(self, impact: ImpactRecord, decision: ConsentDecision) -> List[str]:
        if not decision.stop_containers:
            return []
        return impact.running_names()

    def generate(
        self,
        plans: List[VolumePlan],
        impact: ImpactRecord,
        decision: ConsentDecision,
        target: str = "",
    ) -> None:
        """Print the report."""
        timestamp = datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)

        console.print("\n[bold cyan]" + "=" * 60 + "[/bold cyan]")
        console.print("[bold cyan]VOL-DOCKA DRY RUN REPORT[/bold cyan]")
        console.print("[bold cyan]" + "=" * 60 + "[/bold cyan]\n")

        info = create_status_table("Run")
        info.add_row("Remote host", target or "-")
        info.add_row("Local backup dir", str(self.settings.local_dir))
        info.add_row("Remote temp dir", self.settings.temp_dir)
        info.add_row("Free local disk", f"{self.utils.get_available_disk_space(str(self.settings.local_dir)):.2f} GB")
        info.add_row("Parallel workers", str(self.settings.parallel_workers))
        info.add_row("Keep backups", str(self.settings.keep_backups or "unlimited"))
        console.print(info)

        table = create_table(
            "Volumes that would be backed up",
            [("Volume", "cyan", None), ("Mode", "white", None),
             ("Donor / mount", "white", None), ("Archive", "dim", None)],
        )
        for plan in plans:
            donor = plan.donor
            table.add_row(
                plan.volume,
                "donor" if donor else "direct",
                f"{donor.name}:{donor.mount_path}" if donor else "-",
                self.archive_path(plan, timestamp),
            )
        console.print(table)

        stop = self.would_stop(impact, decision)
        if stop:
            console.print("\n[yellow]Containers that would be stopped (restart order reversed):[/yellow]")
            for name in stop:
                console.print(f"  • {name}")
            if self.settings.auto_restart:
                console.print(f"  restart order: {', '.join(reversed(stop))}")
            else:
                console.print("  [red]auto-restart disabled: containers would stay stopped[/red]")
        elif decision.running_count:
            console.print(
                f"\n[yellow]{decision.running_count} running container(s) would NOT be managed[/yellow]"
            )
        else:
            console.print("\n[green]No running containers are affected.[/green]")

        console.print("\nNo changes were made. Run without --dry-run to perform actual backup.\n")
        logger.debug(f"Dry run report generated for {len(plans)} volume(s)")
