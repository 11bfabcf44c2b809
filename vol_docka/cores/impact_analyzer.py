################################################################################
# VOL-DOCKA
#
# @file:        impact_analyzer.py
# @module:      vol_docka.cores.impact_analyzer
# @description: Maps each selected volume to the containers that reference it.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Two strategies per scope: `ps --filter volume=` and a mount-list scan
# - A failing source is logged and contributes nothing; analysis continues
################################################################################

"""
Impact analysis: which containers hold which volumes, across all scopes.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Sequence, Tuple

from ..helpers.constants import DEFAULT_MOUNT_PATH
from ..helpers.logging import get_logger
from ..helpers.ui_utils import SubprocessError
from ..types import ContainerRef, ContainerStatus, DaemonScope, ImpactRecord
from .daemon_query import ContainerRow, DaemonQuery

logger = get_logger(__name__)


class ImpactAnalyzer:
    """Builds an ImpactRecord from the daemon query facade."""

    def __init__(self, query: DaemonQuery):
        self.query = query

    def analyze(self, volumes: Sequence[str]) -> ImpactRecord:
        record = ImpactRecord(list(volumes))
        scopes = self.query.scopes()

        for volume in volumes:
            for scope in scopes:
                for name, status_text in self._rows_for(scope, volume):
                    if any(ref.name == name for ref in record.containers_for(volume)):
                        continue
                    mount = self.query.mount_path(scope, name, volume)
                    ref = ContainerRef(
                        name=name,
                        status=ContainerStatus.from_text(status_text),
                        mount_path=mount or DEFAULT_MOUNT_PATH,
                        volume=volume,
                        scope=scope,
                        mount_confirmed=mount is not None,
                    )
                    record.add(volume, ref)

            refs = record.containers_for(volume)
            if refs:
                logger.info(
                    f"Volume used by: {', '.join(f'{r.name} ({r.status.value})' for r in refs)}",
                    extra={"volume": volume},
                )
            else:
                logger.debug("No containers reference volume", extra={"volume": volume})

        return record

    def _rows_for(self, scope: DaemonScope, volume: str) -> List[ContainerRow]:
        rows: List[ContainerRow] = []
        strategies: Iterable[Tuple[str, Callable[[DaemonScope, str], List[ContainerRow]]]] = (
            ("volume filter", self.query.containers_by_filter),
            ("mount scan", self.query.containers_by_mounts),
        )
        for label, strategy in strategies:
            try:
                rows.extend(strategy(scope, volume))
            except SubprocessError as e:
                logger.warning(
                    f"Container lookup failed ({label}): {e.stderr or e}",
                    extra={"volume": volume, "context": scope.name},
                )
        return rows
