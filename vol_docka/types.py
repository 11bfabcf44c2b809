################################################################################
# VOL-DOCKA
#
# @file:        types.py
# @module:      vol_docka.types
# @description: Shared data models for daemon scopes, container impact and run results.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - ContainerRef replaces colon-joined "name:status:mount:volume" strings
# - ImpactRecord keys are volumes; every ref inside carries the same volume
# - StoppedSet holds only containers this run actually stopped (stop order)
################################################################################

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from .helpers.constants import EXIT_OK, EXIT_FAILED, EXIT_CANCELLED


# ---- Daemon scopes ----

@dataclass(frozen=True)
class DaemonScope:
    """A docker endpoint on the remote host (context or sudo system daemon)."""
    name: str
    docker_cmd: Tuple[str, ...] = ("docker",)

    def __str__(self) -> str:
        return self.name


# ---- Containers & impact ----

class ContainerStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    OTHER = "other"

    @classmethod
    def from_text(cls, text: str) -> "ContainerStatus":
        """
        Map `docker ps` status text ("Up 2 hours", "Exited (0) ...") or an
        inspect state ("running", "exited", ...) onto the coarse enum.
        """
        value = (text or "").strip().lower()
        if "(paused)" in value or value == "paused":
            return cls.OTHER
        if value == "running" or value.startswith("up"):
            return cls.RUNNING
        if value.startswith("exited") or value.startswith("created"):
            return cls.STOPPED
        return cls.OTHER


@dataclass(frozen=True)
class ContainerRef:
    name: str
    status: ContainerStatus
    mount_path: str
    volume: str
    scope: Optional[DaemonScope] = None
    # inspect showed this exact volume at mount_path
    mount_confirmed: bool = False

    @property
    def is_running(self) -> bool:
        return self.status is ContainerStatus.RUNNING


class ImpactRecord:
    """
    Volume -> ordered containers referencing it.

    Duplicates (same container name under one volume) are dropped and the
    first mount path wins.
    """

    def __init__(self, volumes: Optional[List[str]] = None):
        self._entries: "OrderedDict[str, List[ContainerRef]]" = OrderedDict()
        for volume in volumes or []:
            self.add_volume(volume)

    def add_volume(self, volume: str) -> None:
        self._entries.setdefault(volume, [])

    def add(self, volume: str, ref: ContainerRef) -> bool:
        """Attach ref to volume; returns False if the name was already present."""
        if ref.volume != volume:
            raise ValueError(
                f"ContainerRef for volume '{ref.volume}' cannot be filed under '{volume}'"
            )
        refs = self._entries.setdefault(volume, [])
        if any(existing.name == ref.name for existing in refs):
            return False
        refs.append(ref)
        return True

    def volumes(self) -> List[str]:
        return list(self._entries.keys())

    def containers_for(self, volume: str) -> List[ContainerRef]:
        return list(self._entries.get(volume, []))

    def items(self) -> Iterator[Tuple[str, List[ContainerRef]]]:
        for volume, refs in self._entries.items():
            yield volume, list(refs)

    def running_names(self) -> List[str]:
        """Distinct running container names in volume order."""
        seen: Dict[str, None] = {}
        for refs in self._entries.values():
            for ref in refs:
                if ref.is_running:
                    seen.setdefault(ref.name, None)
        return list(seen)

    def container_names(self) -> List[str]:
        seen: Dict[str, None] = {}
        for refs in self._entries.values():
            for ref in refs:
                seen.setdefault(ref.name, None)
        return list(seen)

    def find(self, name: str) -> Optional[ContainerRef]:
        for refs in self._entries.values():
            for ref in refs:
                if ref.name == name:
                    return ref
        return None

    @property
    def running_count(self) -> int:
        return len(self.running_names())

    @property
    def total_count(self) -> int:
        return len(self.container_names())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, volume: object) -> bool:
        return volume in self._entries


class StoppedSet:
    """
    Insertion-ordered, duplicate-free names of containers stopped by this run.

    Mutations are serialized so the signal path and the normal flow can
    touch it concurrently.
    """

    def __init__(self):
        self._names: List[str] = []
        self._lock = threading.RLock()

    def add(self, name: str) -> bool:
        with self._lock:
            if name in self._names:
                return False
            self._names.append(name)
            return True

    def discard(self, name: str) -> None:
        with self._lock:
            if name in self._names:
                self._names.remove(name)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._names)

    def reversed_names(self) -> List[str]:
        with self._lock:
            return list(reversed(self._names))

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._names

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)


# ---- Plans ----

@dataclass
class VolumePlan:
    """What a run intends to do with one volume."""
    volume: str
    scope: DaemonScope
    containers: List[ContainerRef] = field(default_factory=list)

    @property
    def donor(self) -> Optional[ContainerRef]:
        """First container with a confirmed mount; its mount is reused for the archive."""
        return next((ref for ref in self.containers if ref.mount_confirmed), None)


# ---- Phase reports ----

@dataclass
class StopReport:
    stopped: List[str] = field(default_factory=list)
    killed: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)  # name -> error
    simulated: bool = False

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


@dataclass
class RestartReport:
    attempted: List[str] = field(default_factory=list)
    restarted: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    still_stopped: List[str] = field(default_factory=list)
    skipped: bool = False


# ---- Run results ----

@dataclass
class RunOutcome:
    volume: str
    succeeded: bool
    mode: str = ""                      # "donor", "direct" or "" when not attempted
    donor: Optional[str] = None
    local_path: Optional[Path] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0
    size_bytes: int = 0


class RunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    NOTHING_TO_DO = "nothing_to_do"


@dataclass
class RunSummary:
    status: RunStatus
    outcomes: List[RunOutcome] = field(default_factory=list)
    stop_report: StopReport = field(default_factory=StopReport)
    restart_report: RestartReport = field(default_factory=RestartReport)
    containers_not_managed: bool = False
    duration_seconds: float = 0.0
    dry_run: bool = False
    message: Optional[str] = None

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def total_bytes(self) -> int:
        return sum(o.size_bytes for o in self.outcomes if o.succeeded)

    @property
    def failed_volumes(self) -> List[str]:
        return [o.volume for o in self.outcomes if not o.succeeded]

    @property
    def exit_code(self) -> int:
        if self.status is RunStatus.CANCELLED:
            return EXIT_CANCELLED
        if self.status is RunStatus.FAILED:
            return EXIT_FAILED
        return EXIT_OK
