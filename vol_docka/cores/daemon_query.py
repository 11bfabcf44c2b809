################################################################################
# VOL-DOCKA
#
# @file:        daemon_query.py
# @module:      vol_docka.cores.daemon_query
# @description: Read-only docker queries across contexts plus container stop/start calls.
# @author:      Vol-Docka Contributors
# @repository:  https://github.com/vol-docka/vol-docka
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 Vol-Docka Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - DaemonQuery never mutates; DaemonControl is the only writer
# - "default" context uses plain `docker`, others `docker --context X`
# - The system scope is `sudo docker` (rootful daemon next to rootless ones)
################################################################################

"""
Docker daemon access on the remote host.

DaemonQuery lists contexts, volumes and the containers that reference a
volume. DaemonControl issues the few state-changing calls the container
coordinator needs.
"""

from __future__ import annotations

import json
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Tuple

import jsonschema

from ..helpers.constants import DEFAULT_CONTEXT, SYSTEM_SCOPE
from ..helpers.logging import get_logger
from ..helpers.ui_utils import SubprocessError
from ..types import ContainerStatus, DaemonScope
from .remote_shell import RemoteShell

logger = get_logger(__name__)

# Shape of `docker inspect --format '{{json .Mounts}}'`
MOUNTS_SCHEMA = {
    "type": ["array", "null"],
    "items": {
        "type": "object",
        "properties": {
            "Type": {"type": "string"},
            "Name": {"type": "string"},
            "Source": {"type": "string"},
            "Destination": {"type": "string"},
        },
        "required": ["Destination"],
    },
}

ContainerRow = Tuple[str, str]  # (name, status text)


def scope_for_context(context: str) -> DaemonScope:
    if context == DEFAULT_CONTEXT:
        return DaemonScope(DEFAULT_CONTEXT, ("docker",))
    return DaemonScope(context, ("docker", "--context", context))


SYSTEM_DAEMON = DaemonScope(SYSTEM_SCOPE, ("sudo", "docker"))


def _parse_rows(stdout: str) -> List[List[str]]:
    return [line.split("\t") for line in stdout.splitlines() if line.strip()]


def mount_entry_matches(entry: str, volume: str) -> bool:
    """
    Substring match of a `{{.Mounts}}` entry against a volume name.

    docker ps truncates long names with an ellipsis, so a truncated entry
    matches when it is a prefix of the volume.
    """
    entry = entry.strip()
    if not entry:
        return False
    if entry.endswith("…"):
        return volume.startswith(entry[:-1])
    return volume in entry


def source_is_volume_data(source: str, volume: str) -> bool:
    """True if source is `<any root>/<volume>/_data`."""
    parts = PurePosixPath(source).parts
    return len(parts) >= 2 and parts[-2:] == (volume, "_data")


class DaemonQuery:
    """
    Read-only queries against every configured docker scope.

    Args:
        shell: Remote shell for the target host
        check_all_contexts: Query every `docker context` instead of default only
        include_system_docker: Also query `sudo docker`
    """

    def __init__(
        self,
        shell: RemoteShell,
        check_all_contexts: bool = True,
        include_system_docker: bool = True,
    ):
        self.shell = shell
        self.check_all_contexts = check_all_contexts
        self.include_system_docker = include_system_docker
        self._scopes: Optional[List[DaemonScope]] = None

    # --------------- Scopes ---------------

    def list_contexts(self) -> List[str]:
        if not self.check_all_contexts:
            return [DEFAULT_CONTEXT]

        logger.info(f"Discovering Docker contexts on {self.shell.host}")
        try:
            result = self.shell.docker(
                scope_for_context(DEFAULT_CONTEXT),
                "context", "ls", "--format", "{{.Name}}",
                description="docker context ls",
            )
        except SubprocessError as e:
            logger.warning(f"Could not list Docker contexts, using default only: {e.stderr}")
            return [DEFAULT_CONTEXT]

        contexts = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return list(dict.fromkeys(contexts)) or [DEFAULT_CONTEXT]

    def scopes(self) -> List[DaemonScope]:
        if self._scopes is None:
            scopes = [scope_for_context(c) for c in self.list_contexts()]
            if self.include_system_docker:
                scopes.append(SYSTEM_DAEMON)
            self._scopes = scopes
        return list(self._scopes)

    # --------------- Volumes ---------------

    def list_volumes(self) -> Dict[str, DaemonScope]:
        """
        All volume names across scopes, sorted; each mapped to the first
        scope that reported it.
        """
        found: Dict[str, DaemonScope] = {}
        for scope in self.scopes():
            logger.info(f"Checking volumes in scope: {scope.name}", extra={"context": scope.name})
            try:
                result = self.shell.docker(scope, "volume", "ls", "-q",
                                           description=f"volume ls ({scope.name})")
            except SubprocessError as e:
                if scope == SYSTEM_DAEMON:
                    logger.warning("Could not access system-level Docker (sudo may not be available)")
                else:
                    logger.warning(
                        f"Could not list volumes: {e.stderr or e}",
                        extra={"context": scope.name},
                    )
                continue
            for line in result.stdout.splitlines():
                name = line.strip()
                if name:
                    found.setdefault(name, scope)
        return {name: found[name] for name in sorted(found)}

    # --------------- Containers ---------------

    def containers_by_filter(self, scope: DaemonScope, volume: str) -> List[ContainerRow]:
        """Containers reported by `docker ps -a --filter volume=<volume>`."""
        result = self.shell.docker(
            scope, "ps", "-a", "--filter", f"volume={volume}",
            "--format", "{{.Names}}\t{{.Status}}",
            description=f"ps --filter volume={volume} ({scope.name})",
        )
        return [(row[0], row[1] if len(row) > 1 else "") for row in _parse_rows(result.stdout)]

    def containers_by_mounts(self, scope: DaemonScope, volume: str) -> List[ContainerRow]:
        """Fallback: scan every container's mount list for the volume name."""
        result = self.shell.docker(
            scope, "ps", "-a", "--format", "{{.Names}}\t{{.Status}}\t{{.Mounts}}",
            description=f"ps mounts ({scope.name})",
        )
        rows: List[ContainerRow] = []
        for row in _parse_rows(result.stdout):
            if len(row) < 3:
                continue
            name, status, mounts = row[0], row[1], row[2]
            if any(mount_entry_matches(entry, volume) for entry in mounts.split(",")):
                rows.append((name, status))
        return rows

    def mount_path(self, scope: DaemonScope, container: str, volume: str) -> Optional[str]:
        """
        Destination of volume inside container, or None when inspect fails or
        no mount is exactly this volume.

        A mount counts when its Name is the volume, or its Source is the
        volume's own `<root>/<volume>/_data` directory. Neighbouring volumes
        whose names merely contain this one (`app` vs `app_data`) never match.
        """
        try:
            result = self.shell.docker(
                scope, "inspect", "--format", "{{json .Mounts}}", container,
                description=f"inspect mounts {container}",
            )
            mounts = json.loads(result.stdout or "null")
            jsonschema.validate(mounts, MOUNTS_SCHEMA)
        except (SubprocessError, ValueError, jsonschema.ValidationError) as e:
            logger.debug(
                f"Mount lookup failed: {e}",
                extra={"container": container, "volume": volume},
            )
            return None

        for mount in mounts or []:
            if mount.get("Name") == volume:
                return mount["Destination"]
        for mount in mounts or []:
            if source_is_volume_data(mount.get("Source", ""), volume):
                return mount["Destination"]
        logger.debug(
            "Container has no mount of this volume",
            extra={"container": container, "volume": volume},
        )
        return None

    def container_state(self, scope: DaemonScope, container: str) -> ContainerStatus:
        """
        Current state by inspection.

        Raises:
            RemoteCommandError: If the container cannot be inspected
        """
        result = self.shell.docker(
            scope, "inspect", "-f", "{{.State.Status}}", container,
            description=f"inspect state {container}",
        )
        return ContainerStatus.from_text(result.stdout.strip())

    # --------------- Host ---------------

    def detect_docker_root(self, fallback: str) -> str:
        """Volume root from `docker info`, or fallback."""
        try:
            result = self.shell.docker(
                scope_for_context(DEFAULT_CONTEXT),
                "info", "--format", "{{.DockerRootDir}}",
                description="docker info",
            )
        except SubprocessError:
            logger.warning(f"Failed to get Docker info, using default root: {fallback}")
            return fallback

        root = result.stdout.strip()
        if not root or root == "null":
            logger.warning(f"Could not auto-detect Docker root, using default: {fallback}")
            return fallback
        detected = f"{root.rstrip('/')}/volumes"
        logger.info(f"Auto-detected Docker root: {detected}")
        return detected


class DaemonControl:
    """State-changing container calls (stop, kill, start)."""

    def __init__(self, shell: RemoteShell, query: DaemonQuery):
        self.shell = shell
        self.query = query

    def stop(self, scope: DaemonScope, name: str, timeout: int) -> None:
        self.shell.docker(scope, "stop", f"--time={timeout}", name,
                          description=f"stop {name}", timeout=timeout + 30)

    def kill(self, scope: DaemonScope, name: str) -> None:
        self.shell.docker(scope, "kill", name, description=f"kill {name}")

    def start(self, scope: DaemonScope, name: str) -> None:
        self.shell.docker(scope, "start", name, description=f"start {name}")

    def state(self, scope: DaemonScope, name: str) -> ContainerStatus:
        return self.query.container_state(scope, name)
