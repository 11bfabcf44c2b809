"""
Shared pytest fixtures for Vol-Docka tests.

Provides a scriptable fake remote shell, run settings, temporary config
files and the CLI runner. No real ssh or docker is needed.
"""

import json
import re
import shlex
import subprocess
from datetime import datetime
from typing import Dict, List, Optional

import pytest
from typer.testing import CliRunner

from vol_docka.cores.remote_shell import ConnectionCheckError, RemoteCommandError
from vol_docka.cores.safe_exit_manager import SafeExitManager
from vol_docka.helpers.run_settings import RunSettings
from vol_docka.types import ContainerRef, ContainerStatus, DaemonScope


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests touching several layers")


class FakeShell:
    """
    Stand-in for RemoteShell.

    Responses are scripted with regex rules matched against the joined
    remote command; the most recently added matching rule wins. Every
    command is recorded in `calls`.
    """

    def __init__(self, host: str = "docker.example", user: str = "root"):
        self.host = host
        self.user = user
        self.calls: List[str] = []
        self.reachable = True
        self._rules: List[dict] = []
        self._mounts: Dict[str, List[dict]] = {}
        # Containers come back up unless a test says otherwise.
        self.on(r"inspect -f .*State\.Status", stdout="running\n")

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    def ssh_options(self) -> List[str]:
        return ["-o", "BatchMode=yes"]

    def rsync_ssh(self) -> str:
        return "ssh -o BatchMode=yes"

    # --------------- Scripting ---------------

    def on(self, pattern: str, stdout: str = "", returncode: int = 0,
           stderr: str = "", times: Optional[int] = None) -> "FakeShell":
        self._rules.append({
            "re": re.compile(pattern), "stdout": stdout, "returncode": returncode,
            "stderr": stderr, "times": times,
        })
        return self

    def fail(self, pattern: str, stderr: str = "error", times: Optional[int] = None) -> "FakeShell":
        return self.on(pattern, returncode=1, stderr=stderr, times=times)

    def volumes(self, *names: str) -> "FakeShell":
        return self.on(r"^docker volume ls -q$", stdout="".join(f"{n}\n" for n in names))

    def containers(self, volume: str, *rows) -> "FakeShell":
        """rows: (name, status text) pairs reported by the volume filter."""
        out = "".join(f"{name}\t{status}\n" for name, status in rows)
        return self.on(rf"ps -a --filter volume={re.escape(volume)} ", stdout=out)

    def mount(self, container: str, volume: str, destination: str) -> "FakeShell":
        """Add a named-volume mount; a container keeps all mounts added for it."""
        mounts = self._mounts.setdefault(container, [])
        mounts.append({"Type": "volume", "Name": volume,
                       "Source": f"/var/lib/docker/volumes/{volume}/_data",
                       "Destination": destination})
        return self.on(rf"inspect --format .*Mounts.* {re.escape(container)}$",
                       stdout=json.dumps(mounts))

    def state(self, container: str, value: str) -> "FakeShell":
        return self.on(rf"inspect -f .*State\.Status.* {re.escape(container)}$", stdout=value)

    def calls_matching(self, pattern: str) -> List[str]:
        rx = re.compile(pattern)
        return [c for c in self.calls if rx.search(c)]

    # --------------- RemoteShell API ---------------

    def run(self, command, description: str = "", check: bool = True, timeout=None):
        remote = command if isinstance(command, str) else shlex.join(str(c) for c in command)
        self.calls.append(remote)

        stdout, returncode, stderr = "", 0, ""
        for rule in reversed(self._rules):
            if rule["times"] == 0 or not rule["re"].search(remote):
                continue
            if rule["times"] is not None:
                rule["times"] -= 1
            stdout, returncode, stderr = rule["stdout"], rule["returncode"], rule["stderr"]
            break

        result = subprocess.CompletedProcess(["ssh", remote], returncode, stdout, stderr)
        if check and returncode != 0:
            raise RemoteCommandError(["ssh", remote], returncode, stderr, host=self.host)
        return result

    def docker(self, scope: DaemonScope, *args: str, description: str = "",
               check: bool = True, timeout=None):
        return self.run([*scope.docker_cmd, *args], description=description,
                        check=check, timeout=timeout)

    def check_connection(self) -> None:
        self.calls.append("echo 'Connection successful'")
        if not self.reachable:
            raise ConnectionCheckError(f"Cannot connect to {self.target}: Connection refused")


@pytest.fixture(autouse=True)
def reset_safe_exit_manager():
    """Every test gets its own SafeExitManager singleton."""
    SafeExitManager.reset_instance()
    yield
    SafeExitManager.reset_instance()


@pytest.fixture
def fake_shell():
    return FakeShell()


@pytest.fixture
def default_scope():
    return DaemonScope("default", ("docker",))


@pytest.fixture
def make_settings(tmp_path):
    """Factory for RunSettings with quiet, single-scope defaults."""

    def _make(**overrides) -> RunSettings:
        values = dict(
            interactive=False,
            local_dir=tmp_path / "backups",
            restart_delay=0,
            show_progress=False,
            check_all_contexts=False,
            include_system_docker=False,
            auto_detect_docker_root=False,
        )
        values.update(overrides)
        return RunSettings(**values)

    return _make


@pytest.fixture
def make_ref(default_scope):
    """Factory for ContainerRef."""

    def _make(name: str, volume: str = "app_data", running: bool = True,
              mount_path: str = "/data", scope: Optional[DaemonScope] = None,
              mount_confirmed: bool = True) -> ContainerRef:
        return ContainerRef(
            name=name,
            status=ContainerStatus.RUNNING if running else ContainerStatus.STOPPED,
            mount_path=mount_path,
            volume=volume,
            scope=scope or default_scope,
            mount_confirmed=mount_confirmed,
        )

    return _make


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2025, 3, 14, 15, 9, 26)


@pytest.fixture
def cli_runner():
    """Typer CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def tmp_config(tmp_path):
    """Create a temporary vol-docka config file."""
    key = tmp_path / "id_test"
    key.write_text("dummy key\n")
    config_file = tmp_path / "vol-docka.conf"
    config_file.write_text(
        "[remote]\n"
        "host = docker.example\n"
        "user = backup\n"
        f"ssh_key = {key}\n"
        "check_all_contexts = false\n"
        "include_system_docker = false\n"
        "auto_detect_docker_root = false\n"
        "\n"
        "[backup]\n"
        f"local_dir = {tmp_path / 'backups'}\n"
        "exclude_volumes = cache, tmp_vol\n"
        "keep_backups = 3\n"
        "show_progress = false\n"
        "\n"
        "[containers]\n"
        "stop_timeout = 20\n"
        "restart_delay = 0\n"
        "\n"
        "[logging]\n"
        "level = WARNING\n"
    )
    return config_file


@pytest.fixture
def clean_env(monkeypatch):
    """Remove environment overrides that would leak into Config."""
    import os

    for var in list(os.environ):
        if var.startswith("VOL_DOCKA_") or var in ("REMOTE_HOST", "REMOTE_USER", "SSH_KEY"):
            monkeypatch.delenv(var, raising=False)
