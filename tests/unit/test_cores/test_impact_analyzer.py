"""
Unit tests for ImpactAnalyzer.
"""

import pytest

from vol_docka.cores.daemon_query import DaemonQuery
from vol_docka.cores.impact_analyzer import ImpactAnalyzer
from vol_docka.types import ContainerStatus


def make_analyzer(shell, **kwargs):
    kwargs.setdefault("check_all_contexts", False)
    kwargs.setdefault("include_system_docker", False)
    return ImpactAnalyzer(DaemonQuery(shell, **kwargs))


@pytest.mark.unit
class TestImpactAnalyzer:
    def test_containers_with_status_and_mount(self, fake_shell):
        fake_shell.containers("app_data", ("web", "Up 2 hours"), ("backup-job", "Exited (0) 1 day ago"))
        fake_shell.mount("web", "app_data", "/var/www")

        record = make_analyzer(fake_shell).analyze(["app_data"])
        refs = record.containers_for("app_data")

        assert [r.name for r in refs] == ["web", "backup-job"]
        assert refs[0].status is ContainerStatus.RUNNING
        assert refs[0].mount_path == "/var/www"
        assert refs[0].mount_confirmed is True
        assert refs[1].status is ContainerStatus.STOPPED
        assert refs[1].mount_path == "/data"
        assert refs[1].mount_confirmed is False
        assert refs[0].scope.name == "default"

    def test_volume_without_containers(self, fake_shell):
        record = make_analyzer(fake_shell).analyze(["lonely"])
        assert record.volumes() == ["lonely"]
        assert record.containers_for("lonely") == []
        assert record.running_count == 0

    def test_filter_and_mount_scan_are_merged_without_duplicates(self, fake_shell):
        fake_shell.containers("app_data", ("web", "Up 2 hours"))
        fake_shell.on(r"ps -a --format", stdout="web\tUp 2 hours\tapp_data\nsidecar\tUp 1 hour\tapp_data\n")

        record = make_analyzer(fake_shell).analyze(["app_data"])
        assert [r.name for r in record.containers_for("app_data")] == ["web", "sidecar"]

    def test_same_container_in_two_scopes_listed_once(self, fake_shell):
        fake_shell.on(r"context ls", stdout="default\nprod\n")
        fake_shell.on(r"^docker ps -a --filter volume=app_data ", stdout="web\tUp 1 hour\n")
        fake_shell.on(r"^docker --context prod ps -a --filter volume=app_data ",
                      stdout="web\tExited (0)\n")

        record = make_analyzer(fake_shell, check_all_contexts=True).analyze(["app_data"])
        refs = record.containers_for("app_data")
        assert len(refs) == 1
        assert refs[0].scope.name == "default"
        assert refs[0].is_running

    def test_container_shared_by_two_volumes(self, fake_shell):
        fake_shell.containers("v1", ("web", "Up 1 hour"))
        fake_shell.containers("v2", ("web", "Up 1 hour"), ("db", "Up 1 hour"))

        record = make_analyzer(fake_shell).analyze(["v1", "v2"])
        assert record.running_names() == ["web", "db"]
        assert record.running_count == 2

    def test_lookup_failure_is_treated_as_empty(self, fake_shell):
        fake_shell.fail(r"ps -a --filter", stderr="Cannot connect to the Docker daemon")
        fake_shell.on(r"ps -a --format", stdout="web\tUp 1 hour\tapp_data\n")

        record = make_analyzer(fake_shell).analyze(["app_data"])
        assert [r.name for r in record.containers_for("app_data")] == ["web"]

    def test_unreachable_system_scope_does_not_abort(self, fake_shell):
        fake_shell.fail(r"^sudo docker", stderr="sudo: a password is required")
        fake_shell.containers("app_data", ("web", "Up 1 hour"))

        record = make_analyzer(fake_shell, include_system_docker=True).analyze(["app_data"])
        assert [r.name for r in record.containers_for("app_data")] == ["web"]

    def test_scan_match_on_neighbour_volume_is_unconfirmed(self, fake_shell):
        """`app` matches a container holding only `app_data`: implicated, but not a mount of `app`."""
        fake_shell.on(r"ps -a --format", stdout="worker\tUp 1 hour\tapp_data\n")
        fake_shell.mount("worker", "app_data", "/srv")

        record = make_analyzer(fake_shell).analyze(["app", "app_data"])

        [neighbour] = record.containers_for("app")
        assert neighbour.name == "worker"
        assert neighbour.mount_confirmed is False
        assert neighbour.mount_path == "/data"
        [own] = record.containers_for("app_data")
        assert own.mount_confirmed is True
        assert own.mount_path == "/srv"
        assert record.running_names() == ["worker"]
