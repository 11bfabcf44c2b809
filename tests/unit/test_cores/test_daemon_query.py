"""
Unit tests for DaemonQuery / DaemonControl.
"""

import pytest

from vol_docka.cores.daemon_query import (
    SYSTEM_DAEMON,
    DaemonControl,
    DaemonQuery,
    mount_entry_matches,
    scope_for_context,
    source_is_volume_data,
)
from vol_docka.cores.remote_shell import RemoteCommandError
from vol_docka.types import ContainerStatus


@pytest.mark.unit
class TestScopes:
    def test_default_context_uses_plain_docker(self):
        assert scope_for_context("default").docker_cmd == ("docker",)
        assert scope_for_context("prod").docker_cmd == ("docker", "--context", "prod")

    def test_all_contexts_plus_system(self, fake_shell):
        fake_shell.on(r"context ls", stdout="default\nprod\n")
        query = DaemonQuery(fake_shell)

        names = [s.name for s in query.scopes()]
        assert names == ["default", "prod", "system"]
        assert query.scopes()[-1] == SYSTEM_DAEMON

    def test_context_ls_failure_falls_back_to_default(self, fake_shell):
        fake_shell.fail(r"context ls", stderr="unknown command")
        query = DaemonQuery(fake_shell, include_system_docker=False)

        assert [s.name for s in query.scopes()] == ["default"]

    def test_scopes_are_cached(self, fake_shell):
        fake_shell.on(r"context ls", stdout="default\n")
        query = DaemonQuery(fake_shell)
        query.scopes()
        query.scopes()
        assert len(fake_shell.calls_matching(r"context ls")) == 1


@pytest.mark.unit
class TestListVolumes:
    def test_sorted_and_deduplicated_across_scopes(self, fake_shell):
        fake_shell.on(r"context ls", stdout="default\nprod\n")
        fake_shell.on(r"^docker volume ls -q$", stdout="zeta\nalpha\n")
        fake_shell.on(r"^docker --context prod volume ls -q$", stdout="alpha\nbeta\n")
        fake_shell.on(r"^sudo docker volume ls -q$", stdout="gamma\n")

        volumes = DaemonQuery(fake_shell).list_volumes()

        assert list(volumes) == ["alpha", "beta", "gamma", "zeta"]
        assert volumes["alpha"].name == "default"
        assert volumes["beta"].name == "prod"
        assert volumes["gamma"].name == "system"

    def test_failing_scope_is_skipped(self, fake_shell):
        fake_shell.volumes("data")
        fake_shell.fail(r"^sudo docker volume ls", stderr="sudo: a password is required")

        volumes = DaemonQuery(fake_shell, check_all_contexts=False).list_volumes()
        assert list(volumes) == ["data"]


@pytest.mark.unit
class TestContainers:
    def test_filter_rows(self, fake_shell, default_scope):
        fake_shell.containers("app_data", ("web", "Up 1 hour"), ("job", "Exited (0) 2 days ago"))
        rows = DaemonQuery(fake_shell).containers_by_filter(default_scope, "app_data")
        assert rows == [("web", "Up 1 hour"), ("job", "Exited (0) 2 days ago")]

    def test_mount_scan_matches_substring_and_truncated_names(self, fake_shell, default_scope):
        fake_shell.on(
            r"ps -a --format",
            stdout=(
                "web\tUp 1 hour\tapp_data,logs\n"
                "long\tUp 2 hours\tvery_long_volume_na…\n"
                "other\tUp 3 hours\tunrelated\n"
                "broken-row\n"
            ),
        )
        query = DaemonQuery(fake_shell)

        assert query.containers_by_mounts(default_scope, "app_data") == [("web", "Up 1 hour")]
        assert query.containers_by_mounts(default_scope, "very_long_volume_name_x") == [
            ("long", "Up 2 hours")
        ]

    @pytest.mark.parametrize("entry,volume,expected", [
        ("app_data", "app_data", True),
        ("", "app_data", False),
        ("app_d…", "app_data", True),
        ("app_x…", "app_data", False),
        ("logs", "app_data", False),
    ])
    def test_mount_entry_matches(self, entry, volume, expected):
        assert mount_entry_matches(entry, volume) is expected


@pytest.mark.unit
class TestMountPath:
    def test_destination_by_name(self, fake_shell, default_scope):
        fake_shell.mount("web", "app_data", "/var/www")
        assert DaemonQuery(fake_shell).mount_path(default_scope, "web", "app_data") == "/var/www"

    def test_destination_by_volume_data_source(self, fake_shell, default_scope):
        fake_shell.on(
            r"inspect --format .*Mounts.* web$",
            stdout='[{"Type": "volume", "Source": "/mnt/docker/volumes/app_data/_data", "Destination": "/srv"}]',
        )
        assert DaemonQuery(fake_shell).mount_path(default_scope, "web", "app_data") == "/srv"

    def test_neighbour_volume_is_not_this_volume(self, fake_shell, default_scope):
        fake_shell.mount("worker", "app_data", "/srv")
        assert DaemonQuery(fake_shell).mount_path(default_scope, "worker", "app") is None

    def test_bind_source_containing_name_is_not_confirmed(self, fake_shell, default_scope):
        fake_shell.on(
            r"inspect --format .*Mounts.* web$",
            stdout='[{"Type": "bind", "Source": "/srv/app_data", "Destination": "/srv"}]',
        )
        assert DaemonQuery(fake_shell).mount_path(default_scope, "web", "app_data") is None

    @pytest.mark.parametrize("stdout", ["not json", '[{"Name": "x"}]', "null", "[]"])
    def test_unusable_output_is_unconfirmed(self, fake_shell, default_scope, stdout):
        fake_shell.on(r"inspect --format .*Mounts", stdout=stdout)
        assert DaemonQuery(fake_shell).mount_path(default_scope, "web", "app_data") is None

    def test_inspect_failure_is_unconfirmed(self, fake_shell, default_scope):
        fake_shell.fail(r"inspect --format .*Mounts")
        assert DaemonQuery(fake_shell).mount_path(default_scope, "web", "app_data") is None

    @pytest.mark.parametrize("source,volume,expected", [
        ("/var/lib/docker/volumes/app/_data", "app", True),
        ("/var/lib/docker/volumes/app_data/_data", "app", False),
        ("/var/lib/docker/volumes/my_app/_data", "app", False),
        ("/var/lib/docker/volumes/app", "app", False),
        ("", "app", False),
    ])
    def test_source_is_volume_data(self, source, volume, expected):
        assert source_is_volume_data(source, volume) is expected


@pytest.mark.unit
class TestDockerRoot:
    def test_detected(self, fake_shell):
        fake_shell.on(r"docker info --format", stdout="/mnt/docker\n")
        root = DaemonQuery(fake_shell).detect_docker_root("/var/lib/docker/volumes")
        assert root == "/mnt/docker/volumes"

    def test_failure_falls_back(self, fake_shell):
        fake_shell.fail(r"docker info")
        assert DaemonQuery(fake_shell).detect_docker_root("/fallback") == "/fallback"

    def test_empty_falls_back(self, fake_shell):
        assert DaemonQuery(fake_shell).detect_docker_root("/fallback") == "/fallback"


@pytest.mark.unit
class TestDaemonControl:
    def test_commands(self, fake_shell, default_scope):
        control = DaemonControl(fake_shell, DaemonQuery(fake_shell))
        control.stop(default_scope, "web", 30)
        control.kill(default_scope, "web")
        control.start(default_scope, "web")

        assert fake_shell.calls == [
            "docker stop --time=30 web",
            "docker kill web",
            "docker start web",
        ]

    def test_state(self, fake_shell, default_scope):
        fake_shell.state("web", "exited\n")
        control = DaemonControl(fake_shell, DaemonQuery(fake_shell))
        assert control.state(default_scope, "web") is ContainerStatus.STOPPED

    def test_state_raises_when_inspect_fails(self, fake_shell, default_scope):
        fake_shell.fail(r"State\.Status", stderr="No such object: web")
        control = DaemonControl(fake_shell, DaemonQuery(fake_shell))
        with pytest.raises(RemoteCommandError):
            control.state(default_scope, "web")
