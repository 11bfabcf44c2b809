"""
Unit tests for BackupExecutor: archive command shapes, rsync flags,
local layout and remote cleanup.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from vol_docka.cores.backup_executor import BackupExecutor
from vol_docka.helpers.ui_utils import SubprocessError


def make_executor(shell, settings, clock):
    return BackupExecutor(shell, settings, clock=clock)


@pytest.mark.unit
class TestArchiveCommand:
    def test_donor_mode(self, fake_shell, make_settings, make_ref, default_scope, fixed_clock):
        executor = make_executor(fake_shell, make_settings(), fixed_clock)
        donor = make_ref("web", mount_path="/var/www/html")

        cmd = executor.archive_command("app_data", default_scope, donor,
                                       "/tmp/docker-backups/app_data_web_20250314_150926.tar.gz")

        assert cmd == [
            "docker", "run", "--rm",
            "--volumes-from", "web",
            "-v", "/tmp/docker-backups:/backup",
            "busybox",
            "tar", "czf", "/backup/app_data_web_20250314_150926.tar.gz",
            "-C", "/", "var/www/html",
        ]

    def test_direct_mode(self, fake_shell, make_settings, fixed_clock):
        from vol_docka.cores.daemon_query import SYSTEM_DAEMON

        executor = make_executor(fake_shell, make_settings(), fixed_clock)
        cmd = executor.archive_command("orphan", SYSTEM_DAEMON, None, "/tmp/docker-backups/x.tar.gz")

        assert cmd[:3] == ["sudo", "docker", "run"]
        assert "-v" in cmd and "orphan:/volume_data" in cmd
        assert cmd[-4:] == ["/backup/x.tar.gz", "-C", "/volume_data", "."]

    def test_archive_path_uses_label(self, fake_shell, make_settings, fixed_clock):
        executor = make_executor(fake_shell, make_settings(temp_dir="/var/tmp/vd/"), fixed_clock)
        assert executor.archive_path("v", "direct-backup", "20250101_000000") == (
            "/var/tmp/vd/v_direct-backup_20250101_000000.tar.gz"
        )


@pytest.mark.unit
class TestRsyncCommand:
    def test_defaults(self, fake_shell, make_settings, fixed_clock):
        executor = make_executor(fake_shell, make_settings(show_progress=True), fixed_clock)
        cmd = executor.rsync_command("/tmp/docker-backups/a.tar.gz", Path("/local/a.tar.gz"))

        assert cmd[:4] == ["rsync", "-a", "-e", "ssh -o BatchMode=yes"]
        assert "-z" in cmd
        assert "--progress" in cmd and "--stats" in cmd
        assert "-n" not in cmd
        assert cmd[-2:] == ["root@docker.example:/tmp/docker-backups/a.tar.gz", "/local/a.tar.gz"]

    def test_flags_follow_settings(self, fake_shell, make_settings, fixed_clock):
        settings = make_settings(compress=False, verbose=True, dry_run=True)
        cmd = make_executor(fake_shell, settings, fixed_clock).rsync_command("/r", Path("/l"))

        assert "-z" not in cmd
        assert "--progress" not in cmd
        assert "-v" in cmd
        assert "-n" in cmd


@pytest.mark.unit
class TestBackupVolume:
    def test_success_layout_and_latest_link(self, fake_shell, make_settings, make_ref,
                                            default_scope, fixed_clock):
        settings = make_settings()
        executor = make_executor(fake_shell, settings, fixed_clock)

        with patch("vol_docka.cores.backup_executor.run_command") as mock_run:
            outcome = executor.backup_volume("app_data", default_scope, make_ref("web", running=False))

        assert outcome.succeeded is True
        assert outcome.mode == "donor"
        assert outcome.donor == "web"
        volume_dir = settings.local_dir / "app_data"
        assert (volume_dir / "20250314_150926").is_dir()
        latest = volume_dir / "latest"
        assert latest.is_symlink()
        assert os.readlink(latest) == "20250314_150926"
        assert outcome.local_path == volume_dir / "20250314_150926" / "app_data_web_20250314_150926.tar.gz"
        assert outcome.size_bytes == 0

        assert fake_shell.calls[0] == "mkdir -p /tmp/docker-backups"
        assert "--volumes-from web" in fake_shell.calls[1]
        mock_run.assert_called_once()
        assert executor.pending_remote_files() == [
            "/tmp/docker-backups/app_data_web_20250314_150926.tar.gz"
        ]

    def test_downloaded_size_recorded(self, fake_shell, make_settings, default_scope, fixed_clock):
        def rsync(cmd, **kwargs):
            Path(cmd[-1]).write_bytes(b"x" * 1536)

        with patch("vol_docka.cores.backup_executor.run_command", side_effect=rsync):
            outcome = make_executor(fake_shell, make_settings(), fixed_clock).backup_volume(
                "app_data", default_scope
            )

        assert outcome.size_bytes == 1536

    def test_latest_link_replaced(self, fake_shell, make_settings, default_scope, fixed_clock):
        settings = make_settings()
        volume_dir = settings.local_dir / "app_data"
        (volume_dir / "20240101_000000").mkdir(parents=True)
        (volume_dir / "latest").symlink_to("20240101_000000")

        with patch("vol_docka.cores.backup_executor.run_command"):
            make_executor(fake_shell, settings, fixed_clock).backup_volume("app_data", default_scope)

        assert (volume_dir / "latest").resolve().name == "20250314_150926"

    def test_archive_failure_is_reported_not_raised(self, fake_shell, make_settings,
                                                    default_scope, fixed_clock):
        fake_shell.fail(r"run --rm", stderr="tar: write error")
        settings = make_settings()

        with patch("vol_docka.cores.backup_executor.run_command") as mock_run:
            outcome = make_executor(fake_shell, settings, fixed_clock).backup_volume(
                "app_data", default_scope
            )

        assert outcome.succeeded is False
        assert outcome.mode == "direct"
        assert "tar: write error" in outcome.error
        mock_run.assert_not_called()
        assert not (settings.local_dir / "app_data" / "20250314_150926").exists()

    def test_rsync_failure_is_reported(self, fake_shell, make_settings, default_scope, fixed_clock):
        settings = make_settings()
        with patch(
            "vol_docka.cores.backup_executor.run_command",
            side_effect=SubprocessError(["rsync"], 23, "partial transfer"),
        ):
            outcome = make_executor(fake_shell, settings, fixed_clock).backup_volume(
                "app_data", default_scope
            )

        assert outcome.succeeded is False
        assert outcome.error == "partial transfer"
        assert not (settings.local_dir / "app_data" / "latest").exists()

    def test_dry_run_touches_nothing(self, fake_shell, make_settings, default_scope, fixed_clock):
        settings = make_settings(dry_run=True)
        with patch("vol_docka.cores.backup_executor.run_command") as mock_run:
            outcome = make_executor(fake_shell, settings, fixed_clock).backup_volume(
                "app_data", default_scope
            )

        assert outcome.succeeded is True
        assert fake_shell.calls == []
        mock_run.assert_not_called()
        assert not settings.local_dir.exists()


@pytest.mark.unit
class TestCleanup:
    def test_removes_tracked_files_then_dir(self, fake_shell, make_settings, default_scope, fixed_clock):
        executor = make_executor(fake_shell, make_settings(), fixed_clock)
        with patch("vol_docka.cores.backup_executor.run_command"):
            executor.backup_volume("a", default_scope)
            executor.backup_volume("b", default_scope)
        fake_shell.calls.clear()

        executor.cleanup_remote()

        assert fake_shell.calls == [
            "rm -f /tmp/docker-backups/a_direct-backup_20250314_150926.tar.gz",
            "rm -f /tmp/docker-backups/b_direct-backup_20250314_150926.tar.gz",
            "rmdir /tmp/docker-backups 2>/dev/null || true",
        ]
        assert executor.pending_remote_files() == []

    def test_second_cleanup_is_noop(self, fake_shell, make_settings, default_scope, fixed_clock):
        executor = make_executor(fake_shell, make_settings(), fixed_clock)
        with patch("vol_docka.cores.backup_executor.run_command"):
            executor.backup_volume("a", default_scope)
        executor.cleanup_remote()
        fake_shell.calls.clear()

        executor.cleanup_remote()
        assert fake_shell.calls == []

    def test_rm_failure_does_not_stop_cleanup(self, fake_shell, make_settings, default_scope, fixed_clock):
        executor = make_executor(fake_shell, make_settings(), fixed_clock)
        with patch("vol_docka.cores.backup_executor.run_command"):
            executor.backup_volume("a", default_scope)
        fake_shell.fail(r"^rm -f", stderr="Permission denied")

        executor.cleanup_remote()

        assert fake_shell.calls[-1].startswith("rmdir")
