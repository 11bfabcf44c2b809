"""
Unit tests for the shared data models.
"""

import pytest

from vol_docka.types import (
    ContainerRef,
    ContainerStatus,
    ImpactRecord,
    RunOutcome,
    RunStatus,
    RunSummary,
    StoppedSet,
    VolumePlan,
)


@pytest.mark.unit
class TestContainerStatus:
    @pytest.mark.parametrize("text,expected", [
        ("Up 2 hours", ContainerStatus.RUNNING),
        ("Up 5 seconds (healthy)", ContainerStatus.RUNNING),
        ("running", ContainerStatus.RUNNING),
        ("Exited (0) 3 days ago", ContainerStatus.STOPPED),
        ("exited", ContainerStatus.STOPPED),
        ("Created", ContainerStatus.STOPPED),
        ("Up 3 minutes (Paused)", ContainerStatus.OTHER),
        ("paused", ContainerStatus.OTHER),
        ("Restarting (1) 2 seconds ago", ContainerStatus.OTHER),
        ("", ContainerStatus.OTHER),
    ])
    def test_from_text(self, text, expected):
        assert ContainerStatus.from_text(text) is expected


@pytest.mark.unit
class TestImpactRecord:
    def test_volumes_without_containers_are_kept(self):
        record = ImpactRecord(["a", "b"])
        assert record.volumes() == ["a", "b"]
        assert record.containers_for("a") == []
        assert len(record) == 2
        assert "a" in record

    def test_duplicate_name_under_one_volume_is_dropped(self, make_ref):
        record = ImpactRecord(["app_data"])
        assert record.add("app_data", make_ref("web", mount_path="/srv")) is True
        assert record.add("app_data", make_ref("web", mount_path="/other")) is False

        refs = record.containers_for("app_data")
        assert len(refs) == 1
        assert refs[0].mount_path == "/srv"

    def test_ref_must_match_volume(self, make_ref):
        record = ImpactRecord(["app_data"])
        with pytest.raises(ValueError):
            record.add("app_data", make_ref("web", volume="other"))

    def test_running_names_distinct_across_volumes(self, make_ref):
        record = ImpactRecord(["v1", "v2"])
        record.add("v1", make_ref("web", volume="v1"))
        record.add("v1", make_ref("db", volume="v1", running=False))
        record.add("v2", make_ref("web", volume="v2"))
        record.add("v2", make_ref("worker", volume="v2"))

        assert record.running_names() == ["web", "worker"]
        assert record.running_count == 2
        assert record.total_count == 3
        assert record.find("db").status is ContainerStatus.STOPPED
        assert record.find("missing") is None


@pytest.mark.unit
class TestStoppedSet:
    def test_insertion_order_and_no_duplicates(self):
        stopped = StoppedSet()
        assert stopped.add("a") is True
        assert stopped.add("b") is True
        assert stopped.add("a") is False

        assert stopped.names() == ["a", "b"]
        assert stopped.reversed_names() == ["b", "a"]
        assert len(stopped) == 2

    def test_discard(self):
        stopped = StoppedSet()
        stopped.add("a")
        stopped.discard("a")
        stopped.discard("never-added")
        assert "a" not in stopped
        assert len(stopped) == 0


@pytest.mark.unit
class TestPlansAndSummary:
    def test_donor_is_first_container(self, make_ref, default_scope):
        plan = VolumePlan("app_data", default_scope, [make_ref("web"), make_ref("db")])
        assert plan.donor.name == "web"
        assert VolumePlan("x", default_scope).donor is None

    def test_donor_skips_unconfirmed_mounts(self, make_ref, default_scope):
        scanned = make_ref("worker", volume="app", mount_confirmed=False)
        owner = make_ref("app-svc", volume="app", mount_path="/srv")
        assert VolumePlan("app", default_scope, [scanned, owner]).donor.name == "app-svc"
        assert VolumePlan("app", default_scope, [scanned]).donor is None

    def test_summary_counts_and_exit_codes(self):
        summary = RunSummary(status=RunStatus.FAILED, outcomes=[
            RunOutcome("a", True), RunOutcome("b", False),
        ])
        assert summary.processed == 2
        assert summary.succeeded == 1
        assert summary.failed_volumes == ["b"]
        assert summary.exit_code == 1

        assert RunSummary(status=RunStatus.CANCELLED).exit_code == 0
        assert RunSummary(status=RunStatus.NOTHING_TO_DO).exit_code == 0
        assert RunSummary(status=RunStatus.COMPLETED).exit_code == 0
