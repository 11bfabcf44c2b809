"""
Unit tests for RunSettings validation and config merging.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from vol_docka.helpers.config import Config
from vol_docka.helpers.run_settings import RunSettings


@pytest.mark.unit
class TestDefaults:
    def test_defaults(self):
        settings = RunSettings()
        assert settings.interactive is True
        assert settings.stop_timeout == 30
        assert settings.auto_restart is True
        assert settings.temp_dir == "/tmp/docker-backups"
        assert settings.parallel_workers == 1

    def test_frozen(self):
        with pytest.raises(ValidationError):
            RunSettings().dry_run = True


@pytest.mark.unit
class TestValidators:
    @pytest.mark.parametrize("value", [0, -5, 601])
    def test_stop_timeout_range(self, value):
        with pytest.raises(ValidationError):
            RunSettings(stop_timeout=value)

    def test_negative_restart_delay(self):
        with pytest.raises(ValidationError):
            RunSettings(restart_delay=-1)

    def test_temp_dir_must_be_absolute(self):
        with pytest.raises(ValidationError):
            RunSettings(temp_dir="tmp/backups")
        assert RunSettings(temp_dir="/var/tmp/x/").temp_dir == "/var/tmp/x"

    def test_local_dir_expands_user(self):
        assert RunSettings(local_dir="~/bk").local_dir == Path("~/bk").expanduser()

    @pytest.mark.parametrize("value,expected", [("auto", "auto"), (-1, "auto"), ("4", 4), (8, 8)])
    def test_workers_accepted(self, value, expected):
        assert RunSettings(parallel_workers=value).parallel_workers == expected

    @pytest.mark.parametrize("value", [0, 33, "many", True])
    def test_workers_rejected(self, value):
        with pytest.raises(ValidationError):
            RunSettings(parallel_workers=value)

    def test_excludes_from_string(self):
        settings = RunSettings(exclude_volumes="a, b ,,a")
        assert settings.exclude_volumes == ["a", "b"]


@pytest.mark.unit
class TestFromConfig:
    def test_merges_file_values(self, tmp_config, clean_env):
        settings = RunSettings.from_config(Config(tmp_config))

        assert settings.stop_timeout == 20
        assert settings.keep_backups == 3
        assert settings.exclude_volumes == ["cache", "tmp_vol"]
        assert settings.show_progress is False
        assert settings.check_all_contexts is False

    def test_none_overrides_ignored(self, tmp_config, clean_env):
        settings = RunSettings.from_config(Config(tmp_config), stop_timeout=None, dry_run=True)
        assert settings.stop_timeout == 20
        assert settings.dry_run is True

    def test_cli_override_validated(self, tmp_config, clean_env):
        with pytest.raises(ValidationError):
            RunSettings.from_config(Config(tmp_config), stop_timeout=0)

    def test_auto_workers_from_config(self, tmp_config, clean_env, monkeypatch):
        monkeypatch.setenv("VOL_DOCKA_BACKUP_PARALLEL_WORKERS", "auto")
        settings = RunSettings.from_config(Config(tmp_config))

        assert settings.parallel_workers == "auto"
        with patch("vol_docka.helpers.system_utils.SystemUtils.get_optimal_workers", return_value=3):
            assert settings.effective_workers() == 3
