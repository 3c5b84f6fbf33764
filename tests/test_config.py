"""Tests for configuration loading and validation."""

import pytest
import yaml
from pydantic import ValidationError

from src.config import (
    ExecutionSettings,
    SchedulerSettings,
    StoreCommandConfig,
    load_config,
    resolve_env_vars,
)


@pytest.fixture(autouse=True)
def _isolated(tmp_path, monkeypatch):
    """Run from an empty directory with no config env vars set."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("STORECOMMAND_CONFIG", raising=False)
    for key in ("STORECOMMAND_EXECUTION_BATCH_SIZE", "STORECOMMAND_LLM_MODEL"):
        monkeypatch.delenv(key, raising=False)


class TestDefaults:
    """Tests for settings defaults and validation."""

    def test_defaults(self):
        cfg = StoreCommandConfig()
        assert cfg.execution.batch_size == 10
        assert cfg.execution.batch_delay_seconds == 0.5
        assert cfg.execution.parallel_platforms is False
        assert cfg.scheduler.window_minutes == 5
        assert cfg.scheduler.auto_apply_confidence == 0.7
        assert cfg.llm.min_confidence == 0.5

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            ExecutionSettings(batch_size=0)

    @pytest.mark.parametrize("value", ["9:00", "24:00", "noon"])
    def test_time_of_day_format(self, value):
        with pytest.raises(ValidationError, match="HH:MM"):
            SchedulerSettings(default_time_of_day=value)


class TestLoadConfig:
    """Tests for load_config()."""

    def test_no_file_uses_defaults(self):
        assert load_config() == StoreCommandConfig()

    def test_working_directory_file(self, tmp_path):
        (tmp_path / "storecommand.yaml").write_text(
            yaml.safe_dump({"execution": {"batch_size": 25, "batch_delay_seconds": 1}})
        )
        cfg = load_config()
        assert cfg.execution.batch_size == 25
        assert cfg.execution.batch_delay_seconds == 1.0

    def test_explicit_path_must_exist(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_env_override_wins_over_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump({"execution": {"batch_size": 25}}))
        monkeypatch.setenv("STORECOMMAND_CONFIG", str(path))
        monkeypatch.setenv("STORECOMMAND_EXECUTION_BATCH_SIZE", "3")
        monkeypatch.setenv("STORECOMMAND_EXECUTION_PARALLEL_PLATFORMS", "true")

        cfg = load_config()

        assert cfg.execution.batch_size == 3
        assert cfg.execution.parallel_platforms is True

    def test_unrelated_env_vars_are_ignored(self, monkeypatch):
        monkeypatch.setenv("STORECOMMAND_CREDENTIAL_KEY", "abc")
        monkeypatch.setenv("STORECOMMAND_API_KEY", "x" * 32)
        assert load_config() == StoreCommandConfig()

    def test_yaml_env_references(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LLM_MODEL_NAME", "claude-test")
        (tmp_path / "storecommand.yaml").write_text("llm:\n  model: ${LLM_MODEL_NAME}\n")
        assert load_config().llm.model == "claude-test"


def test_resolve_env_vars_missing_is_empty(monkeypatch):
    monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
    assert resolve_env_vars("a-${NOT_SET_ANYWHERE}-b") == "a--b"
