"""
Tests for the config layer: env var resolution, runtime overrides and
runtime_config.yaml writes.
"""

from pathlib import Path

import pytest
import yaml


@pytest.fixture
def runtime(tmp_path):
    """Point the runtime config at a temp file; restore module state after."""
    from answerbox import config as cfg_mod

    rt_path = tmp_path / "runtime_config.yaml"
    saved = (cfg_mod._config, cfg_mod._RUNTIME_CONFIG_PATH,
             cfg_mod._runtime_mtime, cfg_mod._runtime_config)
    cfg_mod._RUNTIME_CONFIG_PATH = rt_path
    cfg_mod._runtime_mtime = 0.0
    cfg_mod._runtime_config = {}
    try:
        yield cfg_mod, rt_path
    finally:
        (cfg_mod._config, cfg_mod._RUNTIME_CONFIG_PATH,
         cfg_mod._runtime_mtime, cfg_mod._runtime_config) = saved


class TestLoadConfig:
    def test_env_vars_resolved(self, tmp_path, monkeypatch):
        from answerbox import config as cfg_mod

        cfg_path = tmp_path / "config.yaml"
        cfg_path.write_text(
            "backends:\n"
            "  - name: cloud\n"
            "    api_key: ${TEST_ANSWERBOX_KEY}\n"
            "    url: ${TEST_ANSWERBOX_MISSING}\n"
        )
        monkeypatch.setenv("TEST_ANSWERBOX_KEY", "sk-123")
        monkeypatch.delenv("TEST_ANSWERBOX_MISSING", raising=False)

        orig = cfg_mod._config
        cfg_mod._config = None
        try:
            cfg = cfg_mod.load_config(cfg_path)
            assert cfg["backends"][0]["api_key"] == "sk-123"
            assert cfg["backends"][0]["url"] == ""
            assert cfg_mod.get_config() is cfg
        finally:
            cfg_mod._config = orig

    def test_missing_file_raises(self, tmp_path):
        from answerbox import config as cfg_mod

        orig = cfg_mod._config
        cfg_mod._config = None
        try:
            with pytest.raises(FileNotFoundError):
                cfg_mod.load_config(tmp_path / "nope.yaml")
        finally:
            cfg_mod._config = orig


class TestGetSetting:
    def test_runtime_override_wins(self, runtime):
        cfg_mod, rt_path = runtime
        cfg_mod._config = {"chat": {"default_model": "from-config", "temperature": 0.3}}
        rt_path.write_text("runtime:\n  default_model: from-runtime\n")

        assert cfg_mod.get_setting("chat", "default_model") == "from-runtime"
        assert cfg_mod.get_setting("chat", "temperature") == 0.3
        assert cfg_mod.get_setting("chat", "missing", "fallback") == "fallback"

    def test_null_runtime_value_falls_through(self, runtime):
        cfg_mod, rt_path = runtime
        cfg_mod._config = {"chat": {"rollback_policy": "turn"}}
        rt_path.write_text("runtime:\n  rollback_policy: null\n")
        assert cfg_mod.get_setting("chat", "rollback_policy") == "turn"

    def test_no_runtime_file(self, runtime):
        cfg_mod, _ = runtime
        cfg_mod._config = {"chat": {"history_enabled": False}}
        assert cfg_mod.get_runtime_config() == {}
        assert cfg_mod.get_setting("chat", "history_enabled", True) is False

    def test_broken_runtime_file_keeps_last_good(self, runtime):
        cfg_mod, rt_path = runtime
        rt_path.write_text("runtime:\n  default_model: good\n")
        assert cfg_mod.get_runtime_config() == {"default_model": "good"}

        rt_path.write_text("runtime: [unclosed\n")
        cfg_mod._runtime_mtime = 0.0
        assert cfg_mod.get_runtime_config() == {"default_model": "good"}


class TestUpdateRuntimeConfig:
    def test_creates_runtime_key_if_missing(self, runtime):
        cfg_mod, rt_path = runtime
        rt_path.write_text("# empty\n")

        assert cfg_mod.update_runtime_config("default_model", "llama3.2") is True
        data = yaml.safe_load(rt_path.read_text())
        assert data["runtime"]["default_model"] == "llama3.2"

    def test_preserves_other_keys(self, runtime):
        cfg_mod, rt_path = runtime
        rt_path.write_text("runtime:\n  default_model: llama3.2\n  log_level: INFO\n")

        cfg_mod.update_runtime_config("rollback_policy", "turn")
        data = yaml.safe_load(rt_path.read_text())
        assert data["runtime"]["default_model"] == "llama3.2"
        assert data["runtime"]["rollback_policy"] == "turn"

    def test_busts_mtime_cache(self, runtime):
        cfg_mod, rt_path = runtime
        rt_path.write_text("runtime:\n  history_enabled: true\n")
        cfg_mod._runtime_mtime = 999999.0  # fake stale mtime

        cfg_mod.update_runtime_config("history_enabled", False)
        assert cfg_mod._runtime_mtime == 0.0
        assert cfg_mod.get_runtime_config()["history_enabled"] is False

    def test_returns_false_on_unwritable_path(self, runtime):
        cfg_mod, _ = runtime
        cfg_mod._RUNTIME_CONFIG_PATH = Path("/nonexistent/path/runtime_config.yaml")
        assert cfg_mod.update_runtime_config("default_model", "x") is False
