"""
Unit tests for configuration loading.
"""

import pytest
from pathlib import Path

from teamctl.core.config import DEFAULT_ALLOWED_ORIGINS, DEFAULT_PORT, ControllerConfig, load_config


@pytest.mark.unit
class TestLoadConfig:
    """Tests for load_config()."""

    def test_defaults(self):
        config = load_config()
        assert config.base_dir == Path.home() / ".claude"
        assert config.port == DEFAULT_PORT == 43779
        assert config.allow_query_token is False
        assert config.default_team == "teamctl"
        assert config.claude_binary == "claude"
        assert config.poll_interval == 0.5
        assert config.allowed_origins == DEFAULT_ALLOWED_ORIGINS
        assert "tauri://localhost" in config.allowed_origins

    def test_token_is_generated_per_config(self):
        first, second = ControllerConfig(), ControllerConfig()
        assert first.token
        assert first.token != second.token

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TEAMCTL_HOME", str(tmp_path))
        monkeypatch.setenv("TEAMCTL_PORT", "5000")
        monkeypatch.setenv("TEAMCTL_TOKEN", "secret")
        monkeypatch.setenv("TEAMCTL_ALLOW_QUERY_TOKEN", "1")
        monkeypatch.setenv("TEAMCTL_DEFAULT_TEAM", "night-shift")
        monkeypatch.setenv("TEAMCTL_CLAUDE_BINARY", "/opt/claude")
        monkeypatch.setenv("TEAMCTL_POLL_INTERVAL", "0.1")
        monkeypatch.setenv("TEAMCTL_LOG_LEVEL", "debug")

        config = load_config()
        assert config.base_dir == tmp_path
        assert config.port == 5000
        assert config.token == "secret"
        assert config.allow_query_token is True
        assert config.default_team == "night-shift"
        assert config.claude_binary == "/opt/claude"
        assert config.poll_interval == 0.1
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize("value", ["0", "false", "no", ""])
    def test_query_token_stays_off(self, monkeypatch, value):
        monkeypatch.setenv("TEAMCTL_ALLOW_QUERY_TOKEN", value)
        assert load_config().allow_query_token is False

    def test_yaml_file(self, monkeypatch, tmp_path):
        config_file = tmp_path / "teamctl.yaml"
        config_file.write_text(
            "port: 6000\n"
            "default_team: from-yaml\n"
            "allowed_origins:\n"
            "  - http://localhost\n"
            "unknown_key: 1\n"
        )
        monkeypatch.setenv("TEAMCTL_CONFIG", str(config_file))
        monkeypatch.setenv("TEAMCTL_PORT", "7000")

        config = load_config()
        assert config.port == 7000
        assert config.default_team == "from-yaml"
        assert config.allowed_origins == ("http://localhost",)

    def test_missing_yaml_file_uses_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "nope.yaml"))
        assert config.port == DEFAULT_PORT


@pytest.mark.unit
class TestApprovalSettings:
    """Approval policy selection through configuration."""

    def test_defaults(self):
        config = ControllerConfig()
        assert config.approval_policy == "auto"
        assert config.allowed_tools == ()
        assert config.approval_fallback == "deny"

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("TEAMCTL_APPROVAL_POLICY", "AllowList")
        monkeypatch.setenv("TEAMCTL_ALLOWED_TOOLS", "Read, Grep,,Glob")
        monkeypatch.setenv("TEAMCTL_APPROVAL_FALLBACK", "defer")

        config = load_config()
        assert config.approval_policy == "allowlist"
        assert config.allowed_tools == ("Read", "Grep", "Glob")
        assert config.approval_fallback == "defer"

    def test_yaml_list(self, tmp_path):
        config_file = tmp_path / "teamctl.yaml"
        config_file.write_text(
            "approval_policy: allowlist\n"
            "allowed_tools:\n"
            "  - Read\n"
            "  - Edit\n"
        )
        config = load_config(str(config_file))
        assert config.approval_policy == "allowlist"
        assert config.allowed_tools == ("Read", "Edit")

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match="approval_policy"):
            ControllerConfig(approval_policy="sometimes")

    def test_unknown_fallback(self):
        with pytest.raises(ValueError, match="approval_fallback"):
            ControllerConfig(approval_fallback="approve")
