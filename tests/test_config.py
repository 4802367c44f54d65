"""Tests for ToolkitConfig."""

from pathlib import Path

import pytest

from injection_defense.config import ToolkitConfig


class TestToolkitConfig:
    def test_defaults(self):
        config = ToolkitConfig()
        assert config.sql_paramstyle == "named"
        assert config.html_policy == "basic"
        assert config.policy_file is None
        assert config.max_message_echo == 80

    def test_collects_all_errors(self):
        with pytest.raises(ValueError) as exc_info:
            ToolkitConfig(sql_paramstyle="dollar", html_policy="", max_message_echo=-1)
        message = str(exc_info.value)
        assert "sql_paramstyle" in message
        assert "html_policy" in message
        assert "max_message_echo" in message

    def test_frozen(self):
        import dataclasses

        with pytest.raises(dataclasses.FrozenInstanceError):
            ToolkitConfig().html_policy = "links"  # type: ignore[misc]


class TestFromEnv:
    def test_empty_environment_gives_defaults(self):
        assert ToolkitConfig.from_env({}) == ToolkitConfig()

    def test_reads_prefixed_variables(self):
        config = ToolkitConfig.from_env({
            "INJECTION_DEFENSE_PARAMSTYLE": " QMARK ",
            "INJECTION_DEFENSE_HTML_POLICY": "links",
            "INJECTION_DEFENSE_POLICY_FILE": "/etc/policies.yaml",
            "INJECTION_DEFENSE_MAX_MESSAGE_ECHO": "20",
        })
        assert config == ToolkitConfig(
            sql_paramstyle="qmark",
            html_policy="links",
            policy_file=Path("/etc/policies.yaml"),
            max_message_echo=20,
        )

    def test_non_integer_echo(self):
        with pytest.raises(ValueError, match="must be an integer"):
            ToolkitConfig.from_env({"INJECTION_DEFENSE_MAX_MESSAGE_ECHO": "lots"})

    def test_invalid_paramstyle(self):
        with pytest.raises(ValueError, match="sql_paramstyle"):
            ToolkitConfig.from_env({"INJECTION_DEFENSE_PARAMSTYLE": "dollar"})

    def test_defaults_to_process_environment(self, monkeypatch):
        monkeypatch.setenv("INJECTION_DEFENSE_HTML_POLICY", "text-only")
        assert ToolkitConfig.from_env().html_policy == "text-only"
