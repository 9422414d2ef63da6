"""Tests for core/config.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from fwaudit.core.config import (
    DEFAULT_CONFIG,
    ConfigError,
    deep_merge,
    find_project_config,
    get_effective_config,
    load_project_config,
)


@pytest.fixture
def project_config(tmp_path: Path) -> Path:
    path = tmp_path / ".fwaudit.yaml"
    path.write_text(
        "audit:\n"
        "  plugins: [stig]\n"
        "  plugin_timeout_seconds: 5\n"
        "scoring:\n"
        "  weights:\n"
        "    critical: 40\n",
        encoding="utf-8",
    )
    return path


class TestDeepMerge:
    def test_simple_merge(self):
        assert deep_merge({"a": 1, "b": 2}, {"b": 3, "c": 4}) == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self):
        result = deep_merge({"audit": {"parallelism": 0, "entry_points": True}}, {"audit": {"parallelism": 4}})
        assert result["audit"] == {"parallelism": 4, "entry_points": True}

    def test_arrays_replaced(self):
        result = deep_merge({"plugins": ["stig", "sans"]}, {"plugins": ["firewall"]})
        assert result["plugins"] == ["firewall"]

    def test_base_not_mutated(self):
        base = {"a": {"b": 1}}
        deep_merge(base, {"a": {"b": 2}})
        assert base["a"]["b"] == 1


class TestLoadProjectConfig:
    def test_loads_yaml(self, project_config: Path):
        config = load_project_config(project_config)
        assert config["audit"]["plugins"] == ["stig"]

    def test_missing_config_returns_empty(self, tmp_path: Path):
        assert load_project_config(tmp_path / "nope.yaml") == {}
        assert load_project_config(None) == {}

    def test_empty_config_returns_empty(self, tmp_path: Path):
        path = tmp_path / ".fwaudit.yaml"
        path.write_text("", encoding="utf-8")
        assert load_project_config(path) == {}

    def test_bom_is_stripped(self, tmp_path: Path):
        path = tmp_path / ".fwaudit.yaml"
        path.write_bytes("\ufeffoutput:\n  format: yaml\n".encode("utf-8"))
        assert load_project_config(path)["output"]["format"] == "yaml"

    def test_malformed_yaml_raises(self, tmp_path: Path):
        path = tmp_path / ".fwaudit.yaml"
        path.write_text("audit: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_project_config(path)

    def test_non_mapping_raises(self, tmp_path: Path):
        path = tmp_path / ".fwaudit.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_project_config(path)


class TestFindProjectConfig:
    def test_found_in_parent(self, project_config: Path):
        nested = project_config.parent / "devices" / "site-a"
        nested.mkdir(parents=True)
        assert find_project_config(nested) == project_config

    def test_found_from_file(self, project_config: Path):
        device = project_config.parent / "fw01.yaml"
        device.write_text("{}", encoding="utf-8")
        assert find_project_config(device) == project_config


class TestGetEffectiveConfig:
    def test_defaults_applied(self):
        config = get_effective_config()
        assert config["audit"]["plugin_timeout_seconds"] == 30
        assert config["scoring"]["weights"]["low"] == 1
        assert config["_config_path"] is None

    def test_project_overrides_defaults(self, project_config: Path):
        config = get_effective_config(project_config)
        assert config["audit"]["plugins"] == ["stig"]
        assert config["audit"]["plugin_timeout_seconds"] == 5
        assert config["audit"]["cancel_grace_seconds"] == 2
        assert config["scoring"]["weights"] == {"critical": 40, "high": 15, "medium": 5, "low": 1}

    def test_cli_overrides_project(self, project_config: Path):
        config = get_effective_config(project_config, cli_overrides={"audit": {"plugins": ["sans"]}})
        assert config["audit"]["plugins"] == ["sans"]
        assert config["audit"]["plugin_timeout_seconds"] == 5

    def test_defaults_not_mutated(self, project_config: Path):
        get_effective_config(project_config)
        assert DEFAULT_CONFIG["audit"]["plugins"] == []
        assert DEFAULT_CONFIG["scoring"]["weights"]["critical"] == 25
