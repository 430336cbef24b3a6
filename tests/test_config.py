"""
Tests for configuration management.
"""

import json

import pytest

from credproxy.config import default_config, load_config, save_config


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    monkeypatch.delenv("CREDPROXY_ENCRYPTION_KEY", raising=False)
    monkeypatch.delenv("CREDPROXY_ADMIN_TOKEN", raising=False)


def test_load_config_creates_default_structure_when_missing(tmp_path):
    """
    Loading config from non-existent file returns default structure.
    """
    config_path = tmp_path / "config.json"
    config = load_config(config_path)

    assert config == default_config()
    assert config["encryption_key"] is None
    assert config["store"]["backend"] == "file"


def test_load_config_reads_existing_file(tmp_path):
    """
    Loading config from existing file returns its contents.
    """
    config_path = tmp_path / "config.json"
    expected = {
        "encryption_key": "abc",
        "admin_token": "admin",
        "jwt": {"secret": "s", "expiry_hours": 1},
        "store": {"backend": "memory", "path": None},
    }

    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(expected, f)

    config = load_config(config_path)
    assert config == expected


def test_load_config_adds_missing_keys(tmp_path):
    """
    Loading config fills in missing sections and nested keys.
    """
    config_path = tmp_path / "config.json"

    with open(config_path, "w", encoding="utf-8") as f:
        json.dump({"other": "data", "jwt": {"secret": "s"}}, f)

    config = load_config(config_path)

    assert config["other"] == "data"
    assert config["jwt"] == {"secret": "s", "expiry_hours": 24}
    assert config["store"] == {"backend": "file", "path": None}
    assert config["admin_token"] is None


def test_load_config_applies_environment_overrides(tmp_path, monkeypatch):
    """
    Environment variables take precedence over the file.
    """
    config_path = tmp_path / "config.json"
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump({"encryption_key": "from-file", "admin_token": "file"}, f)

    monkeypatch.setenv("CREDPROXY_ENCRYPTION_KEY", "from-env")
    monkeypatch.setenv("CREDPROXY_ADMIN_TOKEN", "env-admin")

    config = load_config(config_path)
    assert config["encryption_key"] == "from-env"
    assert config["admin_token"] == "env-admin"

    raw = load_config(config_path, apply_env=False)
    assert raw["encryption_key"] == "from-file"


def test_save_config_writes_json_file(tmp_path):
    """
    Saving config writes properly formatted JSON to file.
    """
    config_path = tmp_path / "config.json"
    config = default_config()
    config["admin_token"] = "admin"

    save_config(config, config_path)

    with open(config_path, "r", encoding="utf-8") as f:
        saved = json.load(f)

    assert saved == config


def test_save_config_creates_pretty_formatted_json(tmp_path):
    """
    Saved config is indented for readability.
    """
    config_path = tmp_path / "config.json"

    save_config(default_config(), config_path)

    content = config_path.read_text(encoding="utf-8")
    assert "\n" in content
    assert "  " in content
