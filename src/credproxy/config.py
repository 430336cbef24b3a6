"""
Configuration management for credproxy.
"""

import json
import os
from pathlib import Path
from typing import Any


# Environment variables that take precedence over config.json.
ENV_OVERRIDES = {
    "CREDPROXY_ENCRYPTION_KEY": "encryption_key",
    "CREDPROXY_ADMIN_TOKEN": "admin_token",
}


def default_config() -> dict[str, Any]:
    """
    Return the configuration structure used when keys are missing.
    """
    return {
        "encryption_key": None,
        "admin_token": None,
        "jwt": {
            "secret": None,
            "expiry_hours": 24,
        },
        "store": {
            "backend": "file",
            "path": None,
        },
    }


def load_config(
    path: Path = Path("config.json"), apply_env: bool = True
) -> dict[str, Any]:
    """
    Load configuration from JSON file.

    Missing keys are filled from the defaults, and environment overrides
    are applied last unless apply_env is False. Returns the default
    structure if the file doesn't exist.
    """
    config = default_config()

    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            stored = json.load(f)
        for key, value in stored.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key].update(value)
            else:
                config[key] = value

    if not apply_env:
        return config

    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            config[key] = value

    return config


def save_config(config: dict[str, Any], path: Path = Path("config.json")):
    """
    Save configuration to JSON file with pretty formatting.
    """
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2, ensure_ascii=False)
