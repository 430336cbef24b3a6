"""
Shared fixtures for credproxy tests.
"""

import json

import pytest

from credproxy.encryption import generate_key
from credproxy.services import build_services
from credproxy.store import MemoryStore


ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def encryption_key():
    return generate_key()


@pytest.fixture
def app_config(tmp_path, monkeypatch, encryption_key):
    """
    Write a config.json into a temporary working directory.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CREDPROXY_ENCRYPTION_KEY", raising=False)
    monkeypatch.delenv("CREDPROXY_ADMIN_TOKEN", raising=False)

    config = {
        "encryption_key": encryption_key,
        "admin_token": ADMIN_TOKEN,
        "jwt": {"secret": "test_secret", "expiry_hours": 24},
        "store": {"backend": "memory", "path": None},
    }

    with open(tmp_path / "config.json", "w", encoding="utf-8") as f:
        json.dump(config, f)

    return config


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def services(app_config, store):
    """
    Services backed by an in-memory store and the real network.

    Tests that make upstream calls replace services.transport with an
    httpx.MockTransport.
    """
    return build_services(app_config, store=store)
