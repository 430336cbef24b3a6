"""
Wiring of the storage, encryption and registry objects used per request.
"""

from dataclasses import dataclass
from typing import Any, Optional

import httpx
from fastapi import Request

from credproxy.api_configs import ApiConfigRegistry
from credproxy.config import load_config
from credproxy.encryption import SecretCipher
from credproxy.logging import log_config_loaded
from credproxy.projects import ProjectManager
from credproxy.store import JsonFileStore, KeyValueStore, create_store


@dataclass
class Services:
    store: KeyValueStore
    cipher: SecretCipher
    projects: ProjectManager
    api_configs: ApiConfigRegistry
    # Outbound transport override; None means real network access.
    transport: Optional[httpx.AsyncBaseTransport] = None


def build_services(
    config: dict[str, Any],
    store: Optional[KeyValueStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    """
    Build the service container from a loaded config.

    Raises ValueError if no encryption key is configured.
    """
    if not config.get("encryption_key"):
        raise ValueError(
            "encryption_key is not configured. Run 'credproxy init' or set "
            "CREDPROXY_ENCRYPTION_KEY."
        )

    if store is None:
        store = create_store(config["store"])
        log_config_loaded(
            config["store"].get("backend", "file"),
            str(store.path) if isinstance(store, JsonFileStore) else None,
        )

    cipher = SecretCipher(config["encryption_key"])

    return Services(
        store=store,
        cipher=cipher,
        projects=ProjectManager(store, cipher),
        api_configs=ApiConfigRegistry(store),
        transport=transport,
    )


def get_services(request: Request) -> Services:
    """
    FastAPI dependency returning the app's services, built on first use.
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services(load_config())
        request.app.state.services = services
    return services
