"""
OAuth2 access-token refresh for projects using the oauth auth type.

The freshly issued access token is written back as an ordinary project
secret, so the next injection picks it up like any other credential.
Refresh is reactive: the proxy calls it only after an upstream 401.
"""

import json
import time
from dataclasses import dataclass
from typing import Mapping, Optional

import httpx

from credproxy.api_configs import OAuthAuth
from credproxy.logging import (
    log_oauth_meta_write_failed,
    log_oauth_refresh_failed,
    log_oauth_refresh_success,
)
from credproxy.projects import ProjectManager
from credproxy.store import KeyValueStore


DEFAULT_EXPIRES_IN = 3600

# Metadata outlives the token by this many seconds.
META_TTL_GRACE = 300


@dataclass(frozen=True)
class TokenRefreshResult:
    success: bool
    access_token: Optional[str] = None
    expires_in: Optional[int] = None
    error: Optional[str] = None


def _failure(project_id: str, config: OAuthAuth, error: str):
    log_oauth_refresh_failed(project_id, config.token_url, error)
    return TokenRefreshResult(success=False, error=error)


async def refresh_oauth_token(
    config: OAuthAuth,
    secrets: Mapping[str, dict],
    project_id: str,
    projects: ProjectManager,
    store: KeyValueStore,
    client: httpx.AsyncClient,
) -> TokenRefreshResult:
    """
    Exchange the project's client credentials for a new access token.

    On success the token is stored under config.secret_key and advisory
    expiry metadata is recorded. Every failure to obtain a token comes
    back as an unsuccessful result rather than an exception.
    """
    client_id = secrets.get(config.client_id_secret)
    client_secret = secrets.get(config.client_secret_secret)
    if client_id is None or client_secret is None:
        return _failure(
            project_id, config, "OAuth credentials not found in secrets"
        )

    form = {
        "grant_type": config.grant_type.value,
        "client_id": client_id["value"],
        "client_secret": client_secret["value"],
    }
    if config.scope:
        form["scope"] = config.scope

    try:
        response = await client.post(
            config.token_url,
            data=form,
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as e:
        return _failure(project_id, config, f"Token request failed: {e}")

    if not response.is_success:
        return _failure(
            project_id,
            config,
            f"Token endpoint returned {response.status_code}: {response.text}",
        )

    try:
        payload = response.json()
    except ValueError:
        return _failure(project_id, config, "Token response is not JSON")

    access_token = payload.get("access_token") if isinstance(payload, dict) else None
    if not access_token:
        return _failure(project_id, config, "No access_token in response")

    try:
        expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN)
    except (TypeError, ValueError):
        expires_in = DEFAULT_EXPIRES_IN

    await projects.set_secret(project_id, config.secret_key, access_token)
    log_oauth_refresh_success(project_id, config.secret_key, expires_in)

    now_ms = int(time.time() * 1000)
    try:
        await store.put(
            f"oauth_token_meta:{project_id}:{config.secret_key}",
            json.dumps(
                {
                    "expiresAt": now_ms + expires_in * 1000,
                    "refreshedAt": now_ms,
                }
            ),
            expiration_ttl=expires_in + META_TTL_GRACE,
        )
    except Exception as e:
        log_oauth_meta_write_failed(project_id, e)

    return TokenRefreshResult(
        success=True, access_token=access_token, expires_in=expires_in
    )
