"""
Credential-injecting proxy for credproxy.
"""

import json
import time
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import httpx
from fastapi import Request, Response

from credproxy.api_configs import AuthConfig, OAuthAuth, resolve_auth
from credproxy.injection import inject_auth
from credproxy.logging import (
    log_proxy_failed,
    log_proxy_request,
    log_proxy_response,
    log_proxy_retry,
    log_request_log_write_failed,
)
from credproxy.oauth import refresh_oauth_token
from credproxy.services import Services
from credproxy.store import KeyValueStore


# Inbound headers that must not reach the upstream API.
STRIPPED_REQUEST_HEADERS = {
    "host",
    "cf-connecting-ip",
    "cf-ray",
    "x-forwarded-for",
    "x-real-ip",
    "forwarded",
    "connection",
    "content-length",  # Recomputed by httpx.
    "transfer-encoding",
    "accept-encoding",  # Let httpx negotiate what it can decode.
}

# Headers to strip from proxied responses.
STRIPPED_RESPONSE_HEADERS = {
    "set-cookie",
    "connection",
    "keep-alive",
    "content-length",  # Let FastAPI recalculate this.
    "transfer-encoding",  # Let FastAPI handle encoding.
    "content-encoding",  # httpx has already decoded the body.
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With",
    "Access-Control-Max-Age": "86400",
}

BODYLESS_METHODS = {"GET", "HEAD"}

# 30 days.
REQUEST_LOG_TTL = 2592000


def add_cors_headers(response: Response) -> Response:
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


def cors_preflight() -> Response:
    """
    Answer an OPTIONS preflight for the proxy endpoint.
    """
    return add_cors_headers(Response(status_code=204))


def forwardable_headers(request: Request) -> httpx.Headers:
    return httpx.Headers(
        [
            (name, value)
            for name, value in request.headers.items()
            if name.lower() not in STRIPPED_REQUEST_HEADERS
        ]
    )


async def send_upstream(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    inbound_headers: httpx.Headers,
    body: Optional[bytes],
    secrets: Mapping[str, dict],
    config: Optional[AuthConfig],
) -> httpx.Response:
    """
    Inject credentials into a copy of the inbound headers and send.
    """
    headers, url = inject_auth(inbound_headers, url, secrets, config)
    return await client.request(
        method=method,
        url=url,
        headers=headers,
        content=body if body else None,
        follow_redirects=False,
    )


def relay_response(upstream: httpx.Response) -> Response:
    headers = {
        key: value
        for key, value in upstream.headers.items()
        if key.lower() not in STRIPPED_RESPONSE_HEADERS
    }
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=headers,
    )


async def forward(
    project_id: str,
    request: Request,
    target_url: str,
    target_host: str,
    services: Services,
) -> Response:
    """
    Send the request upstream with credentials attached.

    A 401 for an OAuth-configured domain triggers one token refresh and,
    if that succeeds, exactly one retry. Any other outcome is relayed as-is.
    """
    secrets = await services.projects.get_all_secrets(project_id)
    config = await resolve_auth(services.api_configs, project_id, target_host)

    method = request.method
    body = None if method in BODYLESS_METHODS else await request.body()
    inbound = forwardable_headers(request)

    log_proxy_request(project_id, method, target_host)

    retried = False
    async with httpx.AsyncClient(transport=services.transport) as client:
        upstream = await send_upstream(
            client, method, target_url, inbound, body, secrets, config
        )

        if upstream.status_code == 401 and isinstance(config, OAuthAuth):
            result = await refresh_oauth_token(
                config,
                secrets,
                project_id,
                services.projects,
                services.store,
                client,
            )
            if result.success:
                secrets = await services.projects.get_all_secrets(project_id)
                log_proxy_retry(project_id, target_host)
                upstream = await send_upstream(
                    client, method, target_url, inbound, body, secrets, config
                )
                retried = True

    log_proxy_response(project_id, upstream.status_code, retried)
    return relay_response(upstream)


async def dispatch(
    project_id: str, request: Request, services: Services
) -> Response:
    project = await services.projects.get_project(project_id)
    if not project or not project.get("active"):
        return Response("Project not found or inactive", status_code=404)

    target_url = request.query_params.get("target_url")
    if not target_url:
        return Response("Missing target_url parameter", status_code=400)

    try:
        target = httpx.URL(target_url)
    except httpx.InvalidURL:
        target = None
    if target is None or target.scheme not in ("http", "https") or not target.host:
        return Response("Invalid target_url parameter", status_code=400)

    return await forward(project_id, request, target_url, target.host, services)


async def proxy_request(
    project_id: str, request: Request, services: Services
) -> Response:
    """
    Proxy a request to its target_url with the project's credentials.

    Every call is logged to the project's request log, whatever the
    outcome. Unexpected errors become a bare 500 with no detail.
    """
    try:
        response = await dispatch(project_id, request, services)
    except Exception as e:
        log_proxy_failed(project_id, e)
        response = Response("Proxy request failed", status_code=500)

    await log_request(services.store, project_id, request, response.status_code)

    return add_cors_headers(response)


async def log_request(
    store: KeyValueStore, project_id: str, request: Request, status_code: int
):
    """
    Append a request log entry. Failures are logged and swallowed.
    """
    entry = {
        "projectId": project_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "path": request.url.path,
        "status": status_code,
        "userAgent": request.headers.get("user-agent", "unknown"),
    }

    try:
        await store.put(
            f"log:{project_id}:{int(time.time() * 1000)}",
            json.dumps(entry),
            expiration_ttl=REQUEST_LOG_TTL,
        )
    except Exception as e:
        log_request_log_write_failed(project_id, e)


async def get_project_logs(
    store: KeyValueStore, project_id: str, limit: int = 100
) -> list[dict[str, Any]]:
    """
    Return the newest request log entries for a project.
    """
    keys = await store.list(prefix=f"log:{project_id}:")
    # Millisecond timestamps sort lexically until the year 2286.
    keys = sorted(keys, reverse=True)[:limit]

    logs = []
    for key in keys:
        data = await store.get(key)
        if data:
            logs.append(json.loads(data))

    return logs
