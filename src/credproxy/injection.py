"""
Attach project credentials to an outbound request.
"""

from typing import Mapping, Optional

import httpx

from credproxy.api_configs import (
    AuthConfig,
    HeaderAuth,
    OAuthAuth,
    QueryParamAuth,
)


# Secrets named header_<name> become headers when no config applies.
LEGACY_HEADER_PREFIX = "header_"


def _secret_value(secrets: Mapping[str, dict], name: str) -> Optional[str]:
    record = secrets.get(name)
    if record is None:
        return None
    return record.get("value")


def inject_auth(
    headers: Mapping[str, str],
    url: str,
    secrets: Mapping[str, dict],
    config: Optional[AuthConfig],
) -> tuple[httpx.Headers, str]:
    """
    Apply a resolved auth config to outbound headers and URL.

    secrets maps name -> {"value": plaintext, "updatedAt": ...}. Returns a
    new (headers, url) pair; the arguments are left untouched. A config
    whose secret is missing injects nothing.
    """
    headers = httpx.Headers(headers)

    if config is None:
        for name, record in secrets.items():
            if name.startswith(LEGACY_HEADER_PREFIX):
                header_name = name[len(LEGACY_HEADER_PREFIX):].replace("_", "-")
                headers[header_name] = record["value"]
        return headers, url

    value = _secret_value(secrets, config.secret_key)
    if value is None:
        return headers, url

    if isinstance(config, QueryParamAuth):
        url = str(httpx.URL(url).copy_set_param(config.param, value))
    elif isinstance(config, (HeaderAuth, OAuthAuth)):
        if config.format:
            value = config.format.replace("{key}", value, 1)
        headers[config.header] = value
    else:
        raise TypeError(f"Unsupported auth config: {config!r}")

    return headers, url
