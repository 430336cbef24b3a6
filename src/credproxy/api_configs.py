"""
API authentication configs: how credentials are attached for a domain.

A config is one of three variants, selected by its authType:

    header       -> HeaderAuth(header, secret_key, format)
    query_param  -> QueryParamAuth(param, secret_key)
    oauth        -> OAuthAuth(token_url, client_id_secret, ...)

Configs arrive and are stored as camelCase JSON (the shape the HTTP API
accepts) and are validated once, by parse_auth_config, at the point they
are written. Well-known domains have a built-in config; a project can
override any domain with its own.
"""

import json
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from credproxy.logging import log_auth_config_invalid
from credproxy.store import KeyValueStore


class AuthType(str, Enum):
    HEADER = "header"
    QUERY_PARAM = "query_param"
    OAUTH = "oauth"


class GrantType(str, Enum):
    CLIENT_CREDENTIALS = "client_credentials"
    AUTHORIZATION_CODE = "authorization_code"


class InvalidAuthConfig(ValueError):
    """
    Raised when a config is missing required fields or has an unknown
    authType.
    """


@dataclass(frozen=True)
class HeaderAuth:
    header: str
    secret_key: str
    format: Optional[str] = None

    auth_type = AuthType.HEADER


@dataclass(frozen=True)
class QueryParamAuth:
    param: str
    secret_key: str

    auth_type = AuthType.QUERY_PARAM


@dataclass(frozen=True)
class OAuthAuth:
    token_url: str
    client_id_secret: str
    client_secret_secret: str
    secret_key: str
    grant_type: GrantType = GrantType.CLIENT_CREDENTIALS
    scope: Optional[str] = None
    header: str = "Authorization"
    format: str = "Bearer {key}"

    auth_type = AuthType.OAUTH


AuthConfig = Union[HeaderAuth, QueryParamAuth, OAuthAuth]


def _require(data: Mapping[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise InvalidAuthConfig(f"'{field}' is required")
    return value


def _optional(data: Mapping[str, Any], field: str) -> Optional[str]:
    value = data.get(field)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidAuthConfig(f"'{field}' must be a string")
    return value


def parse_auth_config(data: Any) -> AuthConfig:
    """
    Validate a camelCase config mapping and build the matching variant.

    Raises InvalidAuthConfig with a short reason on any problem.
    """
    if not isinstance(data, Mapping):
        raise InvalidAuthConfig("Config must be a JSON object")

    try:
        auth_type = AuthType(data.get("authType"))
    except ValueError:
        valid = ", ".join(t.value for t in AuthType)
        raise InvalidAuthConfig(f"'authType' must be one of: {valid}")

    secret_key = _require(data, "secretKey")

    if auth_type is AuthType.HEADER:
        return HeaderAuth(
            header=_require(data, "header"),
            secret_key=secret_key,
            format=_optional(data, "format"),
        )

    if auth_type is AuthType.QUERY_PARAM:
        return QueryParamAuth(param=_require(data, "param"), secret_key=secret_key)

    grant = data.get("oauthGrantType") or GrantType.CLIENT_CREDENTIALS.value
    try:
        grant_type = GrantType(grant)
    except ValueError:
        raise InvalidAuthConfig(f"Unsupported 'oauthGrantType': {grant}")

    return OAuthAuth(
        token_url=_require(data, "oauthTokenUrl"),
        client_id_secret=_require(data, "oauthClientIdSecret"),
        client_secret_secret=_require(data, "oauthClientSecretSecret"),
        secret_key=secret_key,
        grant_type=grant_type,
        scope=_optional(data, "oauthScope"),
        header=_optional(data, "header") or "Authorization",
        format=_optional(data, "format") or "Bearer {key}",
    )


def auth_config_to_dict(config: AuthConfig) -> dict[str, Any]:
    """
    Convert a config back to the camelCase JSON shape.
    """
    if isinstance(config, HeaderAuth):
        data = {
            "authType": config.auth_type.value,
            "header": config.header,
            "secretKey": config.secret_key,
        }
        if config.format is not None:
            data["format"] = config.format
        return data

    if isinstance(config, QueryParamAuth):
        return {
            "authType": config.auth_type.value,
            "param": config.param,
            "secretKey": config.secret_key,
        }

    data = {
        "authType": config.auth_type.value,
        "oauthTokenUrl": config.token_url,
        "oauthClientIdSecret": config.client_id_secret,
        "oauthClientSecretSecret": config.client_secret_secret,
        "oauthGrantType": config.grant_type.value,
        "secretKey": config.secret_key,
        "header": config.header,
        "format": config.format,
    }
    if config.scope is not None:
        data["oauthScope"] = config.scope
    return data


# Compiled-in recipes for well-known APIs, keyed by exact hostname.
BUILTIN_AUTH_CONFIGS: Mapping[str, AuthConfig] = MappingProxyType(
    {
        "api.nal.usda.gov": QueryParamAuth(
            param="api_key", secret_key="usda_api_key"
        ),
        "api.openweathermap.org": QueryParamAuth(
            param="appid", secret_key="openweather_api_key"
        ),
        "api.stripe.com": HeaderAuth(
            header="Authorization",
            secret_key="stripe_api_key",
            format="Bearer {key}",
        ),
        "api.github.com": HeaderAuth(
            header="Authorization",
            secret_key="github_api_key",
            format="token {key}",
        ),
        "maps.googleapis.com": QueryParamAuth(
            param="key", secret_key="google_maps_api_key"
        ),
        "generativelanguage.googleapis.com": QueryParamAuth(
            param="key", secret_key="gemini_api_key"
        ),
    }
)


class ApiConfigRegistry:
    """
    Per-project custom configs stored under api_config:{projectId}:{domain}.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def _key(project_id: str, domain: str) -> str:
        return f"api_config:{project_id}:{domain}"

    async def get(self, project_id: str, domain: str) -> Optional[AuthConfig]:
        """
        Load and parse the custom config for a domain.

        Raises InvalidAuthConfig if the stored record is malformed.
        """
        data = await self.store.get(self._key(project_id, domain))
        if data is None:
            return None

        try:
            raw = json.loads(data)
        except json.JSONDecodeError as e:
            raise InvalidAuthConfig(f"Stored config is not JSON: {e}")

        return parse_auth_config(raw)

    async def save(
        self, project_id: str, domain: str, config: AuthConfig
    ) -> None:
        await self.store.put(
            self._key(project_id, domain),
            json.dumps(auth_config_to_dict(config)),
        )

    async def delete(self, project_id: str, domain: str) -> None:
        await self.store.delete(self._key(project_id, domain))

    async def list(self, project_id: str) -> dict[str, dict[str, Any]]:
        """
        Return domain -> stored config JSON for a project.

        Records that no longer parse are skipped.
        """
        prefix = f"api_config:{project_id}:"
        configs = {}

        for key in await self.store.list(prefix=prefix):
            domain = key[len(prefix):]
            try:
                config = await self.get(project_id, domain)
            except InvalidAuthConfig as e:
                log_auth_config_invalid(project_id, domain, str(e))
                continue
            if config is not None:
                configs[domain] = auth_config_to_dict(config)

        return configs


async def resolve_auth(
    registry: ApiConfigRegistry,
    project_id: str,
    domain: str,
    builtins: Mapping[str, AuthConfig] = BUILTIN_AUTH_CONFIGS,
) -> Optional[AuthConfig]:
    """
    Pick the config that applies to a domain for a project.

    A project's custom config wins over the built-in table. None means no
    config applies and the caller should use the legacy header_* secrets.
    """
    try:
        custom = await registry.get(project_id, domain)
    except InvalidAuthConfig as e:
        log_auth_config_invalid(project_id, domain, str(e))
        custom = None

    if custom is not None:
        return custom

    return builtins.get(domain)
