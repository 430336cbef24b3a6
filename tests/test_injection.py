"""
Tests for credential injection into outbound requests.
"""

import httpx
import pytest

from credproxy.api_configs import HeaderAuth, OAuthAuth, QueryParamAuth
from credproxy.injection import inject_auth


def secret_set(**values):
    return {
        name: {"value": value, "updatedAt": "2025-01-01T00:00:00+00:00"}
        for name, value in values.items()
    }


URL = "https://api.example.com/v1/items?page=2"


def test_header_config_with_format():
    config = HeaderAuth(
        header="Authorization", secret_key="k", format="Bearer {key}"
    )

    headers, url = inject_auth({}, URL, secret_set(k="abc"), config)

    assert headers["authorization"] == "Bearer abc"
    assert url == URL


def test_header_format_substitutes_first_placeholder_only():
    config = HeaderAuth(
        header="X-Auth", secret_key="k", format="{key}:{key}"
    )

    headers, _ = inject_auth({}, URL, secret_set(k="abc"), config)

    assert headers["x-auth"] == "abc:{key}"


def test_header_config_without_format_uses_raw_value():
    config = HeaderAuth(header="X-API-Key", secret_key="k")

    headers, _ = inject_auth({}, URL, secret_set(k="abc"), config)

    assert headers["x-api-key"] == "abc"


def test_header_config_replaces_inbound_header_case_insensitively():
    config = HeaderAuth(header="Authorization", secret_key="k")

    headers, _ = inject_auth(
        {"authorization": "client-supplied"}, URL, secret_set(k="abc"), config
    )

    assert headers.get_list("authorization") == ["abc"]


def test_query_param_config_preserves_other_params():
    config = QueryParamAuth(param="api_key", secret_key="k")

    headers, url = inject_auth(
        {"accept": "application/json"},
        "https://api.nal.usda.gov/fdc/v1/foods/search?query=apple&pageSize=5",
        secret_set(k="k1"),
        config,
    )

    params = httpx.URL(url).params
    assert params["api_key"] == "k1"
    assert params["query"] == "apple"
    assert params["pageSize"] == "5"
    assert httpx.URL(url).path == "/fdc/v1/foods/search"
    assert dict(headers) == {"accept": "application/json"}


def test_query_param_config_replaces_existing_param():
    config = QueryParamAuth(param="key", secret_key="k")

    _, url = inject_auth(
        {}, "https://maps.googleapis.com/x?key=client", secret_set(k="real"), config
    )

    assert httpx.URL(url).params.get_list("key") == ["real"]


def test_oauth_config_uses_access_token_with_defaults():
    config = OAuthAuth(
        token_url="https://oauth.example.com/token",
        client_id_secret="cid",
        client_secret_secret="csec",
        secret_key="access_tok",
    )

    headers, _ = inject_auth(
        {}, URL, secret_set(cid="X", csec="Y", access_tok="t1"), config
    )

    assert headers["authorization"] == "Bearer t1"


def test_oauth_config_with_custom_header_and_format():
    config = OAuthAuth(
        token_url="https://oauth.example.com/token",
        client_id_secret="cid",
        client_secret_secret="csec",
        secret_key="access_tok",
        header="X-Access-Token",
        format="{key}",
    )

    headers, _ = inject_auth({}, URL, secret_set(access_tok="t1"), config)

    assert headers["x-access-token"] == "t1"
    assert "authorization" not in headers


def test_legacy_header_secrets_when_no_config():
    headers, url = inject_auth(
        {},
        URL,
        secret_set(**{"header_x-api-key": "v", "header_X_Client_Id": "c"}),
        None,
    )

    assert headers["x-api-key"] == "v"
    assert headers["x-client-id"] == "c"
    assert url == URL


def test_legacy_ignores_secrets_without_header_prefix():
    headers, url = inject_auth(
        {}, URL, secret_set(github_api_key="gh", api_key="k"), None
    )

    assert len(headers) == 0
    assert url == URL


@pytest.mark.parametrize(
    "config",
    [
        HeaderAuth(header="Authorization", secret_key="missing"),
        QueryParamAuth(param="api_key", secret_key="missing"),
        OAuthAuth(
            token_url="https://oauth.example.com/token",
            client_id_secret="cid",
            client_secret_secret="csec",
            secret_key="missing",
        ),
    ],
)
def test_missing_secret_injects_nothing(config):
    headers, url = inject_auth(
        {"accept": "*/*"}, URL, secret_set(other="x"), config
    )

    assert dict(headers) == {"accept": "*/*"}
    assert url == URL


def test_inputs_are_not_mutated():
    inbound = httpx.Headers({"accept": "*/*"})
    config = HeaderAuth(header="Authorization", secret_key="k")

    headers, _ = inject_auth(inbound, URL, secret_set(k="abc"), config)

    assert "authorization" in headers
    assert "authorization" not in inbound
