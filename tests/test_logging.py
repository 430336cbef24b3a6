"""
Tests for structured logging.
"""

import json
from io import StringIO
from unittest.mock import patch

import pytest
import structlog
from fastapi import FastAPI
from starlette.testclient import TestClient

from credproxy.logging import (
    LoggingMiddleware,
    configure_logging,
    log_auth_config_invalid,
    log_auth_success,
    log_config_loaded,
    log_oauth_refresh_failed,
    log_oauth_refresh_success,
    log_proxy_request,
    log_proxy_response,
    log_shutdown,
    log_startup,
    obfuscate_sensitive,
)


def read_entries(stream: StringIO) -> list[dict]:
    return [
        json.loads(line)
        for line in stream.getvalue().strip().split("\n")
        if line
    ]


def test_obfuscate_sensitive_redacts_password():
    """
    Obfuscation processor redacts password fields.
    """
    event_dict = {"username": "alice", "password": "secret123"}
    result = obfuscate_sensitive(None, None, event_dict)

    assert result["username"] == "alice"
    assert result["password"] == "***"


def test_obfuscate_sensitive_redacts_api_key_and_token():
    """
    Obfuscation processor redacts API key and token fields.
    """
    event_dict = {"service": "stripe", "api_key": "sk-1", "access_token": "t"}
    result = obfuscate_sensitive(None, None, event_dict)

    assert result["service"] == "stripe"
    assert result["api_key"] == "***"
    assert result["access_token"] == "***"


def test_obfuscate_sensitive_redacts_case_insensitive():
    """
    Obfuscation processor is case insensitive.
    """
    event_dict = {"Authorization": "Bearer x", "CLIENT_SECRET": "y"}
    result = obfuscate_sensitive(None, None, event_dict)

    assert result["Authorization"] == "***"
    assert result["CLIENT_SECRET"] == "***"


def test_obfuscate_sensitive_preserves_non_sensitive_data():
    """
    Obfuscation processor preserves non-sensitive fields.
    """
    event_dict = {"project_id": "p1", "status_code": 200, "method": "GET"}
    result = obfuscate_sensitive(None, None, dict(event_dict))

    assert result == event_dict


def test_configure_logging_sets_up_structlog():
    """
    Configuration sets up structlog with correct processors.
    """
    configure_logging()

    log = structlog.get_logger()
    assert log is not None


@patch("sys.stdout", new_callable=StringIO)
def test_logging_produces_json_output(mock_stdout):
    """
    Configured logging produces JSON formatted output.
    """
    configure_logging()
    log = structlog.get_logger()

    log.info("test_event", data="value")

    log_entry = read_entries(mock_stdout)[0]

    assert log_entry["event"] == "test_event"
    assert log_entry["data"] == "value"
    assert "timestamp" in log_entry
    assert log_entry["level"] == "info"


def test_logging_middleware_logs_request_and_response():
    """
    Middleware logs incoming requests and their responses.
    """
    app = FastAPI()
    app.add_middleware(LoggingMiddleware)

    @app.get("/test")
    async def test_endpoint():
        return {"message": "ok"}

    with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
        configure_logging()
        client = TestClient(app)
        response = client.get("/test?target_url=https://x.example/?k=v")

        assert response.status_code == 200

        entries = read_entries(mock_stdout)

        assert entries[0]["event"] == "http_request"
        assert entries[0]["method"] == "GET"
        # Query strings may hold credentials and are not logged.
        assert entries[0]["path"] == "/test"
        assert entries[-1]["event"] == "http_response"
        assert entries[-1]["status_code"] == 200
        assert entries[0]["request_id"] == entries[-1]["request_id"]


def test_logging_middleware_logs_exceptions():
    """
    Middleware logs exceptions with full context.
    """
    app = FastAPI()
    app.add_middleware(LoggingMiddleware)

    @app.get("/error")
    async def error_endpoint():
        raise ValueError("Test error")

    with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
        configure_logging()
        client = TestClient(app)

        with pytest.raises(ValueError):
            client.get("/error")

        error_log = read_entries(mock_stdout)[-1]
        assert error_log["event"] == "http_exception"
        assert "exception" in error_log


@patch("sys.stdout", new_callable=StringIO)
def test_log_auth_success(mock_stdout):
    configure_logging()
    log_auth_success("admin")

    log_entry = read_entries(mock_stdout)[0]

    assert log_entry["event"] == "authentication_success"
    assert log_entry["subject"] == "admin"


@patch("sys.stdout", new_callable=StringIO)
def test_log_proxy_request_and_response(mock_stdout):
    """
    Proxy logging carries the project, method, host and final status.
    """
    configure_logging()
    log_proxy_request("p1", "POST", "api.stripe.com")
    log_proxy_response("p1", 201, False)

    request_entry, response_entry = read_entries(mock_stdout)

    assert request_entry["event"] == "proxy_request"
    assert request_entry["project_id"] == "p1"
    assert request_entry["method"] == "POST"
    assert request_entry["target_host"] == "api.stripe.com"
    assert response_entry["event"] == "proxy_response"
    assert response_entry["status_code"] == 201
    assert response_entry["retried"] is False


@patch("sys.stdout", new_callable=StringIO)
def test_log_oauth_events(mock_stdout):
    """
    OAuth logging names the credential but never carries token values.
    """
    configure_logging()
    log_oauth_refresh_success("p1", "access_tok", 60)
    log_oauth_refresh_failed("p1", "https://auth.example.com/token", "boom")

    success, failure = read_entries(mock_stdout)

    assert success["event"] == "oauth_refresh_success"
    assert success["credential"] == "access_tok"
    assert success["expires_in"] == 60
    assert failure["event"] == "oauth_refresh_failed"
    assert failure["level"] == "warning"
    assert failure["error"] == "boom"


@patch("sys.stdout", new_callable=StringIO)
def test_log_auth_config_invalid(mock_stdout):
    configure_logging()
    log_auth_config_invalid("p1", "api.example.com", "'header' is required")

    log_entry = read_entries(mock_stdout)[0]

    assert log_entry["event"] == "auth_config_invalid"
    assert log_entry["domain"] == "api.example.com"
    assert log_entry["reason"] == "'header' is required"


@patch("sys.stdout", new_callable=StringIO)
def test_log_startup_and_shutdown(mock_stdout):
    configure_logging()
    log_startup()
    log_shutdown()

    startup, shutdown = read_entries(mock_stdout)

    assert startup["event"] == "application_startup"
    assert shutdown["event"] == "application_shutdown"


@patch("sys.stdout", new_callable=StringIO)
def test_log_config_loaded(mock_stdout):
    """
    Configuration loaded logging includes the storage location.
    """
    configure_logging()
    log_config_loaded("file", "/data/store.json")

    log_entry = read_entries(mock_stdout)[0]

    assert log_entry["event"] == "configuration_loaded"
    assert log_entry["store_backend"] == "file"
    assert log_entry["store_path"] == "/data/store.json"
