"""
Structured logging configuration for credproxy.
"""

import logging
import sys
import uuid
from typing import Any, Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


# Sensitive keys that should be obfuscated in logs.
SENSITIVE_KEYS = {
    "password",
    "api_key",
    "authorization",
    "token",
    "secret",
    "key",
}


def obfuscate_sensitive(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Obfuscate sensitive data in log events.

    Replaces values for keys matching sensitive patterns with '***'.
    """
    for key in list(event_dict.keys()):
        if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
            event_dict[key] = "***"
    return event_dict


def configure_logging():
    """
    Configure structlog for JSON output to stdout.

    Sets up processors for timestamps, obfuscation, and formatting.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            obfuscate_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all HTTP requests and responses.
    """

    async def dispatch(self, request: Request, call_next):
        """
        Log request details, process request, and log response.
        """
        request_id = str(uuid.uuid4())
        log = structlog.get_logger()

        # Only the path is logged; target_url may carry credentials.
        log.info(
            "http_request",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            log.info(
                "http_response",
                request_id=request_id,
                status_code=response.status_code,
            )

            return response
        except Exception as exc:
            log.error(
                "http_exception",
                request_id=request_id,
                exc_info=exc,
            )
            raise


def log_auth_success(subject: str):
    """
    Log successful admin authentication.
    """
    log = structlog.get_logger()
    log.info("authentication_success", subject=subject)


def log_proxy_request(project_id: str, method: str, target_host: str):
    """
    Log a proxy request before it is sent upstream.
    """
    log = structlog.get_logger()
    log.info(
        "proxy_request",
        project_id=project_id,
        method=method,
        target_host=target_host,
    )


def log_proxy_response(project_id: str, status_code: int, retried: bool):
    """
    Log the final upstream status relayed to the caller.
    """
    log = structlog.get_logger()
    log.info(
        "proxy_response",
        project_id=project_id,
        status_code=status_code,
        retried=retried,
    )


def log_proxy_retry(project_id: str, target_host: str):
    """
    Log a retry after an OAuth token refresh.
    """
    log = structlog.get_logger()
    log.info("proxy_retry", project_id=project_id, target_host=target_host)


def log_proxy_failed(project_id: str, exc: Exception):
    """
    Log an unexpected dispatch failure with its traceback.
    """
    log = structlog.get_logger()
    log.error("proxy_failed", project_id=project_id, exc_info=exc)


def log_auth_config_invalid(project_id: str, domain: str, reason: str):
    """
    Log a stored API config that could not be parsed.
    """
    log = structlog.get_logger()
    log.warning(
        "auth_config_invalid",
        project_id=project_id,
        domain=domain,
        reason=reason,
    )


def log_oauth_refresh_success(
    project_id: str, credential: str, expires_in: int
):
    """
    Log a successful OAuth token refresh.

    Only the name of the credential is logged, never its value.
    """
    log = structlog.get_logger()
    log.info(
        "oauth_refresh_success",
        project_id=project_id,
        credential=credential,
        expires_in=expires_in,
    )


def log_oauth_refresh_failed(project_id: str, endpoint: str, error: str):
    """
    Log a failed OAuth token refresh.
    """
    log = structlog.get_logger()
    log.warning(
        "oauth_refresh_failed",
        project_id=project_id,
        endpoint=endpoint,
        error=error,
    )


def log_oauth_meta_write_failed(project_id: str, exc: Exception):
    """
    Log a failure to persist OAuth expiry metadata.
    """
    log = structlog.get_logger()
    log.warning("oauth_meta_write_failed", project_id=project_id, error=str(exc))


def log_request_log_write_failed(project_id: str, exc: Exception):
    """
    Log a failure to append a proxy request log entry.
    """
    log = structlog.get_logger()
    log.warning(
        "request_log_write_failed", project_id=project_id, error=str(exc)
    )


def log_secret_operation_failed(path: str, exc: Exception):
    """
    Log a secret that could not be encrypted or decrypted.
    """
    log = structlog.get_logger()
    log.error("secret_operation_failed", path=path, exc_info=exc)


def log_startup():
    """
    Log application startup.
    """
    log = structlog.get_logger()
    log.info("application_startup")


def log_shutdown():
    """
    Log application shutdown.
    """
    log = structlog.get_logger()
    log.info("application_shutdown")


def log_config_loaded(store_backend: str, store_path: Optional[str]):
    """
    Log configuration loading.

    Keys and tokens are never passed here; only the storage location.
    """
    log = structlog.get_logger()
    log.info(
        "configuration_loaded",
        store_backend=store_backend,
        store_path=store_path,
    )
