"""
Admin authentication for the credproxy management API.

Admins authenticate with the configured admin token, either directly as a
bearer token or by exchanging it at /login for a JWT session cookie.
"""

import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from credproxy.config import load_config, save_config


ADMIN_SUBJECT = "admin"

security = HTTPBearer(auto_error=False)


def ensure_jwt_secret(config: dict[str, Any]) -> str:
    """
    Ensure JWT secret exists in config, generating if needed.

    Returns the JWT secret key. Only the file's own contents are written
    back, so values supplied through the environment stay off disk.
    """
    if config["jwt"]["secret"] is None:
        config["jwt"]["secret"] = secrets.token_urlsafe(32)
        stored = load_config(apply_env=False)
        stored["jwt"]["secret"] = config["jwt"]["secret"]
        save_config(stored)

    return config["jwt"]["secret"]


def verify_admin_token(token: str, config: dict[str, Any]) -> bool:
    """
    Check a token against the configured admin token.

    Uses constant-time comparison. Always fails when no admin token is
    configured.
    """
    admin_token = config.get("admin_token")
    if not admin_token or not token:
        return False

    return hmac.compare_digest(token.encode("utf-8"), admin_token.encode("utf-8"))


def create_jwt_token(subject: str, config: dict[str, Any]) -> str:
    """
    Create a session JWT for the given subject.

    Token expires according to config's expiry_hours setting.
    """
    secret = ensure_jwt_secret(config)
    expiry_hours = config["jwt"]["expiry_hours"]

    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "exp": now + timedelta(hours=expiry_hours),
        "iat": now,
    }

    return jwt.encode(payload, secret, algorithm="HS256")


def verify_jwt_token(token: str, config: dict[str, Any]) -> Optional[str]:
    """
    Verify a JWT token and return its subject.

    Returns None if token is invalid or expired.
    """
    secret = ensure_jwt_secret(config)

    try:
        payload = jwt.decode(token, secret, algorithms=["HS256"])
        return payload["sub"]
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


async def require_admin(
    session_token: Optional[str] = Cookie(None, alias="session"),
    authorization: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Dependency guarding the management API.

    Accepts a session cookie, or a bearer token that is either the admin
    token itself or a session JWT. Returns the authenticated subject.
    """
    config = load_config()

    if session_token and verify_jwt_token(session_token, config):
        return ADMIN_SUBJECT

    if authorization:
        token = authorization.credentials
        if verify_admin_token(token, config):
            return ADMIN_SUBJECT
        if verify_jwt_token(token, config):
            return ADMIN_SUBJECT

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
