"""
Admin authentication and client identification.

Reload and debug endpoints are guarded by a static bearer token
(ADMIN_TOKEN). Raw tokens never reach the logs, only a short hash.
"""

import hashlib
import logging
import secrets

from fastapi import HTTPException, Request

from kartbot import config

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()[:8]


def get_client_ip(request: Request) -> str:
    """Best-effort client address behind a reverse proxy."""
    for header in ("X-Forwarded-For", "X-Real-IP"):
        value = request.headers.get(header)
        if value:
            # leftmost entry is the original client
            return value.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def log_security_event(event: str, client_ip: str, level: int = logging.WARNING, **details) -> None:
    """Log an admin-surface event as one structured line.

    Args:
        event: Short event name, e.g. ``auth_failure_invalid_token``.
        client_ip: Address the request came from.
        level: Logging level for the record.
        **details: Extra fields (path, user agent, token hash).
    """
    entry = {"event": event, "ip": client_ip, **details}
    logger.log(level, f"[SECURITY] {entry}")


def require_admin(request: Request) -> None:
    """
    FastAPI dependency for `Authorization: Bearer <ADMIN_TOKEN>`.

    Raises:
        HTTPException: 503 when no admin token is configured, 401 when the
            header is missing or the token does not match.
    """
    client_ip = get_client_ip(request)
    path = request.url.path
    expected = config.ADMIN_TOKEN

    if not expected:
        log_security_event("admin_disabled", client_ip, logging.ERROR, path=path)
        raise HTTPException(status_code=503, detail="Admin token not configured")

    scheme, _, provided = request.headers.get("Authorization", "").partition(" ")
    provided = provided.strip()
    if scheme.lower() != "bearer" or not provided:
        log_security_event(
            "auth_failure_missing_token", client_ip,
            path=path, user_agent=request.headers.get("User-Agent", "unknown"),
        )
        raise HTTPException(status_code=401, detail="Authentication required")

    if not secrets.compare_digest(provided.encode(), expected.encode()):
        log_security_event(
            "auth_failure_invalid_token", client_ip,
            path=path, token_hash=hash_token(provided),
        )
        raise HTTPException(status_code=401, detail="Authentication failed")

    log_security_event("auth_success", client_ip, logging.INFO, path=path)
