"""X-API-Key guard for the command-running endpoints.

``/exec`` runs arbitrary commands and reads caller-named config and key
files, so every route except ``/health`` depends on :func:`require_api_key`.
"""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from sshexec.config import settings
from sshexec.utils.logging import get_logger

log = get_logger(__name__)

API_KEY_HEADER = "X-API-Key"

_api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def api_key_matches(presented: str | None, expected: str) -> bool:
    """Constant-time comparison; a missing header never matches."""
    if presented is None:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


async def require_api_key(
    request: Request,
    api_key: str | None = Security(_api_key_header),
) -> str | None:
    """Reject the request unless it carries the configured key.

    A blank ``SSHEXEC_API_KEY`` disables the check.
    """
    expected = settings.sshexec_api_key
    if not expected:
        return None
    if not api_key_matches(api_key, expected):
        log.warning(
            "api.key_rejected",
            path=request.url.path,
            client=request.client.host if request.client else None,
            header_present=api_key is not None,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": API_KEY_HEADER},
        )
    return api_key
