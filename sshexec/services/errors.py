"""Typed failures surfaced by the alias -> session -> exec pipeline.

Every stage fails fast; the only recovery is closing whatever was already
opened before the original error reaches the caller.
"""

from __future__ import annotations

from typing import Optional


class SSHExecError(Exception):
    """Base class; ``code`` is the stable machine-readable kind."""

    code = "ssh_error"

    def __init__(self, message: str, *, alias: Optional[str] = None) -> None:
        super().__init__(message)
        self.alias = alias


# ── config / resolution ──────────────────────────────────────────────────

class ConfigUnreadableError(SSHExecError):
    code = "config_unreadable"


class AliasNotFoundError(SSHExecError):
    code = "alias_not_found"


class MissingHostNameError(SSHExecError):
    code = "missing_host_name"


class HopNotFoundError(AliasNotFoundError):
    code = "hop_not_found"


class HopMissingHostNameError(MissingHostNameError):
    code = "hop_missing_host_name"


class IdentityUnreadableError(SSHExecError):
    code = "identity_unreadable"


class UnsupportedProxyError(SSHExecError):
    """Proxy setup beyond a single ``ssh -W`` / ProxyJump hop."""

    code = "unsupported_proxy"


# ── transport ────────────────────────────────────────────────────────────

class HandshakeFailedError(SSHExecError):
    code = "handshake_failed"

    def __init__(
        self,
        message: str,
        *,
        alias: Optional[str] = None,
        stage: str = "target",
    ) -> None:
        super().__init__(message, alias=alias)
        self.stage = stage


class HostKeyError(HandshakeFailedError):
    code = "host_key_rejected"


class AuthFailedError(HandshakeFailedError):
    code = "auth_failed"


# ── execution ────────────────────────────────────────────────────────────

class ExecFailedError(SSHExecError):
    code = "exec_failed"


class CommandTimeoutError(SSHExecError):
    code = "timeout"

    def __init__(
        self,
        message: str,
        *,
        alias: Optional[str] = None,
        timeout_ms: int = 0,
    ) -> None:
        super().__init__(message, alias=alias)
        self.timeout_ms = timeout_ms
