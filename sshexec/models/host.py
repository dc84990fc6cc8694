"""Host alias and connection-plan data structures."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class HostEntry(BaseModel):
    """Attributes parsed from the first ``Host`` block matching an alias."""

    alias: str
    host_name: Optional[str] = None
    user: Optional[str] = None
    port: Optional[int] = None
    identity_files: list[str] = Field(default_factory=list)
    strict_host_key_checking: Optional[str] = None
    user_known_hosts_file: Optional[str] = None
    proxy_jump: Optional[str] = None
    proxy_command_raw: Optional[str] = None
    proxy_jump_identity_file: Optional[str] = None

    @property
    def jump_spec(self) -> Optional[str]:
        """First element of ``ProxyJump``; later hops are never followed."""
        if not self.proxy_jump:
            return None
        first = self.proxy_jump.split(",")[0].strip()
        return first or None


class Overrides(BaseModel):
    """Per-call values that win over the config file."""

    username: Optional[str] = None
    identity_file: Optional[str] = None
    # None = defer to StrictHostKeyChecking / UserKnownHostsFile
    insecure_accept_unknown_host_keys: Optional[bool] = None
    passphrase: Optional[str] = Field(default=None, repr=False)
    # direct connections only
    password: Optional[str] = Field(default=None, repr=False)


class CredentialKind(str, Enum):
    KEY = "key"
    PASSWORD = "password"
    AGENT = "agent"
    NONE = "none"


class ResolvedPlan(BaseModel):
    """Concrete parameters for one connection attempt. Never cached."""

    host: str
    port: int = 22
    username: str
    credential: CredentialKind = CredentialKind.NONE
    identity_file: Optional[str] = None
    key_bytes: Optional[bytes] = Field(default=None, repr=False)
    passphrase: Optional[str] = Field(default=None, repr=False)
    password: Optional[str] = Field(default=None, repr=False)
    agent_socket: Optional[str] = None
    accept_any_host_key: bool = False
    known_hosts_file: Optional[str] = None

    @property
    def address(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"
