"""Turn a parsed host entry plus per-call overrides into a connection plan."""

from __future__ import annotations

import getpass
import os
from pathlib import Path
from typing import Mapping, Optional

from sshexec.models.host import CredentialKind, HostEntry, Overrides, ResolvedPlan
from sshexec.services.errors import (
    HopMissingHostNameError,
    IdentityUnreadableError,
    MissingHostNameError,
)
from sshexec.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_PORT = 22
DEFAULT_KNOWN_HOSTS = "~/.ssh/known_hosts"


def accept_any_host_key(entry: HostEntry, insecure_override: Optional[bool]) -> bool:
    """Explicit True always wins; explicit False always enforces checking."""
    if insecure_override is True:
        return True
    if insecure_override is False:
        return False
    return (
        entry.strict_host_key_checking == "no"
        or entry.user_known_hosts_file == "/dev/null"
    )


def _read_identity(path: str, alias: str) -> tuple[str, bytes]:
    expanded = str(Path(path).expanduser())
    try:
        return expanded, Path(expanded).read_bytes()
    except OSError as exc:
        raise IdentityUnreadableError(
            f"Cannot read identity file {expanded!r} for {alias!r}: {exc}",
            alias=alias,
        ) from exc


def resolve_plan(
    entry: HostEntry,
    overrides: Optional[Overrides] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    hop: bool = False,
) -> ResolvedPlan:
    """Apply the resolution rules in order: host, port, user, credential, host keys.

    A missing credential is not an error here; authentication simply fails
    at handshake time.
    """
    overrides = overrides or Overrides()
    environ = os.environ if env is None else env

    if not entry.host_name:
        error_cls = HopMissingHostNameError if hop else MissingHostNameError
        raise error_cls(
            f"Host block for {entry.alias!r} has no HostName",
            alias=entry.alias,
        )

    plan = ResolvedPlan(
        host=entry.host_name,
        port=entry.port or DEFAULT_PORT,
        username=overrides.username or entry.user or getpass.getuser(),
        accept_any_host_key=accept_any_host_key(
            entry, overrides.insecure_accept_unknown_host_keys,
        ),
    )

    known_hosts = entry.user_known_hosts_file or DEFAULT_KNOWN_HOSTS
    if known_hosts != "/dev/null":
        plan.known_hosts_file = str(Path(known_hosts).expanduser())

    identity = overrides.identity_file or (
        entry.identity_files[0] if entry.identity_files else None
    )
    if identity:
        plan.identity_file, plan.key_bytes = _read_identity(identity, entry.alias)
        plan.passphrase = overrides.passphrase
        plan.credential = CredentialKind.KEY
    elif overrides.password is not None:
        plan.password = overrides.password
        plan.credential = CredentialKind.PASSWORD
    elif environ.get("SSH_AUTH_SOCK"):
        plan.agent_socket = environ["SSH_AUTH_SOCK"]
        plan.credential = CredentialKind.AGENT

    log.debug(
        "ssh.plan_resolved",
        alias=entry.alias,
        address=plan.address,
        credential=plan.credential.value,
        accept_any_host_key=plan.accept_any_host_key,
        hop=hop,
    )
    return plan
