"""Open an authenticated paramiko transport to a resolved plan.

Direct connections use a TCP socket. A single ``ProxyJump`` hop is supported:
the hop is authenticated first, then a ``direct-tcpip`` channel through it
carries the target's own SSH session.
"""

from __future__ import annotations

import io
import os
import socket
import threading
from typing import Any, Mapping, Optional

import paramiko

from sshexec.models.host import CredentialKind, HostEntry, Overrides, ResolvedPlan
from sshexec.services.errors import (
    AuthFailedError,
    HandshakeFailedError,
    HopNotFoundError,
    HostKeyError,
    IdentityUnreadableError,
    UnsupportedProxyError,
)
from sshexec.services.resolver import resolve_plan
from sshexec.utils.logging import get_logger
from sshexec.utils.ssh_config import parse_host_entry, parse_port, parse_proxy_command

log = get_logger(__name__)

SYSTEM_KNOWN_HOSTS = "/etc/ssh/ssh_known_hosts"
FORWARD_ORIGIN = ("127.0.0.1", 0)

# DSS was removed from paramiko 4; these cover current OpenSSH key types
_KEY_CLASSES: tuple[type[paramiko.PKey], ...] = (
    paramiko.RSAKey,
    paramiko.ECDSAKey,
    paramiko.Ed25519Key,
)


class LiveSession:
    """The target transport plus every handle opened to reach it.

    Handles are closed in reverse order of registration, exactly once, by
    whichever exit path gets there first (success, error or timeout).
    """

    def __init__(self) -> None:
        self.transport: Optional[paramiko.Transport] = None
        self.hop_transport: Optional[paramiko.Transport] = None
        self._handles: list[tuple[str, Any]] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def tunneled(self) -> bool:
        return self.hop_transport is not None

    def register(self, name: str, handle: Any) -> Any:
        with self._lock:
            if not self._closed:
                self._handles.append((name, handle))
                return handle
        _close_quietly(name, handle)
        raise HandshakeFailedError(f"Session closed while opening {name}")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            handles, self._handles = self._handles, []
        for name, handle in reversed(handles):
            _close_quietly(name, handle)
        log.debug("ssh.session_closed", handles=len(handles))

    def __enter__(self) -> LiveSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _close_quietly(name: str, handle: Any) -> None:
    try:
        handle.close()
    except Exception as exc:
        log.debug("ssh.close_failed", handle=name, error=str(exc))


# ── low-level openers (module level so tests can swap them) ──────────────

def _open_socket(host: str, port: int, timeout: Optional[float]) -> socket.socket:
    return socket.create_connection((host, port), timeout=timeout)


def _new_transport(sock: Any) -> paramiko.Transport:
    return paramiko.Transport(sock)


# ── host keys / credentials ─────────────────────────────────────────────

def _verify_host_key(transport: paramiko.Transport, plan: ResolvedPlan, stage: str) -> None:
    if plan.accept_any_host_key:
        log.warning("ssh.host_key_unchecked", host=plan.host, stage=stage)
        return

    host_keys = paramiko.HostKeys()
    for path in (SYSTEM_KNOWN_HOSTS, plan.known_hosts_file):
        if path and os.path.isfile(path):
            host_keys.load(path)

    server_key = transport.get_remote_server_key()
    lookup = plan.host if plan.port == 22 else f"[{plan.host}]:{plan.port}"
    if not host_keys.check(lookup, server_key):
        raise HostKeyError(
            f"Host key for {lookup} ({server_key.get_name()}) is unknown or does "
            "not match known_hosts",
            stage=stage,
        )


def _load_private_key(plan: ResolvedPlan) -> paramiko.PKey:
    if plan.key_bytes is None:
        raise IdentityUnreadableError(
            f"No key material loaded for {plan.identity_file!r}",
        )
    try:
        text = plan.key_bytes.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise IdentityUnreadableError(
            f"Identity file {plan.identity_file!r} is not a text key",
        ) from exc

    for key_cls in _KEY_CLASSES:
        try:
            return key_cls.from_private_key(io.StringIO(text), password=plan.passphrase)
        except paramiko.PasswordRequiredException as exc:
            raise IdentityUnreadableError(
                f"Identity file {plan.identity_file!r} is encrypted and no "
                "passphrase was given",
            ) from exc
        except (paramiko.SSHException, ValueError):
            continue
    raise IdentityUnreadableError(
        f"Identity file {plan.identity_file!r} is not a supported private key",
    )


def _auth_with_agent(transport: paramiko.Transport, plan: ResolvedPlan) -> None:
    agent = paramiko.Agent()
    try:
        keys = agent.get_keys()
        for key in keys:
            try:
                transport.auth_publickey(plan.username, key)
            except paramiko.AuthenticationException:
                continue
            if transport.is_authenticated():
                return
        raise paramiko.AuthenticationException(
            f"none of {len(keys)} agent key(s) accepted",
        )
    finally:
        agent.close()


def _authenticate(transport: paramiko.Transport, plan: ResolvedPlan, stage: str) -> None:
    # keyboard-interactive is never attempted
    try:
        if plan.credential is CredentialKind.KEY:
            transport.auth_publickey(plan.username, _load_private_key(plan))
        elif plan.credential is CredentialKind.PASSWORD:
            transport.auth_password(plan.username, plan.password or "")
        elif plan.credential is CredentialKind.AGENT:
            _auth_with_agent(transport, plan)
        else:
            transport.auth_none(plan.username)
    except paramiko.AuthenticationException as exc:
        raise AuthFailedError(
            f"Authentication failed for {plan.address}: {exc}", stage=stage,
        ) from exc
    except (paramiko.SSHException, OSError, EOFError) as exc:
        raise HandshakeFailedError(
            f"Connection lost during authentication to {plan.address}: {exc}",
            stage=stage,
        ) from exc

    if not transport.is_authenticated():
        raise AuthFailedError(
            f"Authentication incomplete for {plan.address}", stage=stage,
        )


# ── connection steps ─────────────────────────────────────────────────────

def _start_session(
    session: LiveSession,
    sock: Any,
    plan: ResolvedPlan,
    stage: str,
    timeout: Optional[float],
) -> paramiko.Transport:
    transport = session.register(f"{stage}.transport", _new_transport(sock))
    if timeout:
        transport.banner_timeout = timeout
        transport.handshake_timeout = timeout
        transport.auth_timeout = timeout
    try:
        transport.start_client(timeout=timeout)
    except (paramiko.SSHException, OSError, EOFError) as exc:
        raise HandshakeFailedError(
            f"SSH negotiation with {plan.host}:{plan.port} failed: {exc}",
            stage=stage,
        ) from exc
    _verify_host_key(transport, plan, stage)
    _authenticate(transport, plan, stage)
    log.info("ssh.authenticated", stage=stage, address=plan.address,
             credential=plan.credential.value)
    return transport


def _connect_socket(
    session: LiveSession,
    plan: ResolvedPlan,
    stage: str,
    timeout: Optional[float],
) -> Any:
    try:
        sock = _open_socket(plan.host, plan.port, timeout)
    except (OSError, OverflowError) as exc:
        raise HandshakeFailedError(
            f"Cannot reach {plan.host}:{plan.port}: {exc}", stage=stage,
        ) from exc
    return session.register(f"{stage}.socket", sock)


def _open_forward(
    session: LiveSession,
    hop_transport: paramiko.Transport,
    plan: ResolvedPlan,
    timeout: Optional[float],
) -> Any:
    try:
        channel = hop_transport.open_channel(
            "direct-tcpip",
            (plan.host, plan.port),
            FORWARD_ORIGIN,
            timeout=timeout,
        )
    except (paramiko.SSHException, OSError, EOFError) as exc:
        raise HandshakeFailedError(
            f"Hop refused forwarding to {plan.host}:{plan.port}: {exc}",
            stage="hop",
        ) from exc
    return session.register("hop.channel", channel)


def resolve_hop(
    entry: HostEntry,
    config_text: str,
    overrides: Optional[Overrides] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> tuple[str, ResolvedPlan]:
    """Resolve the jump host named by *entry*; returns ``(hop_alias, plan)``.

    The jump spec is ``[user@]alias[:port]``; a port here wins over the
    hop's own ``Port``.
    """
    jump = entry.jump_spec
    if jump is None:
        raise HopNotFoundError(f"{entry.alias!r} has no proxy hop", alias=entry.alias)
    hop_user, _, hop_alias = jump.rpartition("@")
    hop_port: Optional[int] = None
    if ":" in hop_alias:
        hop_alias, _, raw_port = hop_alias.rpartition(":")
        hop_port = parse_port(raw_port)
        if hop_port is None:
            raise UnsupportedProxyError(
                f"Proxy hop {jump!r} (from {entry.alias!r}) has an invalid port",
                alias=entry.alias,
            )

    hop_entry = parse_host_entry(config_text, hop_alias)
    if hop_entry is None:
        raise HopNotFoundError(
            f"Proxy hop {hop_alias!r} (from {entry.alias!r}) is not defined",
            alias=hop_alias,
        )
    if hop_entry.jump_spec or hop_entry.proxy_command_raw:
        raise UnsupportedProxyError(
            f"Proxy hop {hop_alias!r} is itself proxied; only one hop is supported",
            alias=hop_alias,
        )

    insecure = overrides.insecure_accept_unknown_host_keys if overrides else None
    hop_overrides = Overrides(
        username=hop_user or None,
        identity_file=entry.proxy_jump_identity_file,
        insecure_accept_unknown_host_keys=insecure,
    )
    plan = resolve_plan(hop_entry, hop_overrides, env=env, hop=True)
    if hop_port is not None:
        plan = plan.model_copy(update={"port": hop_port})
    return hop_alias, plan


def connect(
    plan: ResolvedPlan,
    entry: HostEntry,
    config_text: str,
    overrides: Optional[Overrides] = None,
    *,
    session: Optional[LiveSession] = None,
    timeout: Optional[float] = None,
    env: Optional[Mapping[str, str]] = None,
) -> LiveSession:
    """Return a LiveSession whose ``transport`` is authenticated to *plan*.

    On any failure every handle opened so far is closed before the original
    error propagates.
    """
    session = session or LiveSession()
    try:
        if entry.proxy_command_raw and parse_proxy_command(entry.proxy_command_raw)[0] is None:
            raise UnsupportedProxyError(
                f"ProxyCommand for {entry.alias!r} is not of the form "
                "'ssh -W %h:%p <host>'",
                alias=entry.alias,
            )

        if entry.jump_spec is None:
            log.info("ssh.connecting", alias=entry.alias, address=plan.address)
            sock = _connect_socket(session, plan, "target", timeout)
            session.transport = _start_session(session, sock, plan, "target", timeout)
            return session

        if plan.credential is CredentialKind.PASSWORD:
            raise UnsupportedProxyError(
                f"Password authentication through a proxy hop is not supported "
                f"({entry.alias!r})",
                alias=entry.alias,
            )
        hop_alias, hop_plan = resolve_hop(entry, config_text, overrides, env=env)
        log.info(
            "ssh.connecting",
            alias=entry.alias,
            address=plan.address,
            via=hop_alias,
            hop_address=hop_plan.address,
        )
        hop_sock = _connect_socket(session, hop_plan, "hop", timeout)
        session.hop_transport = _start_session(session, hop_sock, hop_plan, "hop", timeout)
        channel = _open_forward(session, session.hop_transport, plan, timeout)
        session.transport = _start_session(session, channel, plan, "target", timeout)
        return session
    except Exception:
        session.close()
        raise
