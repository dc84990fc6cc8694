"""Fake paramiko objects and a mock runner for testing without real hosts.

``FakeNetwork`` replaces the socket / transport openers in
``sshexec.services.tunnel`` so the real connect and exec code paths run
against in-memory transports and channels.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Optional

import paramiko

from sshexec.models.commands import ExecResult
from sshexec.services import tunnel


# ── channels ─────────────────────────────────────────────────────────────


def _chunks(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class FakeExecChannel:
    """Session channel with canned output.

    Like paramiko, the remote side's output, exit status and close are all
    in place before the reader looks (unless *hang* is set), and buffered
    data stays readable after the channel is closed.
    """

    def __init__(
        self,
        stdout: bytes = b"",
        stderr: bytes = b"",
        exit_status: Optional[int] = 0,
        *,
        hang: bool = False,
        chunk: int = 4,
    ) -> None:
        self._stdout = _chunks(stdout, chunk)
        self._stderr = _chunks(stderr, chunk)
        self.exit_status = -1 if exit_status is None else exit_status
        self.hang = hang
        self.status_event = threading.Event()
        self.command: Optional[str] = None
        self.close_calls = 0
        self.closed = False
        if not hang:
            self.remote_close()

    def exec_command(self, command: str) -> None:
        self.command = command

    def shutdown_write(self) -> None:
        pass

    def recv_ready(self) -> bool:
        return bool(self._stdout)

    def recv(self, nbytes: int) -> bytes:
        return self._stdout.pop(0) if self._stdout else b""

    def recv_stderr_ready(self) -> bool:
        return bool(self._stderr)

    def recv_stderr(self, nbytes: int) -> bytes:
        return self._stderr.pop(0) if self._stderr else b""

    def remote_close(self) -> None:
        """Exit status and channel close arriving from the server."""
        self.status_event.set()
        self.closed = True

    def close(self) -> None:
        self.closed = True
        self.close_calls += 1
        self.status_event.set()


class FakeForwardChannel:
    """``direct-tcpip`` channel; carries the nested transport's address."""

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeSocket:
    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.closed = False

    def close(self) -> None:
        self.closed = True


# ── transports ───────────────────────────────────────────────────────────


@dataclass
class HostBehaviour:
    """How one fake SSH server responds."""

    server_key: Optional[paramiko.PKey] = None
    accept_auth: bool = True
    authorized_keys: Optional[list[paramiko.PKey]] = None
    handshake_error: Optional[str] = None
    forward_error: bool = False
    exec_error: bool = False
    exec_channel: Optional[FakeExecChannel] = None
    auth_calls: list[tuple[str, str]] = field(default_factory=list)


class FakeTransport:
    def __init__(self, sock: Any, behaviour: HostBehaviour, network: FakeNetwork) -> None:
        self.sock = sock
        self.behaviour = behaviour
        self.network = network
        self.authenticated = False
        self.closed = False
        self.close_calls = 0
        self.forwards: list[tuple[str, tuple[str, int], tuple[str, int]]] = []
        self.banner_timeout: Optional[float] = None
        self.handshake_timeout: Optional[float] = None
        self.auth_timeout: Optional[float] = None

    def start_client(self, event: Any = None, timeout: Optional[float] = None) -> None:
        if self.behaviour.handshake_error:
            raise paramiko.SSHException(self.behaviour.handshake_error)

    def get_remote_server_key(self) -> paramiko.PKey:
        return self.behaviour.server_key

    def _auth(self, method: str, username: str) -> None:
        self.behaviour.auth_calls.append((method, username))
        if not self.behaviour.accept_auth:
            raise paramiko.AuthenticationException("Authentication failed.")
        self.authenticated = True

    def auth_publickey(self, username: str, key: paramiko.PKey) -> list[str]:
        allowed = self.behaviour.authorized_keys
        if allowed is not None and key not in allowed:
            self.behaviour.auth_calls.append(("publickey", username))
            raise paramiko.AuthenticationException("Authentication failed.")
        self._auth("publickey", username)
        return []

    def auth_password(self, username: str, password: str) -> list[str]:
        self._auth("password", username)
        return []

    def auth_none(self, username: str) -> list[str]:
        self.behaviour.auth_calls.append(("none", username))
        raise paramiko.BadAuthenticationType("Bad authentication type", ["publickey"])

    def is_authenticated(self) -> bool:
        return self.authenticated

    def is_active(self) -> bool:
        return not self.closed

    def open_channel(
        self,
        kind: str,
        dest_addr: tuple[str, int],
        src_addr: tuple[str, int],
        timeout: Optional[float] = None,
    ) -> FakeForwardChannel:
        self.forwards.append((kind, dest_addr, src_addr))
        if self.behaviour.forward_error or dest_addr not in self.network.hosts:
            raise paramiko.ChannelException(2, "Connect failed")
        return FakeForwardChannel(*dest_addr)

    def open_session(self, timeout: Optional[float] = None) -> FakeExecChannel:
        if self.behaviour.exec_error or self.behaviour.exec_channel is None:
            raise paramiko.ChannelException(1, "Administratively prohibited")
        return self.behaviour.exec_channel

    def close(self) -> None:
        self.closed = True
        self.close_calls += 1


class FakeAgent:
    """Stands in for ``paramiko.Agent``; offers a fixed list of keys."""

    def __init__(self, keys: list[paramiko.PKey]) -> None:
        self.keys = list(keys)
        self.closed = False

    def get_keys(self) -> tuple[paramiko.PKey, ...]:
        return tuple(self.keys)

    def close(self) -> None:
        self.closed = True


class FakeNetwork:
    """Registry of fake SSH servers keyed by ``(host, port)``."""

    def __init__(self) -> None:
        self.hosts: dict[tuple[str, int], HostBehaviour] = {}
        self.sockets: list[FakeSocket] = []
        self.transports: list[FakeTransport] = []

    def add_host(self, host: str, port: int = 22, **kwargs: Any) -> HostBehaviour:
        behaviour = HostBehaviour(**kwargs)
        self.hosts[(host, port)] = behaviour
        return behaviour

    def open_socket(self, host: str, port: int, timeout: Optional[float]) -> FakeSocket:
        if (host, port) not in self.hosts:
            raise ConnectionRefusedError(111, "Connection refused")
        sock = FakeSocket(host, port)
        self.sockets.append(sock)
        return sock

    def new_transport(self, sock: Any) -> FakeTransport:
        transport = FakeTransport(sock, self.hosts[(sock.host, sock.port)], self)
        self.transports.append(transport)
        return transport

    def transport_for(self, host: str, port: int = 22) -> FakeTransport:
        for transport in self.transports:
            if (transport.sock.host, transport.sock.port) == (host, port):
                return transport
        raise KeyError((host, port))

    def install(self, monkeypatch: Any) -> None:
        monkeypatch.setattr(tunnel, "_open_socket", self.open_socket)
        monkeypatch.setattr(tunnel, "_new_transport", self.new_transport)


# ── Mock runner (API tests) ──────────────────────────────────────────────


class MockSSHRunner:
    """Drop-in replacement for SSHRunner using canned results."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.aliases: list[str] = ["web", "db", "bastion"]
        self._results: dict[str, ExecResult] = {}
        self._errors: dict[str, Exception] = {}

    def add_result(self, command: str, result: ExecResult) -> None:
        self._results[command] = result

    def add_error(self, alias: str, exc: Exception) -> None:
        self._errors[alias] = exc

    async def run(
        self,
        alias: str,
        command: str,
        *,
        overrides: Any = None,
        timeout_ms: Optional[int] = None,
        config_path: Optional[str] = None,
    ) -> ExecResult:
        self.calls.append(
            {
                "alias": alias,
                "command": command,
                "overrides": overrides,
                "timeout_ms": timeout_ms,
                "config_path": config_path,
            },
        )
        if alias in self._errors:
            raise self._errors[alias]
        return self._results.get(command, ExecResult(exit_code=0))

    async def list_hosts(self, config_path: Optional[str] = None) -> list[str]:
        return list(self.aliases)

    async def close(self) -> None:
        pass
