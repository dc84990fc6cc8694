"""Run one command on a live session and capture its output."""

from __future__ import annotations

import threading
import time
from typing import Optional

import paramiko

from sshexec.models.commands import ExecResult
from sshexec.services.errors import (
    CommandTimeoutError,
    ExecFailedError,
    HandshakeFailedError,
)
from sshexec.services.tunnel import LiveSession
from sshexec.utils.logging import get_logger

log = get_logger(__name__)

_CHUNK = 32768
_POLL_INTERVAL = 0.05


class Countdown:
    """Force-closes the attached session once *timeout_ms* has elapsed.

    A timeout of 0 or None never fires. The countdown may be started before
    a session exists; attaching after expiry closes the session at once.
    """

    def __init__(self, timeout_ms: Optional[int]) -> None:
        self.timeout_ms = timeout_ms or 0
        self._expired = threading.Event()
        self._timer: Optional[threading.Timer] = None
        self._session: Optional[LiveSession] = None
        self._lock = threading.Lock()

    @property
    def expired(self) -> bool:
        return self._expired.is_set()

    def start(self) -> Countdown:
        if self.timeout_ms > 0 and self._timer is None:
            self._timer = threading.Timer(self.timeout_ms / 1000.0, self._expire)
            self._timer.daemon = True
            self._timer.start()
        return self

    def attach(self, session: LiveSession) -> None:
        with self._lock:
            self._session = session
        if self.expired:
            session.close()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

    def _expire(self) -> None:
        self._expired.set()
        with self._lock:
            session = self._session
        log.warning("ssh.timeout", timeout_ms=self.timeout_ms)
        if session is not None:
            session.close()

    def error(self, command: str) -> CommandTimeoutError:
        return CommandTimeoutError(
            f"SSH command timed out after {self.timeout_ms}ms: {command!r}",
            timeout_ms=self.timeout_ms,
        )


def _open_exec_channel(session: LiveSession, command: str) -> paramiko.Channel:
    transport = session.transport
    if transport is None or not transport.is_active():
        raise ExecFailedError("Transport is no longer active")
    try:
        channel = transport.open_session()
        session.register("target.exec", channel)
        channel.exec_command(command)
    except (paramiko.SSHException, OSError, EOFError, HandshakeFailedError) as exc:
        raise ExecFailedError(f"Remote side refused {command!r}: {exc}") from exc
    return channel


def execute(
    session: LiveSession,
    command: str,
    timeout_ms: Optional[int] = None,
    *,
    countdown: Optional[Countdown] = None,
) -> ExecResult:
    """Execute *command* verbatim and wait for its channel to close.

    stdout and stderr are collected separately; their relative interleaving
    is not kept. On timeout the whole session (target and hop) is closed and
    no output is returned.
    """
    own_countdown = countdown is None
    if countdown is None:
        countdown = Countdown(timeout_ms).start()
    countdown.attach(session)
    started = time.monotonic()

    try:
        try:
            channel = _open_exec_channel(session, command)
        except ExecFailedError:
            if countdown.expired:
                raise countdown.error(command) from None
            session.close()
            raise

        channel.shutdown_write()
        stdout = bytearray()
        stderr = bytearray()

        while not countdown.expired:
            progressed = False
            if channel.recv_ready():
                stdout.extend(channel.recv(_CHUNK))
                progressed = True
            if channel.recv_stderr_ready():
                stderr.extend(channel.recv_stderr(_CHUNK))
                progressed = True
            if progressed:
                continue
            # close arrives after the last data; buffers stay readable past it
            if channel.closed and not channel.recv_ready() and not channel.recv_stderr_ready():
                break
            if channel.status_event.is_set():
                # exit status already in; waiting for the close message
                time.sleep(_POLL_INTERVAL)
            else:
                channel.status_event.wait(_POLL_INTERVAL)

        if countdown.expired:
            session.close()
            raise countdown.error(command)

        # paramiko leaves -1 when no exit-status arrived (signal / dropped link)
        status = channel.exit_status
        exit_code = None if status == -1 else status
        log.info(
            "ssh.exec_done",
            exit_code=exit_code,
            stdout_bytes=len(stdout),
            stderr_bytes=len(stderr),
            elapsed=round(time.monotonic() - started, 3),
        )
        return ExecResult(stdout=bytes(stdout), stderr=bytes(stderr), exit_code=exit_code)
    finally:
        if own_countdown:
            countdown.cancel()
