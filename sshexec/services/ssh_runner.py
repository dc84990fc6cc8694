"""Per-call SSH pipeline: config -> host entry -> plan -> session -> exec.

paramiko is blocking, so each call runs inside a thread-pool executor and
the FastAPI event loop is never blocked. Calls share nothing: the config
file is re-read and every socket, session and countdown belongs to one call.
"""

from __future__ import annotations

import asyncio
import functools
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from sshexec.config import Settings, settings
from sshexec.models.commands import ExecResult
from sshexec.models.host import Overrides
from sshexec.services import tunnel
from sshexec.services.errors import (
    AliasNotFoundError,
    CommandTimeoutError,
    ConfigUnreadableError,
    SSHExecError,
)
from sshexec.services.executor import Countdown, execute
from sshexec.services.resolver import resolve_plan
from sshexec.utils.logging import get_logger
from sshexec.utils.ssh_config import list_host_aliases, parse_host_entry

log = get_logger(__name__)


def read_ssh_config(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigUnreadableError(f"Cannot read SSH config {str(path)!r}: {exc}") from exc


class SSHRunner:
    """Runs single commands against SSH config aliases."""

    def __init__(self, cfg: Settings | None = None) -> None:
        self._cfg = cfg or settings
        self._executor = ThreadPoolExecutor(
            max_workers=self._cfg.sshexec_max_workers,
            thread_name_prefix="ssh",
        )

    # ── sync pipeline (runs in a worker thread) ───────────────────────

    def run_sync(
        self,
        alias: str,
        command: str,
        *,
        overrides: Optional[Overrides] = None,
        timeout_ms: Optional[int] = None,
        config_path: Optional[str] = None,
    ) -> ExecResult:
        if timeout_ms is None:
            timeout_ms = self._cfg.sshexec_default_timeout_ms
        countdown = Countdown(timeout_ms).start()
        started = time.monotonic()
        log.info("ssh.run", alias=alias, timeout_ms=timeout_ms)

        try:
            path = self._cfg.ssh_config_file(config_path)
            config_text = read_ssh_config(path)
            entry = parse_host_entry(config_text, alias)
            if entry is None:
                raise AliasNotFoundError(
                    f"No Host block for {alias!r} in {str(path)!r}", alias=alias,
                )
            plan = resolve_plan(entry, overrides)

            with tunnel.LiveSession() as session:
                countdown.attach(session)
                tunnel.connect(
                    plan,
                    entry,
                    config_text,
                    overrides,
                    session=session,
                    timeout=self._cfg.sshexec_connect_timeout_seconds,
                )
                result = execute(session, command, countdown=countdown)
        except CommandTimeoutError as exc:
            exc.alias = exc.alias or alias
            raise
        except Exception as exc:
            # closing the session under a blocked handshake surfaces as a
            # transport error; the countdown is the real cause
            if countdown.expired:
                raise CommandTimeoutError(
                    f"SSH command timed out after {timeout_ms}ms: {command!r}",
                    alias=alias,
                    timeout_ms=timeout_ms,
                ) from exc
            if isinstance(exc, SSHExecError):
                exc.alias = exc.alias or alias
                log.warning("ssh.run_failed", alias=alias, error=exc.code, detail=str(exc))
            raise
        finally:
            countdown.cancel()

        log.info(
            "ssh.run_done",
            alias=alias,
            exit_code=result.exit_code,
            elapsed=round(time.monotonic() - started, 3),
        )
        return result

    def list_hosts_sync(self, config_path: Optional[str] = None) -> list[str]:
        return list_host_aliases(read_ssh_config(self._cfg.ssh_config_file(config_path)))

    # ── helpers ───────────────────────────────────────────────────────

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor, functools.partial(fn, *args, **kwargs),
        )

    # ── public ────────────────────────────────────────────────────────

    async def run(
        self,
        alias: str,
        command: str,
        *,
        overrides: Optional[Overrides] = None,
        timeout_ms: Optional[int] = None,
        config_path: Optional[str] = None,
    ) -> ExecResult:
        """Run *command* on *alias* and return its captured output."""
        return await self._run(
            self.run_sync,
            alias,
            command,
            overrides=overrides,
            timeout_ms=timeout_ms,
            config_path=config_path,
        )

    async def list_hosts(self, config_path: Optional[str] = None) -> list[str]:
        return await self._run(self.list_hosts_sync, config_path)

    async def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


# ── Singleton instance ────────────────────────────────────────────────────

ssh_runner = SSHRunner()
