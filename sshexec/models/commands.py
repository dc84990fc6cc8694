"""Command-related data structures."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class ExecResult(BaseModel):
    """Captured output of one remote command.

    ``exit_code`` is None when the process died by signal or the channel
    closed without reporting a status.
    """

    stdout: bytes = b""
    stderr: bytes = b""
    exit_code: Optional[int] = None

    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")
