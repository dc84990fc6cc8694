"""Common API request / response models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from sshexec.models.commands import ExecResult


class HealthResponse(BaseModel):
    status: str
    version: str


class HostsResponse(BaseModel):
    config_path: str
    aliases: list[str]


class ExecRequest(BaseModel):
    alias: str = Field(min_length=1)
    command: str = Field(min_length=1)
    sudo: bool = False
    timeout_ms: Optional[int] = Field(default=None, ge=0)
    config_path: Optional[str] = None
    username: Optional[str] = None
    identity_file: Optional[str] = None
    insecure_accept_unknown_host_keys: Optional[bool] = None
    passphrase: Optional[str] = Field(default=None, repr=False)
    password: Optional[str] = Field(default=None, repr=False)

    def full_command(self) -> str:
        if self.sudo:
            return f"sudo {self.command}"
        return self.command


class ExecResponse(BaseModel):
    alias: str
    command: str
    stdout: str
    stderr: str
    exit_code: Optional[int] = None

    @classmethod
    def from_result(cls, alias: str, command: str, result: ExecResult) -> ExecResponse:
        return cls(
            alias=alias,
            command=command,
            stdout=result.stdout_text(),
            stderr=result.stderr_text(),
            exit_code=result.exit_code,
        )


class ErrorResponse(BaseModel):
    detail: str
    error: Optional[str] = None
