"""Run one command on an SSH alias."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sshexec.auth import require_api_key
from sshexec.models.host import Overrides
from sshexec.models.responses import ErrorResponse, ExecRequest, ExecResponse
from sshexec.services.ssh_runner import ssh_runner

router = APIRouter(tags=["run"], dependencies=[Depends(require_api_key)])


@router.post(
    "/exec",
    response_model=ExecResponse,
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def run_command(req: ExecRequest) -> ExecResponse:
    """Execute the command; a non-zero exit code is still a 200."""
    command = req.full_command()
    overrides = Overrides(
        username=req.username,
        identity_file=req.identity_file,
        insecure_accept_unknown_host_keys=req.insecure_accept_unknown_host_keys,
        passphrase=req.passphrase,
        password=req.password,
    )
    result = await ssh_runner.run(
        req.alias,
        command,
        overrides=overrides,
        timeout_ms=req.timeout_ms,
        config_path=req.config_path,
    )
    return ExecResponse.from_result(req.alias, command, result)
