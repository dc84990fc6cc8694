"""FastAPI application entry-point."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sshexec import __version__
from sshexec.models.responses import ErrorResponse
from sshexec.routers import run
from sshexec.routers import health
from sshexec.services.ssh_runner import ssh_runner
from sshexec.services.errors import SSHExecError
from sshexec.utils.logging import get_logger, setup_logging

log = get_logger(__name__)

ERROR_STATUS: dict[str, int] = {
    "alias_not_found": 404,
    "hop_not_found": 404,
    "config_unreadable": 422,
    "missing_host_name": 422,
    "hop_missing_host_name": 422,
    "identity_unreadable": 422,
    "unsupported_proxy": 422,
    "handshake_failed": 502,
    "host_key_rejected": 502,
    "auth_failed": 502,
    "exec_failed": 502,
    "timeout": 504,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hooks."""
    setup_logging()
    yield
    # Shutdown: stop the SSH worker pool
    await ssh_runner.close()


app = FastAPI(
    title="sshexec",
    description="Run single commands on OpenSSH config aliases",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(SSHExecError)
async def ssh_error_handler(request: Request, exc: SSHExecError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.code, 500)
    log.info("api.ssh_error", path=request.url.path, error=exc.code, status=status_code)
    body = ErrorResponse(detail=str(exc), error=exc.code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


app.include_router(health.router)
app.include_router(run.router)
