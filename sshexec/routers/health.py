"""Health-check and host listing endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from sshexec import __version__
from sshexec.auth import require_api_key
from sshexec.config import settings
from sshexec.models.responses import HealthResponse, HostsResponse
from sshexec.services.ssh_runner import ssh_runner

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def service_health() -> HealthResponse:
    """Basic liveness probe (no auth required)."""
    return HealthResponse(status="ok", version=__version__)


@router.get(
    "/hosts",
    response_model=HostsResponse,
    dependencies=[Depends(require_api_key)],
)
async def list_hosts(config_path: Optional[str] = None) -> HostsResponse:
    """Aliases declared by literal ``Host`` lines in the SSH config."""
    aliases = await ssh_runner.list_hosts(config_path)
    return HostsResponse(
        config_path=str(settings.ssh_config_file(config_path)),
        aliases=aliases,
    )
