"""Shared pytest fixtures."""

from __future__ import annotations

import os
import textwrap

# Force settings to use test-safe defaults before any import
os.environ.setdefault("SSHEXEC_API_KEY", "")
os.environ.setdefault("SSHEXEC_SSH_CONFIG_PATH", "/nonexistent/ssh_config")
os.environ.setdefault("SSHEXEC_DEFAULT_TIMEOUT_MS", "0")

import paramiko
import pytest
from httpx import ASGITransport, AsyncClient

from tests.mock_ssh import FakeNetwork, MockSSHRunner


@pytest.fixture(scope="session")
def host_key():
    """Key the fake servers present during the handshake."""
    return paramiko.RSAKey.generate(2048)


@pytest.fixture(scope="session")
def client_key():
    return paramiko.RSAKey.generate(2048)


@pytest.fixture
def identity_file(tmp_path, client_key):
    """A real unencrypted RSA private key on disk."""
    path = tmp_path / "id_rsa"
    client_key.write_private_key_file(str(path))
    return path


@pytest.fixture
def write_config(tmp_path):
    """Write an ssh_config into the temp dir and return its path."""

    def _write(text: str, name: str = "ssh_config"):
        path = tmp_path / name
        path.write_text(textwrap.dedent(text).lstrip(), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def network(monkeypatch):
    """In-memory SSH servers wired into the tunnel module."""
    net = FakeNetwork()
    net.install(monkeypatch)
    monkeypatch.delenv("SSH_AUTH_SOCK", raising=False)
    return net


@pytest.fixture
def mock_runner():
    """Provide a fresh MockSSHRunner."""
    return MockSSHRunner()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def client(mock_runner, monkeypatch):
    """Async test client with the mock runner injected."""
    monkeypatch.setattr("sshexec.config.settings.sshexec_api_key", "")

    import sshexec.routers.run as rx
    import sshexec.routers.health as rh
    import sshexec.services.ssh_runner as runner_mod

    monkeypatch.setattr(runner_mod, "ssh_runner", mock_runner)
    monkeypatch.setattr(rh, "ssh_runner", mock_runner)
    monkeypatch.setattr(rx, "ssh_runner", mock_runner)

    from sshexec.main import app as fastapi_app

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
