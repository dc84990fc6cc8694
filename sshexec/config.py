"""Application settings loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is driven by environment variables."""

    # OpenSSH client config consulted for host aliases (re-read per call)
    sshexec_ssh_config_path: str = "~/.ssh/config"

    # Connection
    sshexec_connect_timeout_seconds: float = 15.0
    sshexec_default_timeout_ms: int = 0
    sshexec_max_workers: int = 4

    # API key
    sshexec_api_key: str = ""

    # Logging
    sshexec_log_level: str = "INFO"
    sshexec_log_json: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def ssh_config_file(self, override: str | None = None) -> Path:
        """Return the config path to read, ``~`` expanded."""
        return Path(override or self.sshexec_ssh_config_path).expanduser()


# Singleton – import this from anywhere
settings = Settings()
