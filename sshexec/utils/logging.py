"""Structured logging built on structlog.

Modules call ``get_logger(__name__)`` and emit dotted event names with
keyword context, e.g. ``log.info("ssh.connecting", host=host, port=port)``.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from sshexec.config import settings


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog (and stdlib logging for paramiko) once at startup."""
    level_name = (level or settings.sshexec_log_level).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    use_json = settings.sshexec_log_json if json_output is None else json_output

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)
    # paramiko is chatty at INFO (one line per kex / auth step)
    logging.getLogger("paramiko").setLevel(max(log_level, logging.WARNING))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if use_json:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)
