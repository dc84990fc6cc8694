"""Utilities for parsing OpenSSH client config text.

Only the subset needed to reach one host is understood: exact ``Host``
patterns, first matching block wins, and a handful of keywords. Wildcards,
``Match`` and ``Include`` are not supported.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from sshexec.models.host import HostEntry


# ---------------------------------------------------------------------------
# Line-level helpers
# ---------------------------------------------------------------------------

# "Key value", "Key=value" and "Key = value" are all accepted
_KEY_VALUE_RE = re.compile(r"^([^\s=]+)(?:\s*=\s*|\s+)(.*)$")
_TOKEN_RE = re.compile(r'"([^"]*)"|(\S+)')
_WILDCARD_CHARS = ("*", "?", "!")


def _strip_inline_comment(value: str) -> str:
    """Drop a trailing ``# ...`` that is not inside double quotes."""
    in_quotes = False
    for idx, ch in enumerate(value):
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "#" and not in_quotes:
            return value[:idx].rstrip()
    return value


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1]
    return value


def _split_key_value(line: str) -> Optional[tuple[str, str]]:
    m = _KEY_VALUE_RE.match(line)
    if not m:
        return None
    value = _unquote(_strip_inline_comment(m.group(2).strip()))
    return m.group(1), value


def tokenize(command: str) -> list[str]:
    """Whitespace split that keeps simple ``"..."`` substrings together."""
    return [
        m.group(1) if m.group(1) is not None else m.group(2)
        for m in _TOKEN_RE.finditer(command)
    ]


# ---------------------------------------------------------------------------
# ProxyCommand heuristic
# ---------------------------------------------------------------------------

def parse_port(value: str) -> Optional[int]:
    """Return *value* as a TCP port, or None if it is not one."""
    if not value.isascii() or not value.isdigit():
        return None
    port = int(value)
    if not 1 <= port <= 65535:
        return None
    return port


def parse_proxy_command(raw: str) -> tuple[Optional[str], Optional[str]]:
    """Recognize ``ssh -W %h:%p <dest> [-i <key>] ...``.

    Returns ``(jump_destination, identity_file)``; ``(None, None)`` for any
    other command.
    """
    tokens = tokenize(raw)
    if not tokens:
        return None, None
    program = tokens[0]
    if program != "ssh" and not program.endswith("/ssh"):
        return None, None

    destination: Optional[str] = None
    for idx, tok in enumerate(tokens[:-2]):
        if tok == "-W" and tokens[idx + 1] == "%h:%p":
            destination = tokens[idx + 2]
            break
    if destination is None or destination.startswith("-"):
        return None, None

    identity: Optional[str] = None
    for idx, tok in enumerate(tokens[:-1]):
        if tok == "-i":
            identity = tokens[idx + 1]
            break
    return destination, identity


# ---------------------------------------------------------------------------
# Host block state machine
# ---------------------------------------------------------------------------

class ParserState(Enum):
    SCANNING = "scanning"
    IN_CANDIDATE_BLOCK = "in_candidate_block"
    COMMITTED = "committed"


@dataclass
class HostBlock:
    """One ``Host`` line and the key/value pairs read beneath it."""

    patterns: list[str]
    pairs: list[tuple[str, str]] = field(default_factory=list)


def find_host_block(config_text: str, alias: str) -> Optional[HostBlock]:
    """Return the first non-empty ``Host`` block whose patterns include *alias*."""
    state = ParserState.SCANNING
    blocks: list[HostBlock] = []

    for raw_line in config_text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        parsed = _split_key_value(line)
        if parsed is None:
            continue
        key, value = parsed
        key = key.lower()

        if key == "host":
            if state is ParserState.COMMITTED:
                # the found block ends here; later matching blocks are ignored
                break
            patterns = value.split()
            blocks.append(HostBlock(patterns=patterns))
            if alias in patterns:
                state = ParserState.IN_CANDIDATE_BLOCK
            else:
                state = ParserState.SCANNING
            continue

        if state is ParserState.SCANNING:
            continue
        blocks[-1].pairs.append((key, value))
        state = ParserState.COMMITTED

    if state is not ParserState.COMMITTED:
        return None
    return blocks[-1]


def _entry_from_block(alias: str, block: HostBlock) -> HostEntry:
    fields: dict[str, Any] = {"alias": alias, "identity_files": []}

    for key, value in block.pairs:
        if key == "hostname":
            fields["host_name"] = value
        elif key == "user":
            fields["user"] = value
        elif key == "port":
            port = parse_port(value)
            if port is not None:
                fields["port"] = port
        elif key == "identityfile":
            fields["identity_files"].append(value)
        elif key == "stricthostkeychecking":
            fields["strict_host_key_checking"] = value.lower()
        elif key == "userknownhostsfile":
            # several files may be listed; the first one is consulted
            files = tokenize(value)
            if files:
                fields["user_known_hosts_file"] = files[0]
        elif key == "proxyjump":
            if value.lower() != "none":
                fields["proxy_jump"] = value
        elif key == "proxycommand":
            if value.lower() == "none":
                continue
            fields["proxy_command_raw"] = value
            destination, identity = parse_proxy_command(value)
            if destination:
                fields["proxy_jump"] = destination
                if identity:
                    fields["proxy_jump_identity_file"] = identity

    return HostEntry(**fields)


def parse_host_entry(config_text: str, alias: str) -> Optional[HostEntry]:
    """Parse *config_text* for *alias*; None means no block matched."""
    block = find_host_block(config_text, alias)
    if block is None:
        return None
    return _entry_from_block(alias, block)


def list_host_aliases(config_text: str) -> list[str]:
    """All literal aliases declared on ``Host`` lines, in file order."""
    aliases: list[str] = []
    for raw_line in config_text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        parsed = _split_key_value(line)
        if parsed is None or parsed[0].lower() != "host":
            continue
        for pattern in parsed[1].split():
            if any(ch in pattern for ch in _WILDCARD_CHARS):
                continue
            if pattern not in aliases:
                aliases.append(pattern)
    return aliases
