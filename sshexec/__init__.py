"""Run one command on an SSH host alias and capture its output."""

__version__ = "0.1.0"
