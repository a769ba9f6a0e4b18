"""Command line entry point."""

from __future__ import annotations

from bastion.cli.main import main

__all__ = ["main"]
