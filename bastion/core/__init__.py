"""Core bastion workflow."""

from __future__ import annotations

from bastion.core.interfaces import CloudProvider, NodeDirectory
from bastion.core.signals import (
    get_cleanup_instance,
    set_cleanup_instance,
    setup_signal_handlers,
)

__all__ = [
    "CloudProvider",
    "NodeDirectory",
    "setup_signal_handlers",
    "set_cleanup_instance",
    "get_cleanup_instance",
]
