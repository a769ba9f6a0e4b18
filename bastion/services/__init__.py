"""Cluster and SSH services used by the bastion workflow."""

from __future__ import annotations

from bastion.services.nodes import KubernetesNodeDirectory
from bastion.services.ssh import SessionRunner, check_port_reachable, load_public_key

__all__ = [
    "KubernetesNodeDirectory",
    "SessionRunner",
    "check_port_reachable",
    "load_public_key",
]
