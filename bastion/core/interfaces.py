"""Protocols for the collaborators the bastion workflow depends on.

The workflow talks to boto3 and the Kubernetes client only through these
protocols.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class ClusterNode:
    """A cluster node as reported by the control plane.

    Attributes
    ----------
    address : str
        First address reported in the node status
    provider_id : str
        Provider-assigned identifier string (e.g., "aws:///eu-west-1a/i-0abc")
    """

    address: str
    provider_id: str


@dataclass(frozen=True)
class InstanceDetails:
    """Typed subset of a provider instance description.

    Attributes
    ----------
    instance_id : str
        Provider instance identifier
    state : str
        Lifecycle state name (pending, running, ...)
    addresses : list[str]
        Every address reported for the instance, public addresses first
    """

    instance_id: str
    state: str
    addresses: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class LaunchSpec:
    """Parameters for launching a bastion instance."""

    name: str
    image_id: str
    instance_type: str
    key_name: str
    security_group_id: str
    subnet_id: str
    user_data_file: Path
    instance_profile: str | None = None


class NodeDirectory(Protocol):
    """Read access to the nodes of the target cluster."""

    def list_nodes(self) -> list[ClusterNode]:
        """Return every node of the cluster."""
        ...


class CloudProvider(Protocol):
    """Cloud compute and network operations used by the bastion workflow.

    Every method raises ``ProviderAPIError`` on a failed provider call.
    """

    region: str

    def find_security_group(self, vpc_id: str, name: str) -> str:
        """Return the ID of the group named ``name`` in ``vpc_id`` or ""."""
        ...

    def create_security_group(self, vpc_id: str, name: str, description: str) -> str:
        """Create a security group and return its ID."""
        ...

    def authorize_ssh_ingress(self, group_id: str, cidr: str) -> None:
        """Allow inbound TCP/22 from ``cidr``."""
        ...

    def revoke_ssh_ingress(self, group_id: str, cidr: str) -> None:
        """Remove the inbound TCP/22 rule for ``cidr``."""
        ...

    def delete_security_group(self, group_id: str) -> None:
        """Delete a security group."""
        ...

    def find_running_instances(self, vpc_id: str, name: str) -> list[str]:
        """Return IDs of running instances tagged ``Name=name`` in ``vpc_id``."""
        ...

    def run_instance(self, spec: LaunchSpec) -> str:
        """Launch one instance and return its ID."""
        ...

    def get_instance_state(self, instance_id: str) -> str:
        """Return the lifecycle state name of an instance."""
        ...

    def describe_instance(self, instance_id: str) -> InstanceDetails:
        """Return the full details of an instance."""
        ...

    def terminate_instance(self, instance_id: str) -> None:
        """Request termination of an instance."""
        ...

    def get_image_id_for_private_ip(self, private_ip: str) -> str | None:
        """Return the image ID of the instance owning ``private_ip``, if any."""
        ...
