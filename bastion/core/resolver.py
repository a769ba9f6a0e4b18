"""Resolution of every identifier needed before provisioning."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from bastion.constants import DEFAULT_SSH_USERNAME
from bastion.core.context import BastionContext
from bastion.core.exceptions import ResolutionError
from bastion.core.interfaces import CloudProvider, NodeDirectory
from bastion.core.terraform import InfrastructureOutputs, read_infrastructure_outputs
from bastion.utils import build_user_data, extract_instance_id

logger = logging.getLogger(__name__)


def find_instance_id_for_ip(node_directory: NodeDirectory, ip: str) -> str:
    """Find the provider instance ID of the node whose first address is ``ip``.

    Parameters
    ----------
    node_directory : NodeDirectory
        Source of cluster nodes
    ip : str
        Private IP address of the target node

    Returns
    -------
    str
        Instance ID, or "" if no node matches
    """
    for node in node_directory.list_nodes():
        if node.address == ip:
            return extract_instance_id(node.provider_id)
    return ""


class AttributeResolver:
    """Populate a BastionContext from the cluster and its infrastructure state.

    Parameters
    ----------
    cloud_provider : CloudProvider
        Provider used for security group and image lookups
    node_directory : NodeDirectory
        Source of cluster nodes
    ssh_username : str
        User created on the bastion by the user-data script
    state_reader : Callable[[str | Path], InfrastructureOutputs]
        Reader for the infrastructure state (injectable for tests)
    """

    def __init__(
        self,
        cloud_provider: CloudProvider,
        node_directory: NodeDirectory,
        ssh_username: str = DEFAULT_SSH_USERNAME,
        state_reader: Callable[[str | Path], InfrastructureOutputs] = read_infrastructure_outputs,
    ) -> None:
        self.cloud_provider = cloud_provider
        self.node_directory = node_directory
        self.ssh_username = ssh_username
        self.state_reader = state_reader

    def resolve(self, context: BastionContext, node_ip: str, state_path: str | Path) -> None:
        """Resolve identifiers and payloads into ``context``.

        Nothing is created in the cloud here, so a failure leaves nothing to
        clean up.

        Parameters
        ----------
        context : BastionContext
            Fresh context for the target cluster; ``ssh_public_key`` must be set
        node_ip : str
            Private IP address of the target node
        state_path : str | Path
            Path to the infrastructure Terraform state

        Raises
        ------
        ResolutionError
            If the node, its security group or its image cannot be found
        InfrastructureStateError
            If the infrastructure state is unusable
        """
        context.node_private_ip = node_ip

        context.target_instance_id = find_instance_id_for_ip(self.node_directory, node_ip)
        if not context.target_instance_id:
            raise ResolutionError(
                f"No node of cluster '{context.cluster_name}' has address {node_ip}"
            )
        logger.debug("Node %s is instance %s", node_ip, context.target_instance_id)

        outputs = self.state_reader(state_path)
        context.vpc_id = outputs.vpc_id
        context.subnet_id = outputs.subnet_id

        context.node_security_group_id = self.cloud_provider.find_security_group(
            context.vpc_id, context.node_security_group_name
        )
        if not context.node_security_group_id:
            raise ResolutionError(
                f"Security group '{context.node_security_group_name}' not found "
                f"in VPC {context.vpc_id}"
            )

        context.image_id = self.fetch_image_id(node_ip)

        if not context.ssh_public_key:
            raise ResolutionError("No SSH public key available for the bastion")
        context.user_data = build_user_data(context.ssh_public_key, self.ssh_username)

    def fetch_image_id(self, private_ip: str) -> str:
        """Return the image ID of the instance owning ``private_ip``.

        Raises
        ------
        ResolutionError
            If the provider knows no such instance
        """
        image_id = self.cloud_provider.get_image_id_for_private_ip(private_ip)

        if not image_id or image_id == "None":
            raise ResolutionError(
                f"Could not fetch image ID (AMI) of instance with private IP address {private_ip}"
            )

        return image_id
