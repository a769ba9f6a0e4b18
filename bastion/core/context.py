"""Per-invocation record threaded through the bastion workflow."""

from __future__ import annotations

from dataclasses import dataclass

from bastion.utils import (
    bastion_instance_name,
    bastion_security_group_name,
    key_pair_name,
    node_security_group_name,
)


@dataclass
class BastionContext:
    """Mutable descriptor of one bastion session.

    Identifier fields hold "" until the corresponding value has been resolved
    or the resource has been confirmed to exist. Names are derived from the
    cluster name only, so re-running the workflow discovers resources left by
    a previous run instead of duplicating them.
    """

    cluster_name: str
    node_private_ip: str = ""
    target_instance_id: str = ""
    node_security_group_id: str = ""
    node_security_group_name: str = ""
    bastion_security_group_id: str = ""
    bastion_security_group_name: str = ""
    bastion_instance_name: str = ""
    bastion_instance_id: str = ""
    bastion_public_address: str = ""
    image_id: str = ""
    key_name: str = ""
    vpc_id: str = ""
    subnet_id: str = ""
    instance_profile: str = ""
    user_data: bytes = b""
    ssh_public_key: bytes = b""

    @classmethod
    def for_cluster(cls, cluster_name: str) -> BastionContext:
        """Create a context with every deterministic name filled in.

        Parameters
        ----------
        cluster_name : str
            Target cluster name

        Returns
        -------
        BastionContext
            Fresh context without any resolved identifier
        """
        if not cluster_name:
            raise ValueError("cluster name is required")

        return cls(
            cluster_name=cluster_name,
            node_security_group_name=node_security_group_name(cluster_name),
            bastion_security_group_name=bastion_security_group_name(cluster_name),
            bastion_instance_name=bastion_instance_name(cluster_name),
            key_name=key_pair_name(cluster_name),
            instance_profile=bastion_instance_name(cluster_name),
        )
