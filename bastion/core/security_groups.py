"""Security group setup for the bastion and the target node."""

from __future__ import annotations

import logging

from bastion.constants import SSH_ALLOWED_CIDR_DEFAULT
from bastion.core.context import BastionContext
from bastion.core.exceptions import ResolutionError
from bastion.core.interfaces import CloudProvider
from bastion.core.teardown import TeardownManager
from bastion.providers.aws.constants import SECURITY_GROUP_DESCRIPTION
from bastion.providers.exceptions import ProviderAPIError

logger = logging.getLogger(__name__)


class SecurityGroupManager:
    """Ensure the bastion security group and SSH ingress rules exist.

    Parameters
    ----------
    cloud_provider : CloudProvider
        Provider owning the security groups
    ssh_cidr : str
        Source CIDR allowed to reach port 22
    """

    def __init__(
        self, cloud_provider: CloudProvider, ssh_cidr: str = SSH_ALLOWED_CIDR_DEFAULT
    ) -> None:
        self.cloud_provider = cloud_provider
        self.ssh_cidr = ssh_cidr

    def ensure(self, context: BastionContext, teardown: TeardownManager) -> str:
        """Find or create the bastion group and open SSH on both groups.

        Parameters
        ----------
        context : BastionContext
            Context with ``vpc_id`` and ``node_security_group_id`` resolved;
            ``bastion_security_group_id`` is set on return
        teardown : TeardownManager
            Registry receiving the reversal of every confirmed resource

        Returns
        -------
        str
            Bastion security group ID

        Raises
        ------
        ResolutionError
            If the VPC or node security group is not resolved
        ProviderAPIError
            If a call fails for a reason other than "already exists"
        """
        if not context.vpc_id:
            raise ResolutionError("VPC ID is not resolved")
        if not context.node_security_group_id:
            raise ResolutionError("Node security group ID is not resolved")

        group_id = self.cloud_provider.find_security_group(
            context.vpc_id, context.bastion_security_group_name
        )

        if group_id:
            logger.info("Security group %s exists, skipping creation.", group_id)
            context.bastion_security_group_id = group_id
            teardown.register_security_group(group_id)
        else:
            group_id = self.cloud_provider.create_security_group(
                context.vpc_id,
                context.bastion_security_group_name,
                SECURITY_GROUP_DESCRIPTION,
            )
            context.bastion_security_group_id = group_id
            teardown.register_security_group(group_id)
            self._authorize(group_id)
            logger.info("Bastion host security group %s set up.", group_id)

        self._authorize(context.node_security_group_id)
        teardown.register_node_ingress(context.node_security_group_id)
        logger.info("Opened SSH port on node security group %s.", context.node_security_group_id)

        return group_id

    def _authorize(self, group_id: str) -> None:
        try:
            self.cloud_provider.authorize_ssh_ingress(group_id, self.ssh_cidr)
        except ProviderAPIError as e:
            if not e.is_conflict:
                raise
            logger.debug("SSH ingress on %s already present", group_id)
