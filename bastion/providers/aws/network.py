"""Security group management for bastion hosts."""

import logging
import time
from typing import Any

from botocore.exceptions import ClientError

from bastion.constants import DEFAULT_SSH_PORT, SSH_ALLOWED_CIDR_DEFAULT
from bastion.providers.aws.constants import (
    SECURITY_GROUP_DELETE_MAX_ATTEMPTS,
    SECURITY_GROUP_IN_USE_CODES,
)
from bastion.providers.aws.errors import handle_aws_errors
from bastion.providers.exceptions import ProviderAPIError

logger = logging.getLogger(__name__)


def _ssh_permission(cidr: str) -> list[dict[str, Any]]:
    return [
        {
            "IpProtocol": "tcp",
            "FromPort": DEFAULT_SSH_PORT,
            "ToPort": DEFAULT_SSH_PORT,
            "IpRanges": [{"CidrIp": cidr}],
        }
    ]


def delete_security_group_with_retry(
    ec2_client: Any,
    sg_id: str,
    max_attempts: int = SECURITY_GROUP_DELETE_MAX_ATTEMPTS,
) -> bool:
    """Delete a security group, retrying while it is still in use.

    A group referenced by a terminating instance cannot be deleted until the
    instance is gone, so ``DependencyViolation`` and ``InvalidGroup.InUse`` are
    retried with exponential backoff. A group that no longer exists counts as
    deleted.

    Parameters
    ----------
    ec2_client : Any
        Boto3 EC2 client
    sg_id : str
        Security group ID
    max_attempts : int
        Maximum number of delete attempts

    Returns
    -------
    bool
        True if the group is gone, False if it was still in use after all attempts

    Raises
    ------
    ClientError
        For any error other than not-found or in-use
    """
    for attempt in range(max_attempts):
        try:
            ec2_client.delete_security_group(GroupId=sg_id)
            logger.debug("Deleted security group %s", sg_id)
            return True
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")

            if error_code == "InvalidGroup.NotFound":
                logger.debug("Security group %s already deleted", sg_id)
                return True

            if error_code not in SECURITY_GROUP_IN_USE_CODES:
                raise

            if attempt == max_attempts - 1:
                break

            delay = 2**attempt
            logger.warning(
                "Security group %s still in use (%s), retrying in %ss (attempt %d/%d)",
                sg_id,
                error_code,
                delay,
                attempt + 1,
                max_attempts,
            )
            time.sleep(delay)

    logger.error(
        "Failed to delete security group %s after %d attempts", sg_id, max_attempts
    )
    return False


class NetworkManager:
    """Manage EC2 security groups and their SSH ingress rules."""

    def __init__(self, ec2_client: Any, region: str) -> None:
        """Initialize NetworkManager.

        Parameters
        ----------
        ec2_client : Any
            Boto3 EC2 client
        region : str
            AWS region name
        """
        self.ec2_client = ec2_client
        self.region = region

    def find_security_group(self, vpc_id: str, name: str) -> str:
        """Look up a security group by VPC and name.

        Parameters
        ----------
        vpc_id : str
            VPC to search in
        name : str
            Security group name

        Returns
        -------
        str
            Security group ID, or "" if no group matches
        """
        with handle_aws_errors():
            response = self.ec2_client.describe_security_groups(
                Filters=[
                    {"Name": "vpc-id", "Values": [vpc_id]},
                    {"Name": "group-name", "Values": [name]},
                ]
            )

        groups = response.get("SecurityGroups", [])
        if not groups:
            return ""

        return groups[0]["GroupId"]

    def create_security_group(self, vpc_id: str, name: str, description: str) -> str:
        """Create a security group.

        Parameters
        ----------
        vpc_id : str
            VPC for the security group
        name : str
            Security group name
        description : str
            Security group description

        Returns
        -------
        str
            Security group ID
        """
        with handle_aws_errors():
            response = self.ec2_client.create_security_group(
                GroupName=name,
                Description=description,
                VpcId=vpc_id,
            )

        return response["GroupId"]

    def authorize_ssh_ingress(self, group_id: str, cidr: str) -> None:
        """Allow inbound TCP/22 from a CIDR block.

        Parameters
        ----------
        group_id : str
            Security group ID
        cidr : str
            Source CIDR block

        Raises
        ------
        ProviderAPIError
            If the call fails, including ``InvalidPermission.Duplicate`` when
            the rule already exists
        """
        if cidr == SSH_ALLOWED_CIDR_DEFAULT:
            logger.warning(
                "Opening SSH on %s to all IPs (0.0.0.0/0) for the duration of the session",
                group_id,
            )

        with handle_aws_errors():
            self.ec2_client.authorize_security_group_ingress(
                GroupId=group_id, IpPermissions=_ssh_permission(cidr)
            )

    def revoke_ssh_ingress(self, group_id: str, cidr: str) -> None:
        """Remove the inbound TCP/22 rule for a CIDR block.

        Parameters
        ----------
        group_id : str
            Security group ID
        cidr : str
            Source CIDR block
        """
        with handle_aws_errors():
            self.ec2_client.revoke_security_group_ingress(
                GroupId=group_id, IpPermissions=_ssh_permission(cidr)
            )

    def delete_security_group(self, group_id: str) -> None:
        """Delete a security group, tolerating a group that is already gone.

        Parameters
        ----------
        group_id : str
            Security group ID

        Raises
        ------
        ProviderAPIError
            If deletion fails or the group stays in use after all retries
        """
        with handle_aws_errors():
            deleted = delete_security_group_with_retry(self.ec2_client, group_id)

        if not deleted:
            raise ProviderAPIError(
                message=f"Security group {group_id} is still in use",
                error_code="DependencyViolation",
            )
