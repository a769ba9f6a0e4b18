"""AMI lookup for bastion instances."""

import logging
from typing import Any

from bastion.providers.aws.errors import handle_aws_errors

logger = logging.getLogger(__name__)


class AMIResolver:
    """Resolve the AMI a bastion should boot from."""

    def __init__(self, ec2_client: Any, region: str) -> None:
        """Initialize AMIResolver.

        Parameters
        ----------
        ec2_client : Any
            Boto3 EC2 client
        region : str
            AWS region name
        """
        self.ec2_client = ec2_client
        self.region = region

    def get_image_id_for_private_ip(self, private_ip: str) -> str | None:
        """Return the AMI of the instance that owns a private IP address.

        Parameters
        ----------
        private_ip : str
            Private IP address of a cluster node

        Returns
        -------
        str | None
            AMI ID, or None if no instance owns the address
        """
        with handle_aws_errors():
            response = self.ec2_client.describe_instances(
                Filters=[{"Name": "private-ip-address", "Values": [private_ip]}]
            )

        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                image_id = instance.get("ImageId")
                if image_id:
                    return image_id

        logger.debug("No instance with private IP %s in %s", private_ip, self.region)
        return None
