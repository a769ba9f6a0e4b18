"""EC2 implementation of the cloud provider used by the bastion workflow."""

import logging
from collections.abc import Callable
from typing import Any

import boto3

from bastion.core.interfaces import InstanceDetails, LaunchSpec
from bastion.providers.aws.ami import AMIResolver
from bastion.providers.aws.errors import handle_aws_errors
from bastion.providers.aws.network import NetworkManager
from bastion.providers.aws.utils import (
    collect_instance_addresses,
    extract_instance_from_response,
)
from bastion.providers.exceptions import ProviderAPIError

logger = logging.getLogger(__name__)


class EC2Provider:
    """Run bastion operations against EC2 through boto3.

    Parameters
    ----------
    region : str
        AWS region name
    boto3_client_factory : Callable[..., Any] | None
        Factory creating boto3 clients (default: ``boto3.client``)
    """

    def __init__(
        self,
        region: str,
        boto3_client_factory: Callable[..., Any] | None = None,
    ) -> None:
        self.region = region
        self.boto3_client_factory = boto3_client_factory or boto3.client

        with handle_aws_errors():
            self.ec2_client = self.boto3_client_factory("ec2", region_name=region)

        self.ami_resolver = AMIResolver(self.ec2_client, region)
        self.network_manager = NetworkManager(self.ec2_client, region)

    def find_security_group(self, vpc_id: str, name: str) -> str:
        """Return the ID of the group named ``name`` in ``vpc_id`` or ""."""
        return self.network_manager.find_security_group(vpc_id, name)

    def create_security_group(self, vpc_id: str, name: str, description: str) -> str:
        """Create a security group and return its ID."""
        return self.network_manager.create_security_group(vpc_id, name, description)

    def authorize_ssh_ingress(self, group_id: str, cidr: str) -> None:
        """Allow inbound TCP/22 from ``cidr``."""
        self.network_manager.authorize_ssh_ingress(group_id, cidr)

    def revoke_ssh_ingress(self, group_id: str, cidr: str) -> None:
        """Remove the inbound TCP/22 rule for ``cidr``."""
        self.network_manager.revoke_ssh_ingress(group_id, cidr)

    def delete_security_group(self, group_id: str) -> None:
        """Delete a security group."""
        self.network_manager.delete_security_group(group_id)

    def get_image_id_for_private_ip(self, private_ip: str) -> str | None:
        """Return the AMI of the instance owning ``private_ip``, if any."""
        return self.ami_resolver.get_image_id_for_private_ip(private_ip)

    def find_running_instances(self, vpc_id: str, name: str) -> list[str]:
        """Find running instances by VPC and Name tag.

        Parameters
        ----------
        vpc_id : str
            VPC to search in
        name : str
            Value of the Name tag

        Returns
        -------
        list[str]
            Matching instance IDs
        """
        instance_ids = []

        with handle_aws_errors():
            paginator = self.ec2_client.get_paginator("describe_instances")
            page_iterator = paginator.paginate(
                Filters=[
                    {"Name": "vpc-id", "Values": [vpc_id]},
                    {"Name": "tag:Name", "Values": [name]},
                    {"Name": "instance-state-name", "Values": ["running"]},
                ]
            )

            for page in page_iterator:
                for reservation in page["Reservations"]:
                    for instance in reservation["Instances"]:
                        instance_ids.append(instance["InstanceId"])

        return instance_ids

    def run_instance(self, spec: LaunchSpec) -> str:
        """Launch a single bastion instance.

        Parameters
        ----------
        spec : LaunchSpec
            Launch parameters; user data is read from ``spec.user_data_file``

        Returns
        -------
        str
            ID of the new instance

        Raises
        ------
        ProviderAPIError
            If the launch fails or the response carries no instance
        """
        params: dict[str, Any] = {
            "ImageId": spec.image_id,
            "InstanceType": spec.instance_type,
            "KeyName": spec.key_name,
            "MinCount": 1,
            "MaxCount": 1,
            "UserData": spec.user_data_file.read_text(),
            "NetworkInterfaces": [
                {
                    "DeviceIndex": 0,
                    "SubnetId": spec.subnet_id,
                    "Groups": [spec.security_group_id],
                    "AssociatePublicIpAddress": True,
                }
            ],
            "TagSpecifications": [
                {
                    "ResourceType": "instance",
                    "Tags": [
                        {"Key": "Name", "Value": spec.name},
                        {"Key": "ManagedBy", "Value": "bastion"},
                    ],
                }
            ],
        }

        if spec.instance_profile:
            params["IamInstanceProfile"] = {"Name": spec.instance_profile}

        with handle_aws_errors():
            response = self.ec2_client.run_instances(**params)

        instances = response.get("Instances", [])
        if not instances:
            raise ProviderAPIError(
                message="run_instances returned no instance",
                error_code="EmptyRunInstancesResponse",
            )

        instance_id = instances[0]["InstanceId"]
        logger.debug("Launched instance %s", instance_id)
        return instance_id

    def get_instance_state(self, instance_id: str) -> str:
        """Return the lifecycle state name of an instance."""
        return self.describe_instance(instance_id).state

    def describe_instance(self, instance_id: str) -> InstanceDetails:
        """Describe one instance.

        Parameters
        ----------
        instance_id : str
            Instance ID

        Returns
        -------
        InstanceDetails
            State and addresses of the instance

        Raises
        ------
        ProviderAPIError
            If the call fails or the instance does not exist
        """
        with handle_aws_errors():
            response = self.ec2_client.describe_instances(InstanceIds=[instance_id])

        try:
            instance = extract_instance_from_response(response)
        except ValueError as e:
            raise ProviderAPIError(
                message=f"Instance {instance_id} not found: {e}",
                error_code="InvalidInstanceID.NotFound",
            ) from e

        return InstanceDetails(
            instance_id=instance["InstanceId"],
            state=instance["State"]["Name"],
            addresses=collect_instance_addresses(instance),
        )

    def terminate_instance(self, instance_id: str) -> None:
        """Request termination of an instance without waiting for it."""
        with handle_aws_errors():
            self.ec2_client.terminate_instances(InstanceIds=[instance_id])
