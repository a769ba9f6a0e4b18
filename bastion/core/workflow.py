"""Create, use, destroy orchestration of a bastion session."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from bastion.core.context import BastionContext
from bastion.core.exceptions import ResolutionError
from bastion.core.instances import BastionInstanceManager
from bastion.core.interfaces import CloudProvider, NodeDirectory
from bastion.core.resolver import AttributeResolver
from bastion.core.retry import RetryPolicy
from bastion.core.security_groups import SecurityGroupManager
from bastion.core.teardown import TeardownManager
from bastion.core.terraform import read_infrastructure_outputs
from bastion.services.ssh import SessionRunner

logger = logging.getLogger(__name__)


class BastionWorkflow:
    """Run one bastion session for a cluster node.

    Parameters
    ----------
    context : BastionContext
        Fresh context for the target cluster with ``ssh_public_key`` set
    state_path : str | Path
        Path to the infrastructure Terraform state
    cloud_provider : CloudProvider
        Provider used by every component
    resolver : AttributeResolver
        Resolves identifiers before anything is created
    security_groups : SecurityGroupManager
        Ensures the bastion group and SSH rules
    instances : BastionInstanceManager
        Ensures the running bastion instance
    session_runner : SessionRunner
        Runs the interactive SSH session
    teardown : TeardownManager
        Registry of reversal actions
    """

    def __init__(
        self,
        context: BastionContext,
        state_path: str | Path,
        cloud_provider: CloudProvider,
        resolver: AttributeResolver,
        security_groups: SecurityGroupManager,
        instances: BastionInstanceManager,
        session_runner: SessionRunner,
        teardown: TeardownManager,
    ) -> None:
        self.context = context
        self.state_path = state_path
        self.cloud_provider = cloud_provider
        self.resolver = resolver
        self.security_groups = security_groups
        self.instances = instances
        self.session_runner = session_runner
        self.teardown = teardown

    @classmethod
    def from_config(
        cls,
        context: BastionContext,
        config: dict[str, Any],
        cloud_provider: CloudProvider,
        node_directory: NodeDirectory,
        sleep: Callable[[float], None] = time.sleep,
    ) -> BastionWorkflow:
        """Build a workflow from a merged cluster configuration.

        Parameters
        ----------
        context : BastionContext
            Fresh context for the target cluster
        config : dict[str, Any]
            Validated configuration from ConfigLoader
        cloud_provider : CloudProvider
            Provider used by every component
        node_directory : NodeDirectory
            Source of cluster nodes
        sleep : Callable[[float], None]
            Sleep function shared by every component

        Raises
        ------
        ResolutionError
            If no infrastructure state path is configured
        """
        if not config.get("terraform_state"):
            raise ResolutionError("terraform_state is required (path to the infrastructure state)")

        ssh_cidr = config["ssh_allowed_cidr"]

        return cls(
            context=context,
            state_path=config["terraform_state"],
            cloud_provider=cloud_provider,
            resolver=AttributeResolver(
                cloud_provider, node_directory, ssh_username=config["ssh_username"]
            ),
            security_groups=SecurityGroupManager(cloud_provider, ssh_cidr=ssh_cidr),
            instances=BastionInstanceManager(
                cloud_provider,
                retry_policy=RetryPolicy.from_config(config),
                instance_type=config["instance_type"],
                sleep=sleep,
            ),
            session_runner=SessionRunner(
                identity_file=config["identity_file"],
                username=config["ssh_username"],
                grace_seconds=config["connect_grace_seconds"],
                sleep=sleep,
            ),
            teardown=TeardownManager(
                cloud_provider,
                grace_seconds=config["teardown_grace_seconds"],
                ssh_cidr=ssh_cidr,
                sleep=sleep,
            ),
        )

    def run(self, node_ip: str) -> int:
        """Provision a bastion, open the session, then tear everything down.

        Teardown runs on every exit path, including errors raised by any
        step and interruption.

        Parameters
        ----------
        node_ip : str
            Private IP address of the target node

        Returns
        -------
        int
            Exit status of the SSH session
        """
        context = self.context

        try:
            logger.info("(1/4) Fetching data from target cluster")
            self.resolver.resolve(context, node_ip, self.state_path)
            logger.info("")

            logger.info("(2/4) Setting up bastion host security group")
            self.security_groups.ensure(context, self.teardown)
            logger.info("")

            logger.info("(3/4) Creating bastion host and node host security group")
            self.instances.ensure(context, self.teardown)
            logger.info("")

            logger.info("(4/4) Connecting to node %s via %s", node_ip, context.bastion_public_address)
            return self.session_runner.run(context.bastion_public_address, node_ip)
        finally:
            self.teardown.teardown()

    def cleanup(self) -> list[Exception]:
        """Tear down resources left behind by an interrupted session.

        Discovers the running bastion instance, the node SSH rule and the
        bastion security group by their deterministic names and reverses
        them through the teardown registry.

        Returns
        -------
        list[Exception]
            Errors of the steps that failed
        """
        context = self.context
        outputs = read_infrastructure_outputs(self.state_path)
        context.vpc_id = outputs.vpc_id

        for instance_id in self.cloud_provider.find_running_instances(
            context.vpc_id, context.bastion_instance_name
        ):
            logger.info("Found bastion instance %s", instance_id)
            self.teardown.register_instance(instance_id)

        node_group_id = self.cloud_provider.find_security_group(
            context.vpc_id, context.node_security_group_name
        )
        if node_group_id:
            self.teardown.register_node_ingress(node_group_id)

        bastion_group_id = self.cloud_provider.find_security_group(
            context.vpc_id, context.bastion_security_group_name
        )
        if bastion_group_id:
            logger.info("Found bastion security group %s", bastion_group_id)
            self.teardown.register_security_group(bastion_group_id)

        return self.teardown.teardown()
