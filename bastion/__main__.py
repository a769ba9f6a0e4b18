#!/usr/bin/env python3
"""Bastion - SSH into private cluster nodes through an ephemeral bastion host."""

from __future__ import annotations

import logging
import os
import signal
import sys
import time
import types
from collections.abc import Callable
from pathlib import Path
from typing import Any

from bastion.core.signals import set_cleanup_instance, setup_signal_handlers

setup_signal_handlers()

import boto3  # noqa: E402

from bastion.constants import DEFAULT_CONFIG_PATH, EXIT_ERROR  # noqa: E402
from bastion.core.config import ConfigLoader  # noqa: E402
from bastion.core.context import BastionContext  # noqa: E402
from bastion.core.interfaces import CloudProvider, NodeDirectory  # noqa: E402
from bastion.core.workflow import BastionWorkflow  # noqa: E402
from bastion.providers.aws.compute import EC2Provider  # noqa: E402
from bastion.services.nodes import KubernetesNodeDirectory  # noqa: E402
from bastion.services.ssh import load_public_key  # noqa: E402
from bastion.templates import CONFIG_TEMPLATE  # noqa: E402
from bastion.utils import log_and_print_error  # noqa: E402

logger = logging.getLogger(__name__)

SIGNAL_EXIT_CODES = {signal.SIGINT: 130, signal.SIGTERM: 143}


class Bastion:
    """Command line interface for bastion sessions."""

    def __init__(
        self,
        cloud_provider_factory: Callable[[str], CloudProvider] | None = None,
        node_directory_factory: Callable[[dict[str, Any]], NodeDirectory] | None = None,
        boto3_client_factory: Callable | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config_loader = ConfigLoader()
        self._boto3_client_factory = boto3_client_factory or boto3.client
        self._cloud_provider_factory = cloud_provider_factory or self._create_cloud_provider
        self._node_directory_factory = node_directory_factory or self._create_node_directory
        self._sleep = sleep
        self._workflow: BastionWorkflow | None = None

        set_cleanup_instance(self)

    def _create_cloud_provider(self, region: str) -> CloudProvider:
        return EC2Provider(region=region, boto3_client_factory=self._boto3_client_factory)

    @staticmethod
    def _create_node_directory(config: dict[str, Any]) -> NodeDirectory:
        kubeconfig = config.get("kubeconfig")
        if kubeconfig:
            kubeconfig = str(Path(kubeconfig).expanduser())
        return KubernetesNodeDirectory(kubeconfig=kubeconfig, context=config.get("kube_context"))

    def _load_cluster_config(
        self, cluster: str, config_path: str | None, overrides: dict[str, Any]
    ) -> dict[str, Any]:
        config = self._config_loader.load_config(config_path)
        merged = self._config_loader.get_cluster_config(config, cluster)

        for key, value in overrides.items():
            if value is not None:
                merged[key] = value

        self._config_loader.validate_config(merged)
        return merged

    def _build_workflow(
        self, cluster: str, config: dict[str, Any], with_public_key: bool
    ) -> BastionWorkflow:
        context = BastionContext.for_cluster(cluster)

        if with_public_key:
            context.ssh_public_key = load_public_key(
                config["identity_file"], config.get("public_key_file")
            )

        state_path = config.get("terraform_state")
        if state_path:
            config["terraform_state"] = str(Path(state_path).expanduser())

        return BastionWorkflow.from_config(
            context,
            config,
            cloud_provider=self._cloud_provider_factory(config["region"]),
            node_directory=self._node_directory_factory(config),
            sleep=self._sleep,
        )

    def ssh(
        self,
        node_ip: str,
        cluster: str,
        terraform_state: str | None = None,
        region: str | None = None,
        identity_file: str | None = None,
        user: str | None = None,
        kubeconfig: str | None = None,
        kube_context: str | None = None,
        config: str | None = None,
    ) -> int:
        """Open an SSH session to a node through an ephemeral bastion host.

        Parameters
        ----------
        node_ip : str
            Private IP address of the target node
        cluster : str
            Name of the cluster owning the node
        terraform_state : str | None
            Path to the infrastructure Terraform state
        region : str | None
            Cloud region override
        identity_file : str | None
            Private key used for both hops
        user : str | None
            Login user on the bastion and the node
        kubeconfig : str | None
            Kubeconfig of the target cluster
        kube_context : str | None
            Kubeconfig context to use
        config : str | None
            Path to the configuration file

        Returns
        -------
        int
            Exit status of the SSH session
        """
        merged = self._load_cluster_config(
            cluster,
            config,
            {
                "terraform_state": terraform_state,
                "region": region,
                "identity_file": identity_file,
                "ssh_username": user,
                "kubeconfig": kubeconfig,
                "kube_context": kube_context,
            },
        )

        self._workflow = self._build_workflow(cluster, merged, with_public_key=True)

        try:
            return self._workflow.run(str(node_ip))
        finally:
            self._workflow = None

    def cleanup(
        self,
        cluster: str,
        terraform_state: str | None = None,
        region: str | None = None,
        config: str | None = None,
    ) -> int:
        """Remove bastion resources left behind by an interrupted session.

        Parameters
        ----------
        cluster : str
            Name of the cluster
        terraform_state : str | None
            Path to the infrastructure Terraform state
        region : str | None
            Cloud region override
        config : str | None
            Path to the configuration file

        Returns
        -------
        int
            0 if every resource was removed, 1 otherwise
        """
        merged = self._load_cluster_config(
            cluster, config, {"terraform_state": terraform_state, "region": region}
        )

        self._workflow = self._build_workflow(cluster, merged, with_public_key=False)

        try:
            errors = self._workflow.cleanup()
        finally:
            self._workflow = None

        return EXIT_ERROR if errors else 0

    def _cleanup_resources(
        self, signum: int | None = None, frame: types.FrameType | None = None
    ) -> None:
        workflow = self._workflow

        if workflow is not None:
            if workflow.teardown.teardown_in_progress:
                logger.info("Cleanup already in progress, please wait...")
                return

            logger.info("Received signal %s, cleaning up...", signum)
            workflow.teardown.teardown()

        sys.exit(SIGNAL_EXIT_CODES.get(signum, EXIT_ERROR))

    def init(self, force: bool = False) -> None:
        """Create a default bastion.yaml configuration file."""
        config_path = os.environ.get("BASTION_CONFIG", DEFAULT_CONFIG_PATH)
        config_file = Path(config_path)

        if config_file.exists() and not force:
            log_and_print_error(
                "%s already exists. Use --force to overwrite.",
                config_path,
            )
            sys.exit(EXIT_ERROR)

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            f.write(CONFIG_TEMPLATE)

        print(f"Created {config_path} configuration file.")


if __name__ == "__main__":
    from bastion.cli.main import main

    main()
