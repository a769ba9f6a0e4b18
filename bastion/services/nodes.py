"""Cluster node discovery through the Kubernetes API."""

from __future__ import annotations

import logging

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from bastion.core.exceptions import ResolutionError
from bastion.core.interfaces import ClusterNode

logger = logging.getLogger(__name__)

API_TIMEOUT_SECONDS = 10


class KubernetesNodeDirectory:
    """List the nodes of a cluster with the Kubernetes client.

    Parameters
    ----------
    kubeconfig : str | None
        Path to the kubeconfig of the target cluster (default location if None)
    context : str | None
        Kubeconfig context to use (current context if None)
    """

    def __init__(self, kubeconfig: str | None = None, context: str | None = None) -> None:
        self.kubeconfig = kubeconfig
        self.context = context
        self._core_api: k8s_client.CoreV1Api | None = None

    def _api(self) -> k8s_client.CoreV1Api:
        if self._core_api is None:
            try:
                api_client = k8s_config.new_client_from_config(
                    config_file=self.kubeconfig, context=self.context
                )
            except ConfigException as e:
                raise ResolutionError(f"Could not load kubeconfig: {e}") from e
            self._core_api = k8s_client.CoreV1Api(api_client)
        return self._core_api

    def list_nodes(self) -> list[ClusterNode]:
        """Return every node with its first address and provider ID.

        Returns
        -------
        list[ClusterNode]
            Nodes of the cluster; nodes without addresses are skipped

        Raises
        ------
        ResolutionError
            If the kubeconfig cannot be loaded or the API call fails
        """
        try:
            items = self._api().list_node(_request_timeout=API_TIMEOUT_SECONDS).items
        except ApiException as e:
            raise ResolutionError(f"Failed to list cluster nodes: {e.reason}") from e

        nodes = []
        for item in items:
            addresses = (item.status.addresses or []) if item.status else []
            if not addresses:
                logger.debug("Node %s reports no addresses", item.metadata.name)
                continue
            provider_id = (item.spec.provider_id if item.spec else None) or ""
            nodes.append(ClusterNode(address=addresses[0].address, provider_id=provider_id))

        return nodes
