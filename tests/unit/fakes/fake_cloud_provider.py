"""Fake cloud provider for testing with dependency injection."""

from __future__ import annotations

import itertools
from typing import Any

from bastion.core.interfaces import InstanceDetails, LaunchSpec
from bastion.providers.exceptions import ProviderAPIError


class FakeCloudProvider:
    """In-memory cloud provider recording every call.

    Security groups are keyed by ``(vpc_id, name)``, instances by ID. Each
    instance walks through ``state_sequence`` one poll at a time and stays in
    the last state. Set ``invisible_polls`` to make the next state polls fail
    with not-found, as EC2 does right after a launch.

    Parameters
    ----------
    region : str
        Region name reported by the provider
    state_sequence : list[str] | None
        States returned by successive ``get_instance_state`` calls
    addresses : list[str] | None
        Addresses reported for every running instance
    """

    def __init__(
        self,
        region: str = "us-east-1",
        state_sequence: list[str] | None = None,
        addresses: list[str] | None = None,
    ) -> None:
        self.region = region
        self.state_sequence = state_sequence or ["running"]
        self.addresses = addresses if addresses is not None else ["10.250.0.9", "54.1.2.3"]
        self.security_groups: dict[tuple[str, str], str] = {}
        self.ingress: dict[str, set[str]] = {}
        self.instances: dict[str, dict[str, Any]] = {}
        self.images: dict[str, str] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, Exception] = {}
        self.invisible_polls = 0
        self.launched: list[LaunchSpec] = []
        self.user_data_seen: list[str] = []
        self._ids = itertools.count(1)

    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.failures:
            raise self.failures[name]

    def call_names(self) -> list[str]:
        """Return the names of the recorded calls in order."""
        return [name for name, _ in self.calls]

    def add_security_group(self, vpc_id: str, name: str) -> str:
        """Seed an existing security group and return its ID."""
        group_id = f"sg-{next(self._ids):08x}"
        self.security_groups[(vpc_id, name)] = group_id
        self.ingress[group_id] = set()
        return group_id

    def add_instance(self, vpc_id: str, name: str, state: str = "running") -> str:
        """Seed an existing instance and return its ID."""
        instance_id = f"i-{next(self._ids):017x}"
        self.instances[instance_id] = {"vpc_id": vpc_id, "name": name, "state": state, "polls": 0}
        return instance_id

    def find_security_group(self, vpc_id: str, name: str) -> str:
        self._call("find_security_group", vpc_id, name)
        return self.security_groups.get((vpc_id, name), "")

    def create_security_group(self, vpc_id: str, name: str, description: str) -> str:
        self._call("create_security_group", vpc_id, name, description)
        if (vpc_id, name) in self.security_groups:
            raise ProviderAPIError(
                f"group {name} exists", error_code="InvalidGroup.Duplicate", http_status=400
            )
        return self.add_security_group(vpc_id, name)

    def authorize_ssh_ingress(self, group_id: str, cidr: str) -> None:
        self._call("authorize_ssh_ingress", group_id, cidr)
        rules = self.ingress.setdefault(group_id, set())
        if cidr in rules:
            raise ProviderAPIError(
                "rule exists", error_code="InvalidPermission.Duplicate", http_status=400
            )
        rules.add(cidr)

    def revoke_ssh_ingress(self, group_id: str, cidr: str) -> None:
        self._call("revoke_ssh_ingress", group_id, cidr)
        rules = self.ingress.get(group_id, set())
        if cidr not in rules:
            raise ProviderAPIError(
                "rule not found", error_code="InvalidPermission.NotFound", http_status=400
            )
        rules.discard(cidr)

    def delete_security_group(self, group_id: str) -> None:
        self._call("delete_security_group", group_id)
        for key, value in list(self.security_groups.items()):
            if value == group_id:
                del self.security_groups[key]
                self.ingress.pop(group_id, None)
                return
        raise ProviderAPIError(
            f"group {group_id} not found", error_code="InvalidGroup.NotFound", http_status=400
        )

    def find_running_instances(self, vpc_id: str, name: str) -> list[str]:
        self._call("find_running_instances", vpc_id, name)
        return [
            instance_id
            for instance_id, instance in self.instances.items()
            if instance["vpc_id"] == vpc_id
            and instance["name"] == name
            and instance["state"] == "running"
        ]

    def run_instance(self, spec: LaunchSpec) -> str:
        self._call("run_instance", spec)
        self.launched.append(spec)
        self.user_data_seen.append(spec.user_data_file.read_text())
        vpc_id = next(
            (vpc for (vpc, _), group in self.security_groups.items() if group == spec.security_group_id),
            "",
        )
        return self.add_instance(vpc_id, spec.name, state="pending")

    def get_instance_state(self, instance_id: str) -> str:
        self._call("get_instance_state", instance_id)
        if self.invisible_polls > 0:
            self.invisible_polls -= 1
            raise ProviderAPIError(
                f"The instance ID '{instance_id}' does not exist",
                error_code="InvalidInstanceID.NotFound",
                http_status=400,
            )
        instance = self._instance(instance_id)
        if instance["state"] == "terminated":
            return "terminated"
        index = min(instance["polls"], len(self.state_sequence) - 1)
        instance["polls"] += 1
        instance["state"] = self.state_sequence[index]
        return instance["state"]

    def describe_instance(self, instance_id: str) -> InstanceDetails:
        self._call("describe_instance", instance_id)
        instance = self._instance(instance_id)
        return InstanceDetails(
            instance_id=instance_id, state=instance["state"], addresses=list(self.addresses)
        )

    def terminate_instance(self, instance_id: str) -> None:
        self._call("terminate_instance", instance_id)
        self._instance(instance_id)["state"] = "terminated"

    def get_image_id_for_private_ip(self, private_ip: str) -> str | None:
        self._call("get_image_id_for_private_ip", private_ip)
        return self.images.get(private_ip)

    def _instance(self, instance_id: str) -> dict[str, Any]:
        if instance_id not in self.instances:
            raise ProviderAPIError(
                f"instance {instance_id} not found",
                error_code="InvalidInstanceID.NotFound",
                http_status=400,
            )
        return self.instances[instance_id]
