"""Tests for deferred teardown."""

import logging
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ConnectionClosedError

from bastion.core.teardown import TeardownManager
from bastion.providers.aws.compute import EC2Provider
from bastion.providers.exceptions import ProviderAPIError, ProviderConnectionError
from tests.unit.fakes.fake_cloud_provider import FakeCloudProvider

VPC = "vpc-1"


@pytest.fixture
def provider() -> FakeCloudProvider:
    return FakeCloudProvider()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def manager(provider: FakeCloudProvider, sleeps: list[float]) -> TeardownManager:
    return TeardownManager(provider, grace_seconds=45, ssh_cidr="0.0.0.0/0", sleep=sleeps.append)


def seed_session(provider: FakeCloudProvider, manager: TeardownManager) -> tuple[str, str, str]:
    node_group = provider.add_security_group(VPC, "c-nodes")
    provider.ingress[node_group].add("0.0.0.0/0")
    bastion_group = provider.add_security_group(VPC, "c-bsg")
    instance = provider.add_instance(VPC, "c-bastions")

    manager.register_security_group(bastion_group)
    manager.register_node_ingress(node_group)
    manager.register_instance(instance)
    return instance, node_group, bastion_group


def test_runs_in_dependency_order(
    provider: FakeCloudProvider, manager: TeardownManager, sleeps: list[float]
) -> None:
    instance, node_group, bastion_group = seed_session(provider, manager)

    errors = manager.teardown()

    assert errors == []
    assert provider.calls == [
        ("terminate_instance", (instance,)),
        ("revoke_ssh_ingress", (node_group, "0.0.0.0/0")),
        ("delete_security_group", (bastion_group,)),
    ]
    assert sleeps == [45]
    assert provider.instances[instance]["state"] == "terminated"
    assert provider.ingress[node_group] == set()
    assert (VPC, "c-bsg") not in provider.security_groups


def test_not_found_counts_as_success(
    provider: FakeCloudProvider, manager: TeardownManager
) -> None:
    manager.register_instance("i-0000000000000dead")
    manager.register_node_ingress("sg-gone")
    manager.register_security_group("sg-alsogone")

    assert manager.teardown() == []


def test_continues_after_failure(
    provider: FakeCloudProvider, manager: TeardownManager, caplog: pytest.LogCaptureFixture
) -> None:
    _, _, bastion_group = seed_session(provider, manager)
    failure = ProviderAPIError("throttled", error_code="RequestLimitExceeded", http_status=503)
    provider.failures["revoke_ssh_ingress"] = failure

    with caplog.at_level(logging.ERROR):
        errors = manager.teardown()

    assert errors == [failure]
    assert "delete_security_group" in provider.call_names()
    assert (VPC, "c-bsg") not in provider.security_groups
    assert "throttled" in caplog.text


def test_connection_errors_are_collected(
    provider: FakeCloudProvider, manager: TeardownManager
) -> None:
    seed_session(provider, manager)
    provider.failures["terminate_instance"] = ProviderConnectionError("no route")

    errors = manager.teardown()

    assert len(errors) == 1
    assert isinstance(errors[0], ProviderConnectionError)
    assert provider.call_names()[-1] == "delete_security_group"


def test_unexpected_errors_do_not_stop_teardown(
    provider: FakeCloudProvider, manager: TeardownManager, caplog: pytest.LogCaptureFixture
) -> None:
    _, node_group, _ = seed_session(provider, manager)
    failure = KeyError("Reservations")
    provider.failures["terminate_instance"] = failure

    with caplog.at_level(logging.ERROR):
        errors = manager.teardown()

    assert errors == [failure]
    assert provider.ingress[node_group] == set()
    assert (VPC, "c-bsg") not in provider.security_groups
    assert "Unexpected error" in caplog.text
    assert manager.teardown_in_progress is False


def test_dropped_aws_connection_still_closes_firewall(sleeps: list[float]) -> None:
    client = MagicMock()
    client.terminate_instances.side_effect = ConnectionClosedError(
        endpoint_url="https://ec2.eu-west-1.amazonaws.com"
    )
    ec2 = EC2Provider(region="eu-west-1", boto3_client_factory=lambda *args, **kwargs: client)
    manager = TeardownManager(ec2, grace_seconds=45, ssh_cidr="0.0.0.0/0", sleep=sleeps.append)
    manager.register_security_group("sg-bastion")
    manager.register_node_ingress("sg-nodes")
    manager.register_instance("i-0abc")

    errors = manager.teardown()

    assert len(errors) == 1
    assert isinstance(errors[0], ProviderConnectionError)
    client.revoke_security_group_ingress.assert_called_once()
    client.delete_security_group.assert_called_once_with(GroupId="sg-bastion")
    assert sleeps == []


def test_no_grace_wait_without_instance(
    provider: FakeCloudProvider, manager: TeardownManager, sleeps: list[float]
) -> None:
    group = provider.add_security_group(VPC, "c-bsg")
    manager.register_security_group(group)

    manager.teardown()

    assert sleeps == []


def test_teardown_is_idempotent(
    provider: FakeCloudProvider, manager: TeardownManager, caplog: pytest.LogCaptureFixture
) -> None:
    seed_session(provider, manager)
    manager.teardown()
    calls_after_first = len(provider.calls)

    with caplog.at_level(logging.INFO):
        assert manager.teardown() == []

    assert len(provider.calls) == calls_after_first
    assert "No resources to clean up" in caplog.text


def test_reentrant_call_is_ignored(provider: FakeCloudProvider, sleeps: list[float]) -> None:
    nested_results = []

    def sleep_and_reenter(seconds: float) -> None:
        sleeps.append(seconds)
        nested_results.append(manager.teardown())

    manager = TeardownManager(provider, grace_seconds=1, sleep=sleep_and_reenter)
    seed_session(provider, manager)

    manager.teardown()

    assert nested_results == [[]]
    assert provider.call_names().count("delete_security_group") == 1
    assert manager.teardown_in_progress is False


def test_register_requires_identifier(manager: TeardownManager) -> None:
    with pytest.raises(ValueError):
        manager.register_instance("")


def test_duplicate_registration_runs_once(
    provider: FakeCloudProvider, manager: TeardownManager
) -> None:
    group = provider.add_security_group(VPC, "c-bsg")
    manager.register_security_group(group)
    manager.register_security_group(group)

    manager.teardown()

    assert provider.call_names() == ["delete_security_group"]
