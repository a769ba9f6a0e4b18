"""Pytest configuration and fixtures for bastion tests."""

import json
import os
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
import yaml

from bastion.core.context import BastionContext
from bastion.core.interfaces import ClusterNode
from tests.unit.fakes.fake_cloud_provider import FakeCloudProvider
from tests.unit.fakes.fake_node_directory import FakeNodeDirectory

CLUSTER = "shoot--dev--alpha"
VPC_ID = "vpc-0123456789abcdef0"
SUBNET_ID = "subnet-0123456789abcdef0"
NODE_IP = "10.250.0.5"
NODE_INSTANCE_ID = "i-0a1b2c3d4e5f67890"
IMAGE_ID = "ami-0abcdef1234567890"
PUBLIC_KEY = b"ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAITest operator@laptop"


@pytest.fixture
def aws_credentials() -> Generator[None, None, None]:
    """Fixture to set AWS credentials for testing with proper cleanup.

    Yields
    ------
    None
        Control back to test after setting credentials
    """
    old_values = {
        name: os.environ.get(name)
        for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_DEFAULT_REGION")
    }

    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

    yield

    for name, value in old_values.items():
        if value is not None:
            os.environ[name] = value
        else:
            os.environ.pop(name, None)


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point BASTION_CONFIG at a temporary file path."""
    config_path = tmp_path / "bastion.yaml"
    monkeypatch.setenv("BASTION_CONFIG", str(config_path))
    return config_path


@pytest.fixture
def write_config(config_file: Path):
    """Return a helper writing a config dict to the BASTION_CONFIG file."""

    def _write(config_data: dict[str, Any]) -> None:
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

    return _write


@pytest.fixture
def terraform_state(tmp_path: Path) -> Path:
    """Write a flat-layout infrastructure state and return its path."""
    state_path = tmp_path / "terraform.tfstate"
    state_path.write_text(
        json.dumps(
            {
                "terraform_version": "1.5.7",
                "outputs": {
                    "vpc_id": {"value": VPC_ID},
                    "subnet_public_utility_z0": {"value": SUBNET_ID},
                },
            }
        )
    )
    return state_path


@pytest.fixture
def fake_provider() -> FakeCloudProvider:
    """Provider with the node security group and node image in place."""
    provider = FakeCloudProvider()
    provider.add_security_group(VPC_ID, f"{CLUSTER}-nodes")
    provider.images[NODE_IP] = IMAGE_ID
    return provider


@pytest.fixture
def node_directory() -> FakeNodeDirectory:
    """Directory with the target node and one unrelated node."""
    return FakeNodeDirectory(
        [
            ClusterNode(address="10.250.0.4", provider_id="aws:///eu-west-1a/i-0ffffffffffffffff"),
            ClusterNode(address=NODE_IP, provider_id=f"aws:///eu-west-1a/{NODE_INSTANCE_ID}"),
        ]
    )


@pytest.fixture
def context() -> BastionContext:
    """Fresh context for the test cluster with the operator key set."""
    ctx = BastionContext.for_cluster(CLUSTER)
    ctx.ssh_public_key = PUBLIC_KEY
    return ctx


@pytest.fixture
def resolved_context(context: BastionContext, fake_provider: FakeCloudProvider) -> BastionContext:
    """Context as it looks after attribute resolution."""
    context.node_private_ip = NODE_IP
    context.target_instance_id = NODE_INSTANCE_ID
    context.vpc_id = VPC_ID
    context.subnet_id = SUBNET_ID
    context.node_security_group_id = fake_provider.security_groups[(VPC_ID, f"{CLUSTER}-nodes")]
    context.image_id = IMAGE_ID
    context.user_data = b"#!/bin/bash\n"
    return context
