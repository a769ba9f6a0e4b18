"""Unit tests for the Bastion command surface."""

import logging
import signal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from bastion.__main__ import Bastion
from bastion.core.exceptions import ResolutionError
from bastion.core.signals import get_cleanup_instance
from tests.unit.conftest import CLUSTER, NODE_IP, VPC_ID
from tests.unit.fakes.fake_cloud_provider import FakeCloudProvider
from tests.unit.fakes.fake_node_directory import FakeNodeDirectory


@pytest.fixture
def identity_file(tmp_path: Path) -> Path:
    private = tmp_path / "id_ed25519"
    private.write_text("unused")
    (tmp_path / "id_ed25519.pub").write_text("ssh-ed25519 AAAATEST operator\n")
    return private


@pytest.fixture
def regions() -> list[str]:
    return []


@pytest.fixture
def bastion(
    fake_provider: FakeCloudProvider, node_directory: FakeNodeDirectory, regions: list[str]
) -> Bastion:
    def provider_factory(region: str) -> FakeCloudProvider:
        regions.append(region)
        return fake_provider

    return Bastion(
        cloud_provider_factory=provider_factory,
        node_directory_factory=lambda config: node_directory,
        sleep=lambda _: None,
    )


@pytest.fixture
def session_runner():
    with patch("bastion.core.workflow.SessionRunner") as runner_class:
        runner_class.return_value.run.return_value = 0
        yield runner_class


class TestSsh:
    def test_session_uses_config_and_flags(
        self,
        bastion: Bastion,
        write_config,
        terraform_state: Path,
        identity_file: Path,
        fake_provider: FakeCloudProvider,
        session_runner: MagicMock,
        regions: list[str],
    ) -> None:
        write_config(
            {
                "defaults": {"region": "eu-west-1"},
                "clusters": {CLUSTER: {"terraform_state": str(terraform_state)}},
            }
        )

        status = bastion.ssh(NODE_IP, CLUSTER, identity_file=str(identity_file), user="core")

        assert status == 0
        assert regions == ["eu-west-1"]
        runner_kwargs = session_runner.call_args.kwargs
        assert runner_kwargs["username"] == "core"
        assert runner_kwargs["identity_file"] == str(identity_file)
        session_runner.return_value.run.assert_called_once_with("54.1.2.3", NODE_IP)
        assert b"ssh-ed25519 AAAATEST operator" in fake_provider.user_data_seen[0].encode()
        assert (VPC_ID, f"{CLUSTER}-bsg") not in fake_provider.security_groups

    def test_session_status_is_returned(
        self,
        bastion: Bastion,
        config_file: Path,
        terraform_state: Path,
        identity_file: Path,
        session_runner: MagicMock,
    ) -> None:
        session_runner.return_value.run.return_value = 3

        status = bastion.ssh(
            NODE_IP,
            CLUSTER,
            terraform_state=str(terraform_state),
            identity_file=str(identity_file),
        )

        assert status == 3

    def test_missing_state_is_a_configuration_error(
        self, bastion: Bastion, config_file: Path, identity_file: Path
    ) -> None:
        with pytest.raises(ResolutionError, match="terraform_state"):
            bastion.ssh(NODE_IP, CLUSTER, identity_file=str(identity_file))

    def test_invalid_flag_value(self, bastion: Bastion, config_file: Path) -> None:
        with pytest.raises(ValueError, match="ssh_username"):
            bastion.ssh(NODE_IP, CLUSTER, user="Not Valid")


class TestCleanupCommand:
    def test_removes_leftovers(
        self,
        bastion: Bastion,
        config_file: Path,
        terraform_state: Path,
        fake_provider: FakeCloudProvider,
    ) -> None:
        fake_provider.add_security_group(VPC_ID, f"{CLUSTER}-bsg")
        instance = fake_provider.add_instance(VPC_ID, f"{CLUSTER}-bastions")

        assert bastion.cleanup(CLUSTER, terraform_state=str(terraform_state)) == 0
        assert fake_provider.instances[instance]["state"] == "terminated"
        assert (VPC_ID, f"{CLUSTER}-bsg") not in fake_provider.security_groups

    def test_reports_failures(
        self,
        bastion: Bastion,
        config_file: Path,
        terraform_state: Path,
        fake_provider: FakeCloudProvider,
    ) -> None:
        from bastion.providers.exceptions import ProviderAPIError

        fake_provider.add_instance(VPC_ID, f"{CLUSTER}-bastions")
        fake_provider.failures["terminate_instance"] = ProviderAPIError(
            "denied", error_code="UnauthorizedOperation", http_status=403
        )

        assert bastion.cleanup(CLUSTER, terraform_state=str(terraform_state)) == 1


class TestSignalCleanup:
    def test_registers_itself_for_signals(self, bastion: Bastion) -> None:
        assert get_cleanup_instance() is bastion

    def test_signal_without_session_exits(self, bastion: Bastion) -> None:
        with pytest.raises(SystemExit) as exc_info:
            bastion._cleanup_resources(signum=signal.SIGTERM)

        assert exc_info.value.code == 143

    def test_signal_tears_down_active_session(
        self, bastion: Bastion, fake_provider: FakeCloudProvider
    ) -> None:
        workflow = MagicMock()
        workflow.teardown.teardown_in_progress = False
        bastion._workflow = workflow

        with pytest.raises(SystemExit) as exc_info:
            bastion._cleanup_resources(signum=signal.SIGINT)

        assert exc_info.value.code == 130
        workflow.teardown.teardown.assert_called_once_with()

    def test_signal_during_teardown_is_ignored(
        self, bastion: Bastion, caplog: pytest.LogCaptureFixture
    ) -> None:
        workflow = MagicMock()
        workflow.teardown.teardown_in_progress = True
        bastion._workflow = workflow

        with caplog.at_level(logging.INFO):
            bastion._cleanup_resources(signum=signal.SIGINT)

        workflow.teardown.teardown.assert_not_called()
        assert "already in progress" in caplog.text


class TestInit:
    def test_writes_template(self, bastion: Bastion, config_file: Path) -> None:
        bastion.init()

        content = config_file.read_text()
        assert "defaults:" in content
        assert "clusters:" in content

    def test_refuses_to_overwrite(self, bastion: Bastion, config_file: Path) -> None:
        config_file.write_text("defaults: {}\n")

        with pytest.raises(SystemExit) as exc_info:
            bastion.init()

        assert exc_info.value.code == 1
        assert config_file.read_text() == "defaults: {}\n"

    def test_force_overwrites(self, bastion: Bastion, config_file: Path) -> None:
        config_file.write_text("defaults: {}\n")

        bastion.init(force=True)

        assert "clusters:" in config_file.read_text()

    def test_template_loads(self, bastion: Bastion, config_file: Path) -> None:
        from bastion.core.config import ConfigLoader

        bastion.init()
        loader = ConfigLoader()
        merged = loader.get_cluster_config(loader.load_config(), CLUSTER)

        loader.validate_config(merged)
