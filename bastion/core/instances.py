"""Bastion instance provisioning and readiness polling."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from bastion.constants import InstanceState
from bastion.core.context import BastionContext
from bastion.core.exceptions import (
    NoPublicAddressError,
    ReadinessTimeoutError,
    ResolutionError,
)
from bastion.core.interfaces import CloudProvider, LaunchSpec
from bastion.core.retry import RetryPolicy
from bastion.core.signals import defer_signals
from bastion.core.teardown import TeardownManager
from bastion.providers.aws.constants import DEFAULT_BASTION_INSTANCE_TYPE
from bastion.providers.exceptions import ProviderAPIError
from bastion.utils import select_public_address

logger = logging.getLogger(__name__)


@contextmanager
def staged_user_data(payload: bytes) -> Iterator[Path]:
    """Write a user-data payload to a temporary file for the launch call.

    The file is removed when the block exits, whether the launch succeeded
    or not.

    Parameters
    ----------
    payload : bytes
        User-data payload

    Yields
    ------
    Path
        Path of the temporary file
    """
    fd, name = tempfile.mkstemp(prefix="bastion-user-data-", suffix=".sh")
    path = Path(name)

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        yield path
    finally:
        path.unlink(missing_ok=True)


class BastionInstanceManager:
    """Ensure exactly one running bastion instance and resolve its address.

    Parameters
    ----------
    cloud_provider : CloudProvider
        Provider launching and describing instances
    retry_policy : RetryPolicy
        Bound on readiness polling
    instance_type : str
        Instance type for new bastions
    sleep : Callable[[float], None]
        Sleep function (injectable for tests)
    """

    def __init__(
        self,
        cloud_provider: CloudProvider,
        retry_policy: RetryPolicy | None = None,
        instance_type: str = DEFAULT_BASTION_INSTANCE_TYPE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cloud_provider = cloud_provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.instance_type = instance_type
        self.sleep = sleep

    def ensure(self, context: BastionContext, teardown: TeardownManager) -> str:
        """Reuse or launch the bastion and wait until it is reachable.

        Parameters
        ----------
        context : BastionContext
            Context with network, image and security group resolved;
            ``bastion_instance_id`` and ``bastion_public_address`` are set on
            return
        teardown : TeardownManager
            Registry receiving the instance termination

        Returns
        -------
        str
            Public address of the bastion

        Raises
        ------
        ResolutionError
            If a launch prerequisite is not resolved
        ReadinessTimeoutError
            If the instance does not reach the running state in time
        NoPublicAddressError
            If the running instance has no public address
        """
        if not context.vpc_id:
            raise ResolutionError("VPC ID is not resolved")

        existing = self.cloud_provider.find_running_instances(
            context.vpc_id, context.bastion_instance_name
        )

        with defer_signals():
            if existing:
                context.bastion_instance_id = existing[0]
                logger.info(
                    "Bastion host %s exists, skipping creation.", context.bastion_instance_id
                )
            else:
                context.bastion_instance_id = self._launch(context)
                logger.info("Bastion host instance %s created.", context.bastion_instance_id)

            teardown.register_instance(context.bastion_instance_id)

        context.bastion_public_address = self.wait_until_running(
            context.bastion_instance_id
        )
        return context.bastion_public_address

    def _launch(self, context: BastionContext) -> str:
        for field_name in ("image_id", "key_name", "subnet_id", "bastion_security_group_id"):
            if not getattr(context, field_name):
                raise ResolutionError(f"Cannot launch bastion: {field_name} is not resolved")

        with staged_user_data(context.user_data) as user_data_file:
            spec = LaunchSpec(
                name=context.bastion_instance_name,
                image_id=context.image_id,
                instance_type=self.instance_type,
                key_name=context.key_name,
                security_group_id=context.bastion_security_group_id,
                subnet_id=context.subnet_id,
                user_data_file=user_data_file,
                instance_profile=context.instance_profile or None,
            )
            return self.cloud_provider.run_instance(spec)

    def wait_until_running(self, instance_id: str) -> str:
        """Poll an instance until it runs, then return its public address.

        Parameters
        ----------
        instance_id : str
            Instance to poll

        Returns
        -------
        str
            First valid IP address of the instance outside 10.0.0.0/8

        Raises
        ------
        ReadinessTimeoutError
            After ``retry_policy.max_attempts`` polls without ``running``
        ProviderAPIError
            If a poll fails for any reason other than the instance not being
            visible yet
        NoPublicAddressError
            If the running instance has no qualifying address
        """
        max_attempts = self.retry_policy.max_attempts
        state = ""

        for attempt in range(1, max_attempts + 1):
            try:
                state = self.cloud_provider.get_instance_state(instance_id)
            except ProviderAPIError as e:
                if not e.is_not_found:
                    raise
                # New instances are briefly invisible to describe calls
                logger.debug("Instance %s not visible yet: %s", instance_id, e)
                state = InstanceState.PENDING.value

            logger.info("Instance state: %s (attempt %d/%d)", state, attempt, max_attempts)

            if state == InstanceState.RUNNING.value:
                details = self.cloud_provider.describe_instance(instance_id)
                address = select_public_address(details.addresses)

                if address is None:
                    raise NoPublicAddressError(
                        f"Bastion instance {instance_id} is running but has no public address"
                    )

                logger.info("Bastion host %s reachable at %s", instance_id, address)
                return address

            if attempt < max_attempts:
                self.sleep(self.retry_policy.interval_seconds)

        raise ReadinessTimeoutError(instance_id, max_attempts, state)
