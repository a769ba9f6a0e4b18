"""Deferred teardown of bastion resources."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from bastion.constants import SSH_ALLOWED_CIDR_DEFAULT, TEARDOWN_GRACE_SECONDS
from bastion.core.interfaces import CloudProvider
from bastion.providers.exceptions import ProviderAPIError, ProviderError

logger = logging.getLogger(__name__)

STEP_TERMINATE_INSTANCE = "terminate_instance"
STEP_REVOKE_NODE_INGRESS = "revoke_node_ingress"
STEP_DELETE_SECURITY_GROUP = "delete_security_group"

STEP_ORDER = (
    STEP_TERMINATE_INSTANCE,
    STEP_REVOKE_NODE_INGRESS,
    STEP_DELETE_SECURITY_GROUP,
)


@dataclass(frozen=True)
class TeardownStep:
    """A registered reversal action.

    Attributes
    ----------
    kind : str
        One of the STEP_* constants
    resource_id : str
        Identifier captured when the resource was confirmed to exist
    """

    kind: str
    resource_id: str


class TeardownManager:
    """Registry of reversal actions executed once the session is over.

    Resources are registered the moment they are known to exist, so that any
    exit path (normal end of session, fatal setup error, readiness timeout or
    signal) releases exactly what was acquired so far.

    Parameters
    ----------
    cloud_provider : CloudProvider
        Provider used to reverse the registered resources
    grace_seconds : float
        Wait between instance termination and security group deletion
    ssh_cidr : str
        CIDR of the node ingress rule to revoke
    sleep : Callable[[float], None]
        Sleep function (injectable for tests)
    """

    def __init__(
        self,
        cloud_provider: CloudProvider,
        grace_seconds: float = TEARDOWN_GRACE_SECONDS,
        ssh_cidr: str = SSH_ALLOWED_CIDR_DEFAULT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cloud_provider = cloud_provider
        self.grace_seconds = grace_seconds
        self.ssh_cidr = ssh_cidr
        self.sleep = sleep
        self._steps: list[TeardownStep] = []
        self._lock = threading.RLock()
        self.teardown_in_progress = False

    @property
    def pending_steps(self) -> list[TeardownStep]:
        """Registered steps that have not run yet, in execution order."""
        with self._lock:
            return self._ordered(self._steps)

    def register_instance(self, instance_id: str) -> None:
        """Register termination of the bastion instance."""
        self._register(STEP_TERMINATE_INSTANCE, instance_id)

    def register_node_ingress(self, group_id: str) -> None:
        """Register revocation of the SSH rule on the node security group."""
        self._register(STEP_REVOKE_NODE_INGRESS, group_id)

    def register_security_group(self, group_id: str) -> None:
        """Register deletion of the bastion security group."""
        self._register(STEP_DELETE_SECURITY_GROUP, group_id)

    def _register(self, kind: str, resource_id: str) -> None:
        if not resource_id:
            raise ValueError(f"Cannot register {kind} without an identifier")

        step = TeardownStep(kind=kind, resource_id=resource_id)

        with self._lock:
            if step not in self._steps:
                self._steps.append(step)
                logger.debug("Registered teardown step %s(%s)", kind, resource_id)

    @staticmethod
    def _ordered(steps: list[TeardownStep]) -> list[TeardownStep]:
        return sorted(steps, key=lambda step: STEP_ORDER.index(step.kind))

    def teardown(self) -> list[Exception]:
        """Reverse every registered resource.

        Runs in dependency order: instance termination, node rule revocation,
        then (after the grace delay if an instance was terminated) security
        group deletion. A resource that is already gone counts as reversed.
        Any other failure is logged and collected and the remaining steps still
        run.

        Returns
        -------
        list[Exception]
            Errors of the steps that failed
        """
        with self._lock:
            if self.teardown_in_progress:
                logger.info("Cleanup already in progress, please wait...")
                return []
            self.teardown_in_progress = True
            steps = self._ordered(self._steps)
            self._steps.clear()

        errors: list[Exception] = []

        try:
            if not steps:
                logger.info("No resources to clean up")
                return errors

            logger.info("Cleaning up bastion host configurations...")

            terminated = False
            for number, step in enumerate(steps, start=1):
                if step.kind == STEP_DELETE_SECURITY_GROUP and terminated:
                    logger.info(
                        "  Waiting %s seconds until instance is deleted to remove all dependencies.",
                        self.grace_seconds,
                    )
                    self.sleep(self.grace_seconds)

                logger.info("  (%d/%d) %s", number, len(steps), _describe(step))

                if self._run_step(step, errors) and step.kind == STEP_TERMINATE_INSTANCE:
                    terminated = True

            if errors:
                logger.warning("Cleanup completed with %s errors", len(errors))
            else:
                logger.info("Bastion host configurations successfully cleaned up.")
        finally:
            with self._lock:
                self.teardown_in_progress = False

        return errors

    def _run_step(self, step: TeardownStep, errors: list[Exception]) -> bool:
        """Run one step, returning True if the resource is gone afterwards."""
        try:
            if step.kind == STEP_TERMINATE_INSTANCE:
                self.cloud_provider.terminate_instance(step.resource_id)
            elif step.kind == STEP_REVOKE_NODE_INGRESS:
                self.cloud_provider.revoke_ssh_ingress(step.resource_id, self.ssh_cidr)
            else:
                self.cloud_provider.delete_security_group(step.resource_id)
        except ProviderAPIError as e:
            if e.is_not_found:
                logger.info("  %s already gone, nothing to do", step.resource_id)
                return True
            logger.error("  Failed to %s: %s", _describe(step).lower(), e)
            errors.append(e)
            return False
        except ProviderError as e:
            logger.error("  Failed to %s: %s", _describe(step).lower(), e)
            errors.append(e)
            return False
        except Exception as e:
            logger.exception("  Unexpected error while trying to %s", _describe(step).lower())
            errors.append(e)
            return False

        return True


def _describe(step: TeardownStep) -> str:
    if step.kind == STEP_TERMINATE_INSTANCE:
        return f"Terminate bastion instance {step.resource_id}"
    if step.kind == STEP_REVOKE_NODE_INGRESS:
        return f"Close SSH port on node security group {step.resource_id}"
    return f"Delete bastion security group {step.resource_id}"
