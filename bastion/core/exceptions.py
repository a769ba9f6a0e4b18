"""Error kinds raised by the bastion workflow."""

from __future__ import annotations


class ResolutionError(ValueError):
    """An identifier required before provisioning could not be determined."""


class InfrastructureStateError(ValueError):
    """The infrastructure state file is missing, malformed or incomplete."""


class ReadinessTimeoutError(RuntimeError):
    """The bastion instance did not reach the running state in time.

    Parameters
    ----------
    instance_id : str
        Instance that was polled
    attempts : int
        Number of state polls performed
    last_state : str
        Last state observed
    """

    def __init__(self, instance_id: str, attempts: int, last_state: str) -> None:
        super().__init__(
            f"Bastion instance {instance_id} did not reach 'running' after "
            f"{attempts} attempts (last state: {last_state or 'unknown'})"
        )
        self.instance_id = instance_id
        self.attempts = attempts
        self.last_state = last_state


class NoPublicAddressError(RuntimeError):
    """The bastion instance is running but has no usable public address."""
