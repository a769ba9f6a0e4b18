"""Retry policy for bounded polling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from bastion.constants import READINESS_INTERVAL_SECONDS, READINESS_MAX_ATTEMPTS


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded polling policy.

    Attributes
    ----------
    max_attempts : int
        Number of polls performed before giving up
    interval_seconds : float
        Delay between two consecutive polls
    """

    max_attempts: int = READINESS_MAX_ATTEMPTS
    interval_seconds: float = READINESS_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> RetryPolicy:
        """Build the readiness policy from a merged configuration.

        Parameters
        ----------
        config : dict[str, Any]
            Merged configuration from ConfigLoader

        Returns
        -------
        RetryPolicy
            Policy using readiness_max_attempts and readiness_interval_seconds
        """
        return cls(
            max_attempts=int(config.get("readiness_max_attempts", READINESS_MAX_ATTEMPTS)),
            interval_seconds=float(
                config.get("readiness_interval_seconds", READINESS_INTERVAL_SECONDS)
            ),
        )
