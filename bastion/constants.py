"""Global constants for the bastion application.

This module contains application-wide constants that are used across multiple
components. These values are provider-agnostic.
"""

from enum import Enum

READINESS_MAX_ATTEMPTS = 60
"""Maximum number of instance state polls before giving up.

Together with READINESS_INTERVAL_SECONDS this bounds the wait for a freshly
launched bastion to about two minutes.
"""

READINESS_INTERVAL_SECONDS = 2.0
"""Delay in seconds between instance state polls."""

CONNECT_GRACE_SECONDS = 45
"""Delay in seconds before the first SSH connection attempt."""

TEARDOWN_GRACE_SECONDS = 45
"""Delay in seconds between instance termination and security group deletion."""

PORT_CHECK_MAX_ATTEMPTS = 12
"""Maximum number of TCP connection attempts when checking port reachability."""

PORT_CHECK_INTERVAL_SECONDS = 10
"""Delay in seconds between port reachability attempts."""

PORT_CHECK_TIMEOUT_SECONDS = 10
"""Timeout in seconds for a single TCP connection attempt."""

DEFAULT_SSH_PORT = 22
"""Port the bastion and the target node accept SSH connections on."""

SSH_ALLOWED_CIDR_DEFAULT = "0.0.0.0/0"
"""CIDR block allowed to reach port 22 when none is configured."""

DEFAULT_SSH_USERNAME = "gardener"
"""Login user created on the bastion and present on cluster nodes."""

DEFAULT_REGION = "us-east-1"
"""Default cloud region when none is configured."""

DEFAULT_CONFIG_PATH = "bastion.yaml"
"""Configuration file used when BASTION_CONFIG is not set."""

EXIT_SUCCESS = 0
"""Exit code indicating successful program completion."""

EXIT_ERROR = 1
"""Exit code indicating a provider, SSH or unexpected runtime error."""

EXIT_CONFIG_ERROR = 2
"""Exit code indicating invalid configuration or failed attribute resolution."""


class InstanceState(str, Enum):
    """Instance state values."""

    PENDING = "pending"
    RUNNING = "running"
