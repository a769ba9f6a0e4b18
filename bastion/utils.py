"""Utility functions for bastion."""

import ipaddress
import logging
import sys
from collections.abc import Iterable
from typing import Any

PRIVATE_RANGE = ipaddress.ip_network("10.0.0.0/8")


def bastion_security_group_name(cluster_name: str) -> str:
    """Return the name of the security group protecting the bastion.

    Parameters
    ----------
    cluster_name : str
        Target cluster name

    Returns
    -------
    str
        ``<cluster>-bsg``
    """
    return f"{cluster_name}-bsg"


def bastion_instance_name(cluster_name: str) -> str:
    """Return the Name tag of the bastion instance.

    Parameters
    ----------
    cluster_name : str
        Target cluster name

    Returns
    -------
    str
        ``<cluster>-bastions``
    """
    return f"{cluster_name}-bastions"


def node_security_group_name(cluster_name: str) -> str:
    """Return the name of the security group protecting the cluster nodes."""
    return f"{cluster_name}-nodes"


def key_pair_name(cluster_name: str) -> str:
    """Return the name of the cluster SSH key pair registered with the provider."""
    return f"{cluster_name}-ssh-publickey"


def is_ip_address(value: str) -> bool:
    """Check whether a string is a valid IPv4 or IPv6 literal.

    Parameters
    ----------
    value : str
        Candidate string

    Returns
    -------
    bool
        True if ``value`` parses as an IP address
    """
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def select_public_address(candidates: Iterable[str]) -> str | None:
    """Pick the first valid IP literal outside 10.0.0.0/8.

    Non-IP values (instance IDs, hostnames, ...) are skipped.

    Parameters
    ----------
    candidates : Iterable[str]
        Address values in provider order

    Returns
    -------
    str | None
        The selected address, or None if no candidate qualifies
    """
    for value in candidates:
        if not is_ip_address(value):
            continue
        address = ipaddress.ip_address(value)
        if address.version == 4 and address in PRIVATE_RANGE:
            continue
        return value
    return None


def extract_instance_id(provider_id: str) -> str:
    """Extract the EC2 instance ID from a Kubernetes node provider ID.

    Parameters
    ----------
    provider_id : str
        Node ``spec.providerID`` (e.g., ``aws:///eu-west-1a/i-0abc``)

    Returns
    -------
    str
        The segment starting with ``i-``, or "" if there is none
    """
    for segment in provider_id.split("/"):
        if segment.startswith("i-"):
            return segment
    return ""


def build_user_data(ssh_public_key: bytes, username: str) -> bytes:
    """Build the cloud-init script installing the operator key on the bastion.

    Parameters
    ----------
    ssh_public_key : bytes
        OpenSSH public key line
    username : str
        Login user to create on the bastion

    Returns
    -------
    bytes
        Shell script for instance user data
    """
    key = ssh_public_key.decode("utf-8").strip()
    script = (
        "#!/bin/bash -eu\n"
        f"id {username} || useradd {username} -mU\n"
        f"mkdir -p /home/{username}/.ssh\n"
        f'echo "{key}" > /home/{username}/.ssh/authorized_keys\n'
        f"chown {username}:{username} /home/{username}/.ssh/authorized_keys\n"
        f"chmod 600 /home/{username}/.ssh/authorized_keys\n"
    )
    return script.encode("utf-8")


def log_and_print_error(message: str, *args: Any) -> None:
    """Log error message and print to stderr.

    Parameters
    ----------
    message : str
        Error message with optional format placeholders
    *args : Any
        Format arguments for message
    """
    logging.error(message, *args)
    formatted_msg = message % args if args else message
    print(f"Error: {formatted_msg}", file=sys.stderr)
