"""AWS-specific utility functions for bastion."""

from __future__ import annotations

from typing import Any


def extract_instance_from_response(response: dict[str, Any]) -> dict[str, Any]:
    """Extract first instance from AWS describe_instances response.

    Parameters
    ----------
    response : dict[str, Any]
        Response from boto3 describe_instances call

    Returns
    -------
    dict[str, Any]
        The first instance dictionary

    Raises
    ------
    ValueError
        If response has no reservations or instances
    """
    if not response.get("Reservations"):
        raise ValueError("No reservations in response")
    if not response["Reservations"][0].get("Instances"):
        raise ValueError("No instances in reservation")
    return response["Reservations"][0]["Instances"][0]


def collect_instance_addresses(instance: dict[str, Any]) -> list[str]:
    """Collect every address of a described instance, public addresses first.

    Parameters
    ----------
    instance : dict[str, Any]
        Instance dictionary from describe_instances

    Returns
    -------
    list[str]
        Distinct addresses in discovery order
    """
    public: list[str] = []
    private: list[str] = []

    if instance.get("PublicIpAddress"):
        public.append(instance["PublicIpAddress"])
    if instance.get("PrivateIpAddress"):
        private.append(instance["PrivateIpAddress"])

    for interface in instance.get("NetworkInterfaces", []):
        association = interface.get("Association") or {}
        if association.get("PublicIp"):
            public.append(association["PublicIp"])
        for private_address in interface.get("PrivateIpAddresses", []):
            nested = private_address.get("Association") or {}
            if nested.get("PublicIp"):
                public.append(nested["PublicIp"])
            if private_address.get("PrivateIpAddress"):
                private.append(private_address["PrivateIpAddress"])
        for ipv6 in interface.get("Ipv6Addresses", []):
            if ipv6.get("Ipv6Address"):
                public.append(ipv6["Ipv6Address"])

    return list(dict.fromkeys(public + private))


def get_aws_credentials_error_message() -> str:
    """Get standard AWS credentials error message.

    Returns
    -------
    str
        Formatted AWS credentials error message
    """
    return (
        "Cloud credentials not found\n\n"
        "Configure your credentials:\n"
        "  aws configure\n\n"
        "Or set environment variables:\n"
        "  export AWS_ACCESS_KEY_ID=...\n"
        "  export AWS_SECRET_ACCESS_KEY=..."
    )
