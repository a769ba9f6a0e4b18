"""AWS provider implementation."""

from __future__ import annotations

from bastion.providers.aws.compute import EC2Provider

__all__ = ["EC2Provider"]
