"""AWS-specific constants for bastion provisioning."""

DEFAULT_BASTION_INSTANCE_TYPE = "t2.nano"
"""Instance type for bastion hosts."""

SECURITY_GROUP_DESCRIPTION = "ssh-access"
"""Description attached to bastion security groups."""

SECURITY_GROUP_DELETE_MAX_ATTEMPTS = 5
"""Maximum attempts when deleting a security group that is still in use."""

SECURITY_GROUP_IN_USE_CODES = frozenset(("DependencyViolation", "InvalidGroup.InUse"))
"""Error codes returned while a security group is still referenced."""
