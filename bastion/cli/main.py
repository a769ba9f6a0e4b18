"""CLI entry point for bastion."""

from __future__ import annotations

import functools
import logging
import os
import sys
from typing import Any

import fire
import paramiko

from bastion.constants import EXIT_CONFIG_ERROR, EXIT_ERROR, EXIT_SUCCESS
from bastion.core.exceptions import (
    InfrastructureStateError,
    NoPublicAddressError,
    ReadinessTimeoutError,
    ResolutionError,
)
from bastion.logging import configure_logging
from bastion.providers import (
    ProviderAPIError,
    ProviderConnectionError,
    ProviderCredentialsError,
    ProviderError,
)
from bastion.providers.aws.utils import get_aws_credentials_error_message


def get_bastion_base_class() -> type:
    """Get Bastion base class on-demand to avoid circular imports.

    Returns
    -------
    type
        Bastion base class
    """
    from bastion.__main__ import Bastion

    return Bastion


class BastionCLI:
    """CLI wrapper turning command results into process exit codes.

    Creates a subclass of Bastion at runtime to avoid circular imports.
    """

    _cached_class: type | None = None

    def __new__(cls, **kwargs: Any) -> Any:
        if cls._cached_class is None:
            Bastion = get_bastion_base_class()

            class BastionCLIImpl(Bastion):
                """CLI wrapper implementation for Bastion."""

                @functools.wraps(Bastion.ssh)
                def ssh(self, *args: Any, **kwargs: Any) -> None:
                    sys.exit(super().ssh(*args, **kwargs))

                @functools.wraps(Bastion.cleanup)
                def cleanup(self, *args: Any, **kwargs: Any) -> None:
                    sys.exit(super().cleanup(*args, **kwargs))

            cls._cached_class = BastionCLIImpl

        return cls._cached_class(**kwargs)


def handle_credentials_error(debug_mode: bool) -> None:
    """Handle provider credentials error.

    Raises
    ------
    ProviderCredentialsError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(get_aws_credentials_error_message(), file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_value_error(error: ValueError, debug_mode: bool) -> None:
    """Handle configuration, state and resolution errors.

    Parameters
    ----------
    error : ValueError
        The value error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ValueError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    if isinstance(error, ResolutionError):
        print(f"Cannot resolve cluster resources: {error}", file=sys.stderr)
    elif isinstance(error, InfrastructureStateError):
        print(f"Invalid infrastructure state: {error}", file=sys.stderr)
    else:
        print(f"Configuration error: {error}", file=sys.stderr)

    sys.exit(EXIT_CONFIG_ERROR)


def handle_api_error(error: ProviderAPIError, debug_mode: bool) -> None:
    """Handle provider API error with context-specific messages.

    Parameters
    ----------
    error : ProviderAPIError
        The API error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ProviderAPIError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    error_code = error.error_code

    if error_code == "UnauthorizedOperation":
        print("Insufficient IAM permissions\n", file=sys.stderr)
        print("Your cloud credentials need permission to:", file=sys.stderr)
        print(
            "  - Describe, run and terminate instances",
            file=sys.stderr,
        )
        print(
            "  - Describe, create and delete security groups and their ingress rules",
            file=sys.stderr,
        )
        print("  - Pass the bastion IAM instance profile", file=sys.stderr)
    elif error_code in ["InstanceLimitExceeded", "RequestLimitExceeded"]:
        print("Cloud quota exceeded\n", file=sys.stderr)
        print("Run `bastion cleanup <cluster>` to remove leftover bastions.", file=sys.stderr)
    elif error_code in ["ExpiredToken", "RequestExpired", "ExpiredTokenException"]:
        print("Cloud credentials have expired\n", file=sys.stderr)
        print("Fix it:", file=sys.stderr)
        print("  aws sso login           # If using AWS SSO", file=sys.stderr)
        print("  aws configure           # Re-configure credentials", file=sys.stderr)
    else:
        print(f"Cloud API error: {error}", file=sys.stderr)

    sys.exit(EXIT_ERROR)


def handle_connection_error(error: ProviderConnectionError, debug_mode: bool) -> None:
    """Handle failure to reach the cloud API.

    Raises
    ------
    ProviderConnectionError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Could not reach the cloud API: {error}", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_provider_error(error: ProviderError, debug_mode: bool) -> None:
    """Handle any other cloud SDK failure.

    Raises
    ------
    ProviderError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Cloud provider error: {error}", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_ssh_error(error: Exception, debug_mode: bool) -> None:
    """Handle SSH connectivity and key errors.

    Raises
    ------
    OSError, paramiko.SSHException
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"SSH error: {error}\n", file=sys.stderr)
    print("This usually means:", file=sys.stderr)
    print("  - The identity file or its public key cannot be read", file=sys.stderr)
    print("  - The bastion is not yet accepting connections", file=sys.stderr)
    print("  - A firewall blocks port 22 from this machine", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_runtime_error(error: RuntimeError, debug_mode: bool) -> None:
    """Handle readiness failures and unexpected runtime errors.

    Raises
    ------
    RuntimeError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    if isinstance(error, (ReadinessTimeoutError, NoPublicAddressError)):
        print(f"Bastion host not ready: {error}", file=sys.stderr)
    else:
        print(f"Unexpected error: {error}", file=sys.stderr)

    sys.exit(EXIT_ERROR)


def main() -> None:
    """Entry point for Fire CLI with graceful error handling.

    Fire maps the methods of the Bastion class to commands (``ssh``,
    ``cleanup``, ``init``). Errors are reported on stderr and mapped to exit
    codes; set BASTION_DEBUG=1 to get the traceback instead.
    """
    debug_mode = os.environ.get("BASTION_DEBUG") == "1"

    configure_logging(
        sys.stdout, sys.stderr, level=logging.DEBUG if debug_mode else logging.INFO
    )

    try:
        fire.Fire(BastionCLI())
    except ProviderCredentialsError:
        handle_credentials_error(debug_mode)
    except ProviderAPIError as e:
        handle_api_error(e, debug_mode)
    except ProviderConnectionError as e:
        handle_connection_error(e, debug_mode)
    except ProviderError as e:
        handle_provider_error(e, debug_mode)
    except ValueError as e:
        handle_value_error(e, debug_mode)
    except (OSError, paramiko.SSHException) as e:
        handle_ssh_error(e, debug_mode)
    except RuntimeError as e:
        handle_runtime_error(e, debug_mode)

    sys.exit(EXIT_SUCCESS)
