"""Interactive double-hop SSH session through the bastion."""

import logging
import shlex
import socket
import subprocess
import time
from collections.abc import Callable
from pathlib import Path

import paramiko

from bastion.constants import (
    CONNECT_GRACE_SECONDS,
    DEFAULT_SSH_PORT,
    DEFAULT_SSH_USERNAME,
    PORT_CHECK_INTERVAL_SECONDS,
    PORT_CHECK_MAX_ATTEMPTS,
    PORT_CHECK_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

NO_HOST_KEY_CHECKING = ("-o", "StrictHostKeyChecking=no", "-o", "UserKnownHostsFile=/dev/null")


def check_port_reachable(
    host: str,
    port: int = DEFAULT_SSH_PORT,
    max_attempts: int = PORT_CHECK_MAX_ATTEMPTS,
    interval_seconds: float = PORT_CHECK_INTERVAL_SECONDS,
    timeout_seconds: float = PORT_CHECK_TIMEOUT_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Wait until a TCP port accepts connections.

    Parameters
    ----------
    host : str
        Host to connect to
    port : int
        TCP port
    max_attempts : int
        Maximum number of connection attempts
    interval_seconds : float
        Delay between attempts
    timeout_seconds : float
        Timeout of a single attempt
    sleep : Callable[[float], None]
        Sleep function (injectable for tests)

    Raises
    ------
    ConnectionError
        If the port is not reachable after all attempts
    """
    for attempt in range(1, max_attempts + 1):
        try:
            with socket.create_connection((host, port), timeout=timeout_seconds):
                logger.info("IP %s port %s is reachable", host, port)
                return
        except OSError as e:
            logger.debug("Connection to %s:%s failed: %s", host, port, e)

        if attempt < max_attempts:
            logger.info(
                "Waiting %s seconds to retry (attempt %d/%d)",
                interval_seconds,
                attempt,
                max_attempts,
            )
            sleep(interval_seconds)

    raise ConnectionError(f"IP {host} port {port} is not reachable")


def load_public_key(identity_file: str | Path, public_key_file: str | Path | None = None) -> bytes:
    """Return the OpenSSH public key line matching an identity file.

    Uses ``public_key_file`` when given, then ``<identity_file>.pub``, and
    otherwise derives the public key from the private key.

    Parameters
    ----------
    identity_file : str | Path
        Private key used for both SSH hops
    public_key_file : str | Path | None
        Explicit public key file

    Returns
    -------
    bytes
        Public key line (``<type> <base64>``)

    Raises
    ------
    OSError
        If a key file cannot be read
    paramiko.SSHException
        If the private key cannot be parsed
    """
    identity_path = Path(identity_file).expanduser()

    if public_key_file is not None:
        return Path(public_key_file).expanduser().read_bytes().strip()

    sibling = identity_path.with_name(identity_path.name + ".pub")
    if sibling.exists():
        return sibling.read_bytes().strip()

    key = paramiko.PKey.from_path(identity_path)
    return f"{key.get_name()} {key.get_base64()}".encode("utf-8")


class SessionRunner:
    """Open an interactive SSH session to a node through a bastion.

    Parameters
    ----------
    identity_file : str
        Private key used for both hops
    username : str
        Login user on the bastion and the node
    grace_seconds : float
        Delay before the first connection attempt
    sleep : Callable[[float], None]
        Sleep function (injectable for tests)
    run_command : Callable[..., subprocess.CompletedProcess]
        Process runner (injectable for tests)
    port_checker : Callable[[str], None]
        Reachability check for the bastion (injectable for tests)
    """

    def __init__(
        self,
        identity_file: str,
        username: str = DEFAULT_SSH_USERNAME,
        grace_seconds: float = CONNECT_GRACE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        run_command: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        port_checker: Callable[[str], None] = check_port_reachable,
    ) -> None:
        self.identity_file = str(Path(identity_file).expanduser())
        self.username = username
        self.grace_seconds = grace_seconds
        self.sleep = sleep
        self.run_command = run_command
        self.port_checker = port_checker

    def build_command(self, bastion_address: str, node_address: str) -> list[str]:
        """Build the ssh argument vector for the proxied session.

        Parameters
        ----------
        bastion_address : str
            Public address of the bastion
        node_address : str
            Private address of the target node

        Returns
        -------
        list[str]
            Arguments for ``subprocess.run``
        """
        proxy_command = shlex.join(
            [
                "ssh",
                "-W",
                "%h:%p",
                "-i",
                self.identity_file,
                *NO_HOST_KEY_CHECKING,
                f"{self.username}@{bastion_address}",
            ]
        )

        return [
            "ssh",
            "-i",
            self.identity_file,
            "-o",
            f"ProxyCommand={proxy_command}",
            *NO_HOST_KEY_CHECKING,
            f"{self.username}@{node_address}",
        ]

    def run(self, bastion_address: str, node_address: str) -> int:
        """Wait for the bastion, then run the interactive session.

        Blocks until the user leaves the remote shell.

        Parameters
        ----------
        bastion_address : str
            Public address of the bastion
        node_address : str
            Private address of the target node

        Returns
        -------
        int
            Exit status of the ssh client

        Raises
        ------
        ConnectionError
            If the bastion's SSH port never becomes reachable
        """
        logger.info("Waiting %s seconds until ports are open.", self.grace_seconds)
        self.sleep(self.grace_seconds)

        self.port_checker(bastion_address)

        command = self.build_command(bastion_address, node_address)
        logger.debug("Running %s", shlex.join(command))

        result = self.run_command(command, check=False)

        if result.returncode != 0:
            logger.warning("SSH session ended with exit code %s", result.returncode)

        return result.returncode
