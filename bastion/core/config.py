import copy
import ipaddress
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from omegaconf import OmegaConf
from omegaconf.errors import InterpolationResolutionError

from bastion.constants import (
    CONNECT_GRACE_SECONDS,
    DEFAULT_CONFIG_PATH,
    DEFAULT_REGION,
    DEFAULT_SSH_USERNAME,
    READINESS_INTERVAL_SECONDS,
    READINESS_MAX_ATTEMPTS,
    SSH_ALLOWED_CIDR_DEFAULT,
    TEARDOWN_GRACE_SECONDS,
)
from bastion.providers.aws.constants import DEFAULT_BASTION_INSTANCE_TYPE

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Load and merge YAML configuration with defaults."""

    def __init__(self) -> None:
        self.BUILT_IN_DEFAULTS = {
            "region": DEFAULT_REGION,
            "ssh_username": DEFAULT_SSH_USERNAME,
            "identity_file": "~/.ssh/id_rsa",
            "public_key_file": None,
            "instance_type": DEFAULT_BASTION_INSTANCE_TYPE,
            "ssh_allowed_cidr": SSH_ALLOWED_CIDR_DEFAULT,
            "connect_grace_seconds": CONNECT_GRACE_SECONDS,
            "teardown_grace_seconds": TEARDOWN_GRACE_SECONDS,
            "readiness_max_attempts": READINESS_MAX_ATTEMPTS,
            "readiness_interval_seconds": READINESS_INTERVAL_SECONDS,
            "kubeconfig": None,
            "terraform_state": None,
        }

    def load_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Load configuration from YAML file.

        Parameters
        ----------
        config_path : str | None
            Path to YAML config file. If None, checks BASTION_CONFIG env var,
            then falls back to bastion.yaml

        Returns
        -------
        dict[str, Any]
            Parsed configuration with defaults and clusters sections,
            with all variable interpolations resolved

        Raises
        ------
        ValueError
            If the file is not valid YAML or a variable cannot be resolved
        RuntimeError
            If the file exists but cannot be read
        """
        if config_path is None:
            config_path = os.environ.get("BASTION_CONFIG", DEFAULT_CONFIG_PATH)

        config_file = Path(config_path)

        if not config_file.exists():
            logger.debug("Config file %s not found, using built-in defaults", config_file)
            return {"defaults": {}}

        try:
            cfg = OmegaConf.load(config_file)
        except yaml.YAMLError as e:
            logger.error("Failed to parse YAML config file %s: %s", config_file, e)
            raise ValueError(f"Invalid YAML in {config_file}: {e}") from e
        except OSError as e:
            logger.error("Failed to read config file %s: %s", config_file, e)
            raise RuntimeError(f"Failed to read config file {config_file}: {e}") from e

        if cfg is None:
            return {"defaults": {}}

        if "vars" in cfg:
            vars_dict = OmegaConf.to_container(cfg.vars, resolve=False)
            for key, value in vars_dict.items():
                if key not in cfg:
                    cfg[key] = value

        try:
            config = OmegaConf.to_container(cfg, resolve=True, throw_on_missing=True)
        except InterpolationResolutionError as e:
            logger.error("Failed to resolve configuration variables: %s", e)
            raise ValueError(f"Configuration variable resolution error: {e}") from e
        except (ValueError, KeyError, AttributeError) as e:
            logger.error("Failed to resolve configuration variables: %s", e)
            raise ValueError(f"Configuration variable resolution error: {e}") from e

        return config

    def get_cluster_config(
        self, config: dict[str, Any], cluster_name: str | None = None
    ) -> dict[str, Any]:
        """Get merged configuration for a cluster.

        Parameters
        ----------
        config : dict[str, Any]
            Full configuration from YAML
        cluster_name : str | None
            Cluster whose overrides to apply, or None for defaults only

        Returns
        -------
        dict[str, Any]
            Merged configuration (built-in defaults + YAML defaults + cluster
            settings). A cluster without a section gets the defaults.
        """
        merged = copy.deepcopy(self.BUILT_IN_DEFAULTS)

        yaml_defaults = config.get("defaults") or {}
        for key, value in yaml_defaults.items():
            merged[key] = value

        if cluster_name is not None:
            clusters = config.get("clusters") or {}
            cluster_config = clusters.get(cluster_name) or {}
            for key, value in cluster_config.items():
                merged[key] = value

        return merged

    def validate_config(self, config: dict[str, Any]) -> None:
        """Validate configuration has required fields and correct types.

        Parameters
        ----------
        config : dict[str, Any]
            Configuration to validate

        Raises
        ------
        ValueError
            If configuration is invalid
        """
        self._validate_required_fields(config)
        self._validate_optional_fields(config)
        self._validate_timing(config)
        self._validate_cidr(config)

    def _validate_required_fields(self, config: dict[str, Any]) -> None:
        required_validations = {
            "region": (str, "region is required", "region must be a string"),
            "instance_type": (
                str,
                "instance_type is required",
                "instance_type must be a string",
            ),
            "identity_file": (
                str,
                "identity_file is required",
                "identity_file must be a string",
            ),
            "ssh_username": (
                str,
                "ssh_username is required",
                "ssh_username must be a string",
            ),
        }

        for field, (
            expected_type,
            required_msg,
            type_msg,
        ) in required_validations.items():
            if field not in config or config[field] in ("", None):
                raise ValueError(required_msg)

            if not isinstance(config[field], expected_type):
                raise ValueError(type_msg)

        ssh_username = config["ssh_username"]
        pattern: str = r"^[a-z_][a-z0-9_-]{0,31}$"
        if not re.match(pattern, ssh_username):
            raise ValueError(
                f"Invalid ssh_username '{ssh_username}'. "
                f"Must start with lowercase letter or underscore, "
                f"contain only lowercase letters, numbers, underscores, "
                f"and hyphens, and be 1-32 characters long."
            )

    def _validate_optional_fields(self, config: dict[str, Any]) -> None:
        optional_validations = {
            "public_key_file": (str, "public_key_file must be a string"),
            "kubeconfig": (str, "kubeconfig must be a string"),
            "terraform_state": (str, "terraform_state must be a string"),
        }

        for field, (expected_type, type_msg) in optional_validations.items():
            value = config.get(field)
            if value is not None and not isinstance(value, expected_type):
                raise ValueError(type_msg)

    def _validate_timing(self, config: dict[str, Any]) -> None:
        """Validate delays and polling bounds.

        Raises
        ------
        ValueError
            If a delay is negative or the attempt bound is not positive
        """
        for field in (
            "connect_grace_seconds",
            "teardown_grace_seconds",
            "readiness_interval_seconds",
        ):
            value = config.get(field)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{field} must be a number")
            if value < 0:
                raise ValueError(f"{field} must not be negative")

        attempts = config.get("readiness_max_attempts")
        if isinstance(attempts, bool) or not isinstance(attempts, int):
            raise ValueError("readiness_max_attempts must be an integer")
        if attempts < 1:
            raise ValueError("readiness_max_attempts must be at least 1")

    def _validate_cidr(self, config: dict[str, Any]) -> None:
        cidr = config.get("ssh_allowed_cidr")

        if not isinstance(cidr, str):
            raise ValueError("ssh_allowed_cidr must be a string")

        try:
            ipaddress.ip_network(cidr, strict=False)
        except ValueError as e:
            raise ValueError(f"Invalid ssh_allowed_cidr '{cidr}': {e}") from e
