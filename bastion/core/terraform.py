"""Reader for the outputs of the Terraform state describing cluster infrastructure."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import semver

from bastion.core.exceptions import InfrastructureStateError

logger = logging.getLogger(__name__)

FLAT_OUTPUTS_MIN_VERSION = semver.Version(0, 12, 0)
"""First Terraform version writing outputs at the top level of the state."""

VPC_OUTPUT = "vpc_id"
SUBNET_OUTPUT = "subnet_public_utility_z0"


@dataclass(frozen=True)
class InfrastructureOutputs:
    """Network identifiers read from the infrastructure state.

    Attributes
    ----------
    schema_version : str
        ``terraform_version`` recorded in the state
    vpc_id : str
        VPC the cluster nodes live in
    subnet_id : str
        Public utility subnet of the first zone
    """

    schema_version: str
    vpc_id: str
    subnet_id: str


def read_infrastructure_outputs(path: str | Path) -> InfrastructureOutputs:
    """Read VPC and subnet IDs from a Terraform state file.

    States written by Terraform 0.12 and later keep outputs at
    ``outputs.<name>.value``; older states nest them per module under
    ``modules[].outputs.<name>.value``.

    Parameters
    ----------
    path : str | Path
        Path to the Terraform state JSON

    Returns
    -------
    InfrastructureOutputs
        Schema version with VPC and subnet IDs

    Raises
    ------
    InfrastructureStateError
        If the file cannot be read, is not valid JSON, has no parsable
        ``terraform_version`` or lacks one of the required outputs
    """
    state_file = Path(path).expanduser()

    try:
        state = json.loads(state_file.read_text())
    except OSError as e:
        raise InfrastructureStateError(
            f"Failed to read infrastructure state {state_file}: {e}"
        ) from e
    except json.JSONDecodeError as e:
        raise InfrastructureStateError(
            f"Invalid JSON in infrastructure state {state_file}: {e}"
        ) from e

    return parse_infrastructure_outputs(state)


def parse_infrastructure_outputs(state: Any) -> InfrastructureOutputs:
    """Extract VPC and subnet IDs from a decoded Terraform state.

    Parameters
    ----------
    state : Any
        Decoded state document

    Returns
    -------
    InfrastructureOutputs
        Schema version with VPC and subnet IDs

    Raises
    ------
    InfrastructureStateError
        If the state is malformed or incomplete
    """
    if not isinstance(state, dict):
        raise InfrastructureStateError("Infrastructure state must be a JSON object")

    raw_version = state.get("terraform_version")
    if not isinstance(raw_version, str):
        raise InfrastructureStateError("Infrastructure state has no terraform_version")

    try:
        version = semver.Version.parse(raw_version)
    except ValueError as e:
        raise InfrastructureStateError(
            f"Unparsable terraform_version '{raw_version}'"
        ) from e

    if version >= FLAT_OUTPUTS_MIN_VERSION:
        logger.debug("Reading flat outputs (terraform %s)", raw_version)
        outputs = state.get("outputs")
    else:
        logger.debug("Reading module outputs (terraform %s)", raw_version)
        outputs = _find_module_outputs(state.get("modules"))

    return InfrastructureOutputs(
        schema_version=raw_version,
        vpc_id=_output_value(outputs, VPC_OUTPUT),
        subnet_id=_output_value(outputs, SUBNET_OUTPUT),
    )


def _find_module_outputs(modules: Any) -> dict[str, Any]:
    if not isinstance(modules, list):
        raise InfrastructureStateError("Legacy infrastructure state has no modules list")

    for module in modules:
        if not isinstance(module, dict):
            continue
        outputs = module.get("outputs")
        if isinstance(outputs, dict) and VPC_OUTPUT in outputs:
            return outputs

    raise InfrastructureStateError(
        f"No module in infrastructure state exposes the '{VPC_OUTPUT}' output"
    )


def _output_value(outputs: Any, name: str) -> str:
    if not isinstance(outputs, dict):
        raise InfrastructureStateError("Infrastructure state has no outputs")

    output = outputs.get(name)
    value = output.get("value") if isinstance(output, dict) else None

    if not isinstance(value, str) or not value:
        raise InfrastructureStateError(f"Output '{name}' missing from infrastructure state")

    return value
