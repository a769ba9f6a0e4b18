"""Translation of boto3/botocore errors into provider errors."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    HTTPClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from bastion.providers.exceptions import (
    ProviderAPIError,
    ProviderConnectionError,
    ProviderCredentialsError,
    ProviderError,
)

logger = logging.getLogger(__name__)


@contextmanager
def handle_aws_errors() -> Iterator[None]:
    """Convert AWS SDK exceptions raised inside the block to provider errors.

    Raises
    ------
    ProviderCredentialsError
        If credentials are missing or incomplete
    ProviderConnectionError
        If the AWS endpoint cannot be reached or the connection drops
    ProviderAPIError
        If an AWS API call returns an error response
    ProviderError
        For any other AWS SDK failure
    """
    try:
        yield
    except (NoCredentialsError, PartialCredentialsError) as e:
        raise ProviderCredentialsError(str(e)) from e
    except (EndpointConnectionError, HTTPClientError) as e:
        raise ProviderConnectionError(str(e)) from e
    except ClientError as e:
        error = e.response.get("Error", {})
        metadata = e.response.get("ResponseMetadata", {})
        error_code = error.get("Code")
        logger.debug("AWS API error %s: %s", error_code, error.get("Message"))
        raise ProviderAPIError(
            message=error.get("Message") or str(e),
            error_code=error_code,
            http_status=metadata.get("HTTPStatusCode"),
        ) from e
    except BotoCoreError as e:
        raise ProviderError(str(e)) from e
