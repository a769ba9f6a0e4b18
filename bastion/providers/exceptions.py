"""Provider-agnostic exception hierarchy for cloud operations."""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for all cloud provider errors."""


class ProviderCredentialsError(ProviderError):
    """Raised when cloud credentials are missing or invalid."""


class ProviderConnectionError(ProviderError):
    """Raised when the provider endpoint cannot be reached."""


class ProviderAPIError(ProviderError):
    """Raised when a provider API call fails.

    Parameters
    ----------
    message : str
        Human-readable error message
    error_code : str | None
        Provider error code (e.g., "InvalidGroup.NotFound")
    http_status : int | None
        HTTP status code of the failed call, when known
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.http_status = http_status

    @property
    def is_not_found(self) -> bool:
        """Whether the error says the target resource does not exist."""
        if self.http_status == 404:
            return True
        return bool(self.error_code) and self.error_code.endswith(".NotFound")

    @property
    def is_conflict(self) -> bool:
        """Whether the error says the resource or rule already exists."""
        if self.http_status == 409:
            return True
        return bool(self.error_code) and self.error_code.endswith(".Duplicate")
