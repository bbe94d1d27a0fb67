"""CircleCI REST API client."""

from circleci_provisioner.client.client import CircleCIClient
from circleci_provisioner.client.errors import (
    APIError,
    CircleCIError,
    ConfigurationError,
    ConflictError,
    RetryExhaustedError,
    TransportError,
)
from circleci_provisioner.client.rest import DEFAULT_BASE_URL, RestClient
from circleci_provisioner.client.retry import RetryPolicy, is_retryable

__all__ = [
    "DEFAULT_BASE_URL",
    "APIError",
    "CircleCIClient",
    "CircleCIError",
    "ConfigurationError",
    "ConflictError",
    "RestClient",
    "RetryExhaustedError",
    "RetryPolicy",
    "TransportError",
    "is_retryable",
]
