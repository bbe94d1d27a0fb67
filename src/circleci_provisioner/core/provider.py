"""CircleCI Provider - Connection configuration for the CircleCI API."""

from functools import cached_property
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from circleci_provisioner.client import CircleCIClient, RestClient, RetryPolicy
from circleci_provisioner.client.rest import DEFAULT_BASE_URL
from circleci_provisioner.client.retry import DEFAULT_TIMEOUT


class TokenAuth(BaseModel):
    """Personal API token authentication for CircleCI."""

    token: SecretStr


class CircleCIProvider(BaseModel):
    """Connection configuration for CircleCI.

    Provide a token (and optionally a default organization); the client is
    built lazily and shared by every handler. For tests, inject a client with
    ``from_client``.

    Examples:
        provider = CircleCIProvider(
            auth=TokenAuth(token="my-token"),
            organization="acme",
        )

        # Tests
        provider = CircleCIProvider.from_client(MagicMock())
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    url: str = DEFAULT_BASE_URL
    vcs_type: str = "github"
    organization: str | None = None
    auth: TokenAuth | None = None
    timeout: float = Field(default=DEFAULT_TIMEOUT, ge=0)

    # Injected client (for testing)
    _injected_client: CircleCIClient | None = None

    @classmethod
    def from_client(cls, client: CircleCIClient, *, organization: str | None = None) -> Self:
        """Create a provider with an injected client.

        Args:
            client: A pre-configured CircleCIClient (or a mock of one)
            organization: Provider-level default organization
        """
        provider = cls.model_construct(organization=organization)
        provider._injected_client = client
        return provider

    @cached_property
    def client(self) -> CircleCIClient:
        """Get the CircleCI client."""
        if self._injected_client is not None:
            return self._injected_client

        if self.auth is None:
            raise ValueError(
                "Either provide auth, or use CircleCIProvider.from_client() to inject a client"
            )

        rest = RestClient(
            self.auth.token.get_secret_value(),
            base_url=self.url,
            retry_policy=RetryPolicy(timeout=self.timeout),
        )
        return CircleCIClient(rest, vcs_type=self.vcs_type, organization=self.organization)
