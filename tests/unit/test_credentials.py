"""
Unit tests for CredentialProvider.

Tests verify:
- Static tokens produce a Basic header without any network call
- Client-credential tokens are fetched once and cached
- Refresh inside the five-minute buffer and after invalidation
- Configuration validation and environment loading
"""

import base64
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from boardpilot.core.domain.errors import AuthenticationError, ConfigurationError
from boardpilot.infrastructure.auth.credentials import (
    AZURE_DEVOPS_SCOPE,
    AuthConfig,
    ClientCredentials,
    CredentialProvider,
    create_credential_provider_from_env,
)

ORG = "https://dev.azure.com/contoso"


class TokenEndpoint:
    """MockTransport handler issuing numbered tokens."""

    def __init__(self, expires_in: int = 3600, status_code: int = 200):
        self.expires_in = expires_in
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="invalid_client")
        return httpx.Response(
            200,
            json={"access_token": f"token-{len(self.requests)}", "expires_in": self.expires_in},
        )


class Clock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def client_credentials_provider(endpoint: TokenEndpoint, clock: Clock) -> CredentialProvider:
    config = AuthConfig(
        organization_url=ORG,
        client_credentials=ClientCredentials("tenant-1", "client-1", "secret-1"),
    )
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
    return CredentialProvider(config, http_client=http_client, clock=clock)


class TestStaticToken:
    """Tests for personal access token mode."""

    @pytest.mark.asyncio
    async def test_basic_header(self):
        """Header is Basic base64(':' + token)."""
        provider = CredentialProvider(AuthConfig(organization_url=ORG, pat="my-pat"))

        header = await provider.get_auth_header()

        expected = base64.b64encode(b":my-pat").decode()
        assert header == f"Basic {expected}"
        assert provider.uses_static_token

    @pytest.mark.asyncio
    async def test_invalidate_is_harmless(self):
        """Invalidating a static token keeps producing the same header."""
        provider = CredentialProvider(AuthConfig(organization_url=ORG, pat="my-pat"))
        before = await provider.get_auth_header()

        provider.invalidate()

        assert await provider.get_auth_header() == before


class TestClientCredentials:
    """Tests for client-credential token exchange and caching."""

    @pytest.mark.asyncio
    async def test_fetches_bearer_token(self):
        """First call exchanges credentials for a bearer token."""
        endpoint = TokenEndpoint()
        provider = client_credentials_provider(endpoint, Clock())

        header = await provider.get_auth_header()

        assert header == "Bearer token-1"
        request = endpoint.requests[0]
        assert request.url.path == "/tenant-1/oauth2/v2.0/token"
        form = parse_qs(request.content.decode())
        assert form["grant_type"] == ["client_credentials"]
        assert form["scope"] == [AZURE_DEVOPS_SCOPE]
        assert form["client_id"] == ["client-1"]

    @pytest.mark.asyncio
    async def test_token_is_cached(self):
        """A valid cached token is reused without another exchange."""
        endpoint = TokenEndpoint()
        clock = Clock()
        provider = client_credentials_provider(endpoint, clock)

        await provider.get_auth_header()
        clock.now += timedelta(minutes=30)
        header = await provider.get_auth_header()

        assert header == "Bearer token-1"
        assert len(endpoint.requests) == 1

    @pytest.mark.asyncio
    async def test_refreshes_within_buffer(self):
        """A token expiring in under five minutes is refreshed."""
        endpoint = TokenEndpoint(expires_in=3600)
        clock = Clock()
        provider = client_credentials_provider(endpoint, clock)

        await provider.get_auth_header()
        clock.now += timedelta(minutes=56)
        header = await provider.get_auth_header()

        assert header == "Bearer token-2"
        assert len(endpoint.requests) == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self):
        """invalidate() drops the cached token."""
        endpoint = TokenEndpoint()
        provider = client_credentials_provider(endpoint, Clock())

        await provider.get_auth_header()
        provider.invalidate()
        header = await provider.get_auth_header()

        assert header == "Bearer token-2"

    @pytest.mark.asyncio
    async def test_rejected_exchange_raises(self):
        """A 4xx from the token endpoint raises AuthenticationError."""
        provider = client_credentials_provider(TokenEndpoint(status_code=401), Clock())

        with pytest.raises(AuthenticationError) as exc_info:
            await provider.get_auth_header()

        assert exc_info.value.status_code == 401
        assert "invalid_client" in exc_info.value.body


class TestConfiguration:
    """Tests for configuration validation."""

    def test_missing_material_rejected(self):
        with pytest.raises(ConfigurationError):
            CredentialProvider(AuthConfig(organization_url=ORG))

    def test_incomplete_client_credentials_rejected(self):
        config = AuthConfig(
            organization_url=ORG,
            client_credentials=ClientCredentials("tenant", "", "secret"),
        )
        with pytest.raises(ConfigurationError):
            CredentialProvider(config)

    def test_from_env_with_pat(self, monkeypatch):
        monkeypatch.setenv("AZURE_DEVOPS_ORG", ORG)
        monkeypatch.setenv("AZURE_DEVOPS_PAT", "env-pat")

        provider = create_credential_provider_from_env()

        assert provider.uses_static_token
        assert provider.config.organization_url == ORG

    def test_from_env_with_client_credentials(self, monkeypatch):
        monkeypatch.setenv("AZURE_DEVOPS_ORG", ORG)
        monkeypatch.delenv("AZURE_DEVOPS_PAT", raising=False)
        monkeypatch.setenv("AZURE_TENANT_ID", "t")
        monkeypatch.setenv("AZURE_CLIENT_ID", "c")
        monkeypatch.setenv("AZURE_CLIENT_SECRET", "s")

        provider = create_credential_provider_from_env()

        assert not provider.uses_static_token
        assert provider.config.client_credentials.tenant_id == "t"

    def test_from_env_without_org(self, monkeypatch):
        monkeypatch.delenv("AZURE_DEVOPS_ORG", raising=False)
        with pytest.raises(ConfigurationError, match="AZURE_DEVOPS_ORG"):
            create_credential_provider_from_env()

    def test_from_env_without_credentials(self, monkeypatch):
        monkeypatch.setenv("AZURE_DEVOPS_ORG", ORG)
        for name in ("AZURE_DEVOPS_PAT", "AZURE_TENANT_ID", "AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET"):
            monkeypatch.delenv(name, raising=False)
        with pytest.raises(ConfigurationError):
            create_credential_provider_from_env()
