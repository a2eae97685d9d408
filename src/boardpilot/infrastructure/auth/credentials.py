"""
Credential Provider

Produces the Authorization header for Boards API calls. Two modes:

- Static token (personal access token): constant ``Basic`` header.
- Client credentials (Microsoft Entra service principal): ``Bearer`` token
  fetched from the tenant token endpoint and cached until five minutes
  before it expires.

The cache is shared by every caller; ``invalidate()`` is a global reset
triggered by the client on 401 responses.
"""

import base64
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx
import structlog

from boardpilot.core.domain.errors import AuthenticationError, ConfigurationError
from boardpilot.core.domain.models import utcnow

logger = structlog.get_logger()

TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
AZURE_DEVOPS_SCOPE = "499b84ac-1321-427f-aa17-267ca6975798/.default"
REFRESH_BUFFER = timedelta(minutes=5)


@dataclass
class ClientCredentials:
    tenant_id: str
    client_id: str
    client_secret: str


@dataclass
class AuthConfig:
    organization_url: str
    pat: Optional[str] = None
    client_credentials: Optional[ClientCredentials] = None


@dataclass
class CachedToken:
    token: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at - REFRESH_BUFFER


class CredentialProvider:
    """Authorization header source for the Boards client."""

    def __init__(
        self,
        config: AuthConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            config: Credential material; either ``pat`` or a complete
                ``client_credentials`` triple is required.
            http_client: Client used for the token exchange. A private
                client is created per exchange when omitted.
            clock: Source of the current time, injectable for tests.

        Raises:
            ConfigurationError: If the credential material is incomplete.
        """
        self.config = config
        self._http_client = http_client
        self._clock = clock
        self._cached_token: Optional[CachedToken] = None
        self.logger = logger.bind(component="credential_provider")
        self._validate_config()

    def _validate_config(self) -> None:
        if not self.config.pat and not self.config.client_credentials:
            raise ConfigurationError(
                "Either a personal access token or client credentials must be provided"
            )

        creds = self.config.client_credentials
        if creds and not (creds.tenant_id and creds.client_id and creds.client_secret):
            raise ConfigurationError(
                "Client credentials require tenant_id, client_id, and client_secret"
            )

    @property
    def uses_static_token(self) -> bool:
        return bool(self.config.pat)

    async def get_access_token(self) -> str:
        if self.config.pat:
            self.logger.debug("credentials.static_token")
            return self.config.pat

        if self._cached_token and self._cached_token.is_valid(self._clock()):
            self.logger.debug("credentials.cached_token")
            return self._cached_token.token

        self.logger.info("credentials.token_refresh")
        self._cached_token = await self._fetch_token()
        return self._cached_token.token

    async def get_auth_header(self) -> str:
        token = await self.get_access_token()

        if self.config.pat:
            encoded = base64.b64encode(f":{token}".encode()).decode()
            return f"Basic {encoded}"

        return f"Bearer {token}"

    def invalidate(self) -> None:
        self.logger.info("credentials.invalidated", had_token=self._cached_token is not None)
        self._cached_token = None

    async def _fetch_token(self) -> CachedToken:
        creds = self.config.client_credentials
        if creds is None:
            raise ConfigurationError("Client credentials not configured")

        url = TOKEN_URL_TEMPLATE.format(tenant_id=creds.tenant_id)
        form = {
            "client_id": creds.client_id,
            "client_secret": creds.client_secret,
            "scope": AZURE_DEVOPS_SCOPE,
            "grant_type": "client_credentials",
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, data=form)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.post(url, data=form)
        except httpx.HTTPError as e:
            self.logger.error("credentials.token_request_failed", error=str(e))
            raise AuthenticationError(
                "Failed to authenticate with client credentials", body=str(e)
            ) from e

        if response.status_code >= 400:
            self.logger.error(
                "credentials.token_rejected",
                status_code=response.status_code,
                body=response.text,
            )
            raise AuthenticationError(
                f"Failed to authenticate with client credentials: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        payload = response.json()
        expires_at = self._clock() + timedelta(seconds=int(payload["expires_in"]))
        self.logger.info("credentials.token_fetched", expires_at=expires_at.isoformat())
        return CachedToken(token=payload["access_token"], expires_at=expires_at)


def create_credential_provider_from_env(
    http_client: Optional[httpx.AsyncClient] = None,
) -> CredentialProvider:
    """
    Build a CredentialProvider from environment variables.

    Reads AZURE_DEVOPS_ORG plus either AZURE_DEVOPS_PAT or the
    AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET triple.

    Raises:
        ConfigurationError: If the organization or credentials are missing.
    """
    organization_url = os.getenv("AZURE_DEVOPS_ORG")
    if not organization_url:
        raise ConfigurationError("AZURE_DEVOPS_ORG environment variable is required")

    config = AuthConfig(organization_url=organization_url)

    pat = os.getenv("AZURE_DEVOPS_PAT")
    if pat:
        if os.getenv("BOARDPILOT_ENV") == "production":
            logger.warning(
                "credentials.static_token_in_production",
                hint="Prefer client credentials in production",
            )
        config.pat = pat
        return CredentialProvider(config, http_client=http_client)

    tenant_id = os.getenv("AZURE_TENANT_ID")
    client_id = os.getenv("AZURE_CLIENT_ID")
    client_secret = os.getenv("AZURE_CLIENT_SECRET")
    if tenant_id and client_id and client_secret:
        config.client_credentials = ClientCredentials(tenant_id, client_id, client_secret)
        return CredentialProvider(config, http_client=http_client)

    raise ConfigurationError(
        "Either AZURE_DEVOPS_PAT or client credentials "
        "(AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET) must be provided"
    )
