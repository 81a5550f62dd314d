"""
Provider variants.

Every provider exposes the same four operations (``build_authorize_url``, ``exchange_code``,
``refresh_token`` and ``fetch_identity``) and is selected through the ``Provider`` enum, never
by looking attributes up by name. A variant only declares what differs between platforms:
endpoints, scopes, how the client authenticates at the token endpoint, and how the identity
document is shaped.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from time import time
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type

from aiohttp import ClientSession

from social.graze.connect.app.metrics import MetricsClient, NoOpMetricsClient
from social.graze.connect.oauth.authorize import build_authorize_url
from social.graze.connect.oauth.errors import (
    ProviderNotConfigured,
    TokenExchangeFailed,
)
from social.graze.connect.oauth.exchange import (
    DEFAULT_TIMEOUT,
    ClientAuthentication,
    exchange_code,
    fetch_identity_document,
    refresh_access_token,
)
from social.graze.connect.oauth.types import Provider, ProviderIdentity, TokenResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderCredentials:
    client_id: str
    client_secret: str
    redirect_uri: str


class ProviderClient(ABC):
    """Uniform OAuth operations for one provider, bound to the application's credentials."""

    provider: ClassVar[Provider]
    authorize_endpoint: ClassVar[str]
    token_endpoint: ClassVar[str]
    identity_endpoint: ClassVar[str]
    scopes: ClassVar[Tuple[str, ...]]
    client_authentication: ClassVar[ClientAuthentication] = "client_secret_basic"

    def __init__(
        self,
        credentials: ProviderCredentials,
        http_session: ClientSession,
        metrics_client: Optional[MetricsClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.credentials = credentials
        self.http_session = http_session
        self.metrics_client = metrics_client or NoOpMetricsClient()
        self.timeout = timeout

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    def build_authorize_url(self, state: str, code_challenge: str) -> str:
        return build_authorize_url(
            self.authorize_endpoint,
            self.credentials.client_id,
            self.credentials.redirect_uri,
            state,
            code_challenge,
            self.scopes,
        )

    async def exchange_code(self, code: str, code_verifier: str) -> TokenResult:
        start_time = time()
        try:
            return await exchange_code(
                self.http_session,
                self.token_endpoint,
                self.credentials.client_id,
                self.credentials.client_secret,
                code,
                self.credentials.redirect_uri,
                code_verifier,
                provider=self.provider.value,
                client_authentication=self.client_authentication,
                timeout=self.timeout,
            )
        finally:
            self._record_time("exchange", start_time)

    async def refresh_token(self, refresh_token: str) -> TokenResult:
        start_time = time()
        try:
            return await refresh_access_token(
                self.http_session,
                self.token_endpoint,
                self.credentials.client_id,
                self.credentials.client_secret,
                refresh_token,
                provider=self.provider.value,
                client_authentication=self.client_authentication,
                timeout=self.timeout,
            )
        finally:
            self._record_time("refresh", start_time)

    async def fetch_identity(self, access_token: str) -> ProviderIdentity:
        start_time = time()
        try:
            document = await fetch_identity_document(
                self.http_session,
                self.identity_endpoint,
                access_token,
                provider=self.provider.value,
                timeout=self.timeout,
            )
        finally:
            self._record_time("identity", start_time)

        try:
            return self.parse_identity(document)
        except (KeyError, TypeError, ValueError):
            raise TokenExchangeFailed(self.provider.value, 200, str(document))

    @abstractmethod
    def parse_identity(self, document: Dict[str, Any]) -> ProviderIdentity:
        """Adapt the provider's identity envelope. Raise KeyError/TypeError when malformed."""

    def _record_time(self, operation: str, start_time: float) -> None:
        self.metrics_client.timer(
            "provider.request.time",
            time() - start_time,
            tag_dict={"provider": self.provider.value, "operation": operation},
        )


class TwitterClient(ProviderClient):
    """
    X (Twitter) OAuth 2.0 with PKCE.

    Confidential clients authenticate with HTTP Basic. Access tokens last about two hours and a
    refresh token is issued because ``offline.access`` is requested.
    """

    provider = Provider.twitter
    authorize_endpoint = "https://twitter.com/i/oauth2/authorize"
    token_endpoint = "https://api.twitter.com/2/oauth2/token"
    identity_endpoint = "https://api.twitter.com/2/users/me"
    scopes = ("tweet.read", "tweet.write", "users.read", "offline.access")

    def parse_identity(self, document: Dict[str, Any]) -> ProviderIdentity:
        data = document["data"]
        return ProviderIdentity(
            external_id=str(data["id"]), display_name=str(data["username"])
        )


class LinkedInClient(ProviderClient):
    """
    LinkedIn member authorization (OpenID Connect userinfo for identity).

    LinkedIn wants client credentials in the form body, and for this product tier issues no
    refresh token, so a connection becomes unusable once its access token expires.
    """

    provider = Provider.linkedin
    authorize_endpoint = "https://www.linkedin.com/oauth/v2/authorization"
    token_endpoint = "https://www.linkedin.com/oauth/v2/accessToken"
    identity_endpoint = "https://api.linkedin.com/v2/userinfo"
    scopes = ("openid", "profile", "w_member_social")
    client_authentication = "client_secret_post"

    def parse_identity(self, document: Dict[str, Any]) -> ProviderIdentity:
        subject = str(document["sub"])
        return ProviderIdentity(
            external_id=f"urn:li:person:{subject}",
            display_name=str(document.get("name") or subject),
        )


PROVIDER_CLIENTS: Mapping[Provider, Type[ProviderClient]] = {
    Provider.twitter: TwitterClient,
    Provider.linkedin: LinkedInClient,
}


class ProviderRegistry:
    """The provider clients this deployment has credentials for."""

    def __init__(self, clients: Mapping[Provider, ProviderClient]) -> None:
        self._clients = dict(clients)

    def get(self, provider: Provider) -> ProviderClient:
        client = self._clients.get(provider, None)
        if client is None:
            raise ProviderNotConfigured(provider.value)
        return client

    def configured(self) -> Tuple[Provider, ...]:
        return tuple(self._clients.keys())

    @staticmethod
    def from_credentials(
        credentials: Mapping[Provider, ProviderCredentials],
        http_session: ClientSession,
        metrics_client: Optional[MetricsClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> "ProviderRegistry":
        clients: Dict[Provider, ProviderClient] = {}
        for provider, provider_credentials in credentials.items():
            clients[provider] = PROVIDER_CLIENTS[provider](
                provider_credentials, http_session, metrics_client, timeout
            )
            logger.info("Provider registered: %s", provider.value)
        return ProviderRegistry(clients)
