"""
Public connection lifecycle operations.

``ConnectionManager`` composes the PKCE generator, the state store, the provider variants,
the refresher and the rotator into the operations the HTTP layer exposes:

- begin_authorization: issue state and return the provider consent URL
- complete_authorization: consume state, exchange the code, identify the account, rotate
- get_publishable_token: the most recent connection's token, refreshed when close to expiry
- disconnect: remove every connection for a user and provider
- list_connections / has_valid_connection: read-only views for status pages

Nothing is cached between calls; every read goes to the stores.
"""

import logging
from time import time
from typing import Callable, List, Optional

from social.graze.connect.app.metrics import MetricsClient, NoOpMetricsClient
from social.graze.connect.oauth.errors import ConnectException
from social.graze.connect.oauth.pkce import generate_pkce_pair
from social.graze.connect.oauth.providers import ProviderRegistry
from social.graze.connect.oauth.refresh import DEFAULT_REFRESH_BUFFER, get_valid_token
from social.graze.connect.oauth.rotate import rotate_connection
from social.graze.connect.oauth.state import consume_state, issue_state
from social.graze.connect.oauth.types import (
    Provider,
    PublishableToken,
    SocialConnection,
)
from social.graze.connect.store.base import ConnectionStore, OAuthStateStore

logger = logging.getLogger(__name__)

DEFAULT_STATE_TTL = 600


class ConnectionManager:
    def __init__(
        self,
        providers: ProviderRegistry,
        connection_store: ConnectionStore,
        state_store: OAuthStateStore,
        metrics_client: Optional[MetricsClient] = None,
        *,
        state_ttl: int = DEFAULT_STATE_TTL,
        refresh_buffer: int = DEFAULT_REFRESH_BUFFER,
        clock: Callable[[], int] = lambda: int(time()),
    ) -> None:
        self.providers = providers
        self.connection_store = connection_store
        self.state_store = state_store
        self.metrics_client = metrics_client or NoOpMetricsClient()
        self.state_ttl = state_ttl
        self.refresh_buffer = refresh_buffer
        self.clock = clock

    async def begin_authorization(self, user_id: str, provider: Provider) -> str:
        """
        Start connecting ``provider`` for ``user_id``.

        The state record is stored before the URL is built, so the callback can never arrive
        for a state that does not exist yet.

        Returns:
            The provider authorization URL to redirect the user to
        """
        client = self.providers.get(provider)
        pkce_pair = generate_pkce_pair()
        state = await issue_state(
            self.state_store,
            provider.value,
            user_id,
            pkce_pair.code_verifier,
            self.state_ttl,
        )
        self.metrics_client.increment(
            "authorization.begin", 1, tag_dict={"provider": provider.value}
        )
        return client.build_authorize_url(state, pkce_pair.code_challenge)

    async def complete_authorization(
        self, provider: Provider, code: str, state: str
    ) -> SocialConnection:
        """
        Finish the authorization code grant for a provider callback.

        The state is consumed before the code is used; if it is unknown, expired, replayed or
        issued for another provider, the code is never sent to the provider.

        Raises:
            AuthorizationStateException: The state could not be consumed
            TokenExchangeFailed: The provider rejected the code or the identity lookup
            NetworkTimeout: The provider did not answer in time
        """
        client = self.providers.get(provider)
        try:
            grant = await consume_state(self.state_store, state, provider.value)
            token_result = await client.exchange_code(code, grant.code_verifier)
            identity = await client.fetch_identity(token_result.access_token)
            connection = await rotate_connection(
                self.connection_store,
                grant.user_id,
                provider.value,
                token_result,
                identity,
                scopes=client.scope,
                now=self.clock(),
            )
        except ConnectException as e:
            self.metrics_client.increment(
                "authorization.complete",
                1,
                tag_dict={"provider": provider.value, "outcome": type(e).__name__},
            )
            raise

        self.metrics_client.increment(
            "authorization.complete",
            1,
            tag_dict={"provider": provider.value, "outcome": "success"},
        )
        logger.info(
            "Connected %s account %s for %s",
            provider.value,
            connection.external_id,
            connection.user_id,
        )
        return connection

    async def get_publishable_token(
        self, user_id: str, provider: Provider
    ) -> Optional[PublishableToken]:
        """
        Return a token that can be used to publish right now, or None.

        With several connections for the pair (a rotation that could not clean up), the most
        recently created one is used.
        """
        client = self.providers.get(provider)

        candidates = [
            connection
            for connection in await self.connection_store.get_social_connections_by_user(
                user_id
            )
            if connection.provider == provider.value
        ]
        if len(candidates) == 0:
            return None

        latest = max(candidates, key=lambda connection: connection.recency_key())
        connection = (
            await self.connection_store.get_social_connection_with_decrypted_tokens(
                latest.id
            )
        )
        if connection is None:
            return None

        token = await get_valid_token(
            connection,
            client,
            self.connection_store,
            refresh_buffer=self.refresh_buffer,
            now=self.clock(),
        )
        self.metrics_client.increment(
            "token.request",
            1,
            tag_dict={
                "provider": provider.value,
                "outcome": "valid" if token is not None else "invalid",
            },
        )
        return token

    async def disconnect(self, user_id: str, provider: Provider) -> int:
        """Delete every connection for the pair. Returns the number deleted."""
        deleted = 0
        for connection in await self.connection_store.get_social_connections_by_user(
            user_id
        ):
            if connection.provider != provider.value:
                continue
            if await self.connection_store.delete_social_connection(connection.id):
                deleted += 1

        logger.info(
            "Disconnected %s for %s (%d removed)", provider.value, user_id, deleted
        )
        return deleted

    async def list_connections(self, user_id: str) -> List[SocialConnection]:
        return await self.connection_store.get_social_connections_by_user(user_id)

    async def has_valid_connection(self, user_id: str, provider: Provider) -> bool:
        return await self.connection_store.has_valid_social_connection(
            user_id, provider.value
        )
