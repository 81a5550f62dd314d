"""
Expiry-aware token access.

A stored access token is handed out unchanged while it stays valid for longer than the
refresh buffer. Inside the buffer it is refreshed once, persisted, and the fresh token is
returned. Anything that prevents a usable token (no refresh token, provider rejection,
timeout) degrades to ``None`` so callers can treat the connection as unusable without
handling provider errors.
"""

import logging
from time import time
from typing import Optional

from social.graze.connect.oauth.errors import NetworkTimeout, RefreshFailed
from social.graze.connect.oauth.providers import ProviderClient
from social.graze.connect.oauth.types import (
    PublishableToken,
    SocialConnection,
    TokenUpdate,
)
from social.graze.connect.store.base import ConnectionStore

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_BUFFER = 300


def _publishable(
    connection: SocialConnection, access_token: str, token_expires_at: Optional[int]
) -> PublishableToken:
    return PublishableToken(
        connection_id=connection.id,
        provider=connection.provider,
        access_token=access_token,
        external_id=connection.external_id,
        display_name=connection.display_name,
        token_expires_at=token_expires_at,
    )


def needs_refresh(
    token_expires_at: Optional[int], now: int, refresh_buffer: int
) -> bool:
    if token_expires_at is None:
        return False
    return token_expires_at <= now + refresh_buffer


async def get_valid_token(
    connection: SocialConnection,
    client: ProviderClient,
    store: ConnectionStore,
    *,
    refresh_buffer: int = DEFAULT_REFRESH_BUFFER,
    now: Optional[int] = None,
) -> Optional[PublishableToken]:
    """
    Return a token for ``connection`` that is usable right now, refreshing it if needed.

    Args:
        connection: A connection loaded with its decrypted tokens
        client: The provider variant the connection belongs to
        store: Where a refreshed token is persisted
        refresh_buffer: Seconds before expiry at which a token is considered stale
        now: Current epoch seconds, defaults to the wall clock

    Returns:
        The publishable token, or None when no valid token can be produced
    """
    if now is None:
        now = int(time())

    if connection.access_token is None:
        return None

    if not needs_refresh(connection.token_expires_at, now, refresh_buffer):
        return _publishable(
            connection, connection.access_token, connection.token_expires_at
        )

    if not connection.refresh_token:
        logger.info(
            "Connection %s expires at %s and has no refresh token",
            connection.id,
            connection.token_expires_at,
        )
        return None

    try:
        token_result = await client.refresh_token(connection.refresh_token)
    except (RefreshFailed, NetworkTimeout) as e:
        logger.warning("Refreshing connection %s failed: %s", connection.id, e)
        return None

    token_update = TokenUpdate(
        access_token=token_result.access_token,
        refresh_token=token_result.refresh_token or connection.refresh_token,
        token_expires_at=token_result.expires_at(now),
    )
    await store.update_social_connection_tokens(connection.id, token_update)

    logger.info("Refreshed connection %s", connection.id)
    return _publishable(
        connection, token_update.access_token, token_update.token_expires_at
    )
