"""
Crash-safe credential rotation.

The new connection is always created before anything is deleted, so a crash at any point
leaves at least one usable connection. Deletion only targets connections of the same provider
that sort strictly older than the new one by ``(created_at, id)``, so of two rotations racing
for the same user, the newer connection always survives.
"""

import logging
from time import time
from typing import Optional

import sentry_sdk

from social.graze.connect.oauth.errors import RotationPartialFailure
from social.graze.connect.oauth.types import (
    NewSocialConnection,
    ProviderIdentity,
    SocialConnection,
    TokenResult,
)
from social.graze.connect.store.base import ConnectionStore

logger = logging.getLogger(__name__)


async def rotate_connection(
    store: ConnectionStore,
    user_id: str,
    provider: str,
    token_result: TokenResult,
    identity: ProviderIdentity,
    *,
    scopes: str,
    now: Optional[int] = None,
) -> SocialConnection:
    """
    Store a new connection for ``(user_id, provider)`` and retire the ones it supersedes.

    A failed delete is logged and reported, never raised: the new connection is already in
    place and reads pick the most recent one, so the leftover is harmless until the next
    rotation or disconnect removes it.
    """
    if now is None:
        now = int(time())

    created = await store.create_social_connection(
        NewSocialConnection(
            user_id=user_id,
            provider=provider,
            access_token=token_result.access_token,
            refresh_token=token_result.refresh_token,
            external_id=identity.external_id,
            display_name=identity.display_name,
            token_expires_at=token_result.expires_at(now),
            scopes=token_result.scope or scopes,
        )
    )

    connections = await store.get_social_connections_by_user(user_id)
    stale = [
        connection
        for connection in connections
        if connection.provider == provider
        and connection.id != created.id
        and connection.recency_key() < created.recency_key()
    ]

    for connection in stale:
        try:
            await store.delete_social_connection(connection.id)
        except Exception as e:
            partial_failure = RotationPartialFailure(created.id, connection.id)
            partial_failure.__cause__ = e
            sentry_sdk.capture_exception(partial_failure)
            logger.error("%s: %s", partial_failure, e)

    if stale:
        logger.info(
            "Rotated %s connection for %s: %s replaced %d",
            provider,
            user_id,
            created.id,
            len(stale),
        )
    return created
