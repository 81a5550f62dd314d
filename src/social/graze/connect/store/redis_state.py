"""
OAuth state in Redis.

Each state is one JSON document under ``oauth_state:<state>``, written with ``SET NX`` and a
key TTL of the state lifetime plus a retention window. Records therefore survive long enough
after expiry to be reported as expired instead of unknown, and Redis removes them without a
purge job.

Consumption is an optimistic transaction: ``WATCH`` the key, read and check the document,
then ``MULTI``/``SET`` it back as consumed. A concurrent consumer that commits first
invalidates the watch, and the loser re-reads and sees the consumed record.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from redis import asyncio as redis
from redis.exceptions import WatchError

from social.graze.connect.oauth.errors import (
    DuplicateState,
    ProviderMismatch,
    StateAlreadyConsumed,
    StateExpired,
    StateNotFound,
)
from social.graze.connect.oauth.types import ConsumedOAuthState
from social.graze.connect.store.base import OAuthStateStore

logger = logging.getLogger(__name__)

STATE_KEY_PREFIX = "oauth_state:"


def normalize_redis_string(value: Any) -> str:
    """
    Normalize Redis value to string, handling bytes conversion.
    """
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


def state_key(state: str) -> str:
    return f"{STATE_KEY_PREFIX}{state}"


class RedisOAuthStateStore(OAuthStateStore):
    def __init__(
        self,
        redis_client: redis.Redis,
        retention_seconds: int = 86400,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._redis = redis_client
        self._retention_seconds = retention_seconds
        self._clock = clock

    async def store_oauth_state(
        self,
        state: str,
        provider: str,
        ttl_seconds: int,
        user_id: str,
        metadata: Dict[str, Any],
    ) -> None:
        created_at = self._clock().timestamp()
        record = {
            "provider": provider,
            "user_id": user_id,
            "metadata": metadata,
            "created_at": created_at,
            "expires_at": created_at + ttl_seconds,
            "consumed_at": None,
        }
        stored = await self._redis.set(
            state_key(state),
            json.dumps(record),
            nx=True,
            px=(ttl_seconds + self._retention_seconds) * 1000,
        )
        if not stored:
            raise DuplicateState(state)

    async def validate_and_consume_oauth_state(
        self, state: str, provider: str
    ) -> ConsumedOAuthState:
        key = state_key(state)
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        raise StateNotFound(state)

                    record = json.loads(normalize_redis_string(raw))
                    now = self._clock().timestamp()

                    if record["provider"] != provider:
                        raise ProviderMismatch(state, record["provider"], provider)
                    if record.get("consumed_at") is not None:
                        raise StateAlreadyConsumed(state)
                    if now >= record["expires_at"]:
                        raise StateExpired(state)

                    record["consumed_at"] = now
                    pipe.multi()
                    pipe.set(key, json.dumps(record), keepttl=True)
                    await pipe.execute()

                    return ConsumedOAuthState(
                        user_id=record["user_id"], metadata=record["metadata"] or {}
                    )
                except WatchError:
                    logger.debug("State %s changed while consuming, retrying", key)
                    continue

    async def purge_oauth_states(self, older_than: datetime) -> int:
        # Key TTLs already bound the lifetime of every record.
        return 0
