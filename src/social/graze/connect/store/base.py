"""Abstract collaborators the OAuth core persists through."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from social.graze.connect.oauth.types import (
    ConsumedOAuthState,
    NewSocialConnection,
    SocialConnection,
    TokenUpdate,
)


class OAuthStateStore(ABC):
    """Storage for single-use OAuth ``state`` tokens."""

    @abstractmethod
    async def store_oauth_state(
        self,
        state: str,
        provider: str,
        ttl_seconds: int,
        user_id: str,
        metadata: Dict[str, Any],
    ) -> None:
        """
        Persist a new, unconsumed state record.

        Raises:
            DuplicateState: A record for ``state`` already exists
        """

    @abstractmethod
    async def validate_and_consume_oauth_state(
        self, state: str, provider: str
    ) -> ConsumedOAuthState:
        """
        Atomically check a state record and mark it consumed.

        Exactly one of any number of concurrent callers for the same state succeeds. Failures
        are reported in this order: the record is unknown, it was issued for another provider
        (the record stays unconsumed), it was already consumed, it has expired. Records are
        only kept for the retention window after expiry, so a replay after a purge is
        reported as unknown rather than consumed.

        Raises:
            StateNotFound, ProviderMismatch, StateAlreadyConsumed, StateExpired
        """

    @abstractmethod
    async def purge_oauth_states(self, older_than: datetime) -> int:
        """Delete records that expired before ``older_than`` and return how many went."""


class ConnectionStore(ABC):
    """Storage for social connections.

    Token values handed in and out are plaintext; protecting them at rest is the store's job.
    """

    @abstractmethod
    async def create_social_connection(
        self, connection: NewSocialConnection
    ) -> SocialConnection: ...

    @abstractmethod
    async def get_social_connections_by_user(
        self, user_id: str
    ) -> List[SocialConnection]:
        """All of a user's connections without token values, most recent first."""

    @abstractmethod
    async def get_social_connection_with_decrypted_tokens(
        self, connection_id: str
    ) -> Optional[SocialConnection]: ...

    @abstractmethod
    async def update_social_connection_tokens(
        self, connection_id: str, tokens: TokenUpdate
    ) -> None: ...

    @abstractmethod
    async def delete_social_connection(self, connection_id: str) -> bool:
        """Delete one connection. Returns False when it was already gone."""

    @abstractmethod
    async def has_valid_social_connection(self, user_id: str, provider: str) -> bool:
        """True when a connection exists whose token has not expired or never expires."""
