"""
SQL persistence collaborator.

Implements both ``OAuthStateStore`` and ``ConnectionStore`` on SQLAlchemy's async ORM. Each
operation opens its own session and transaction from the shared ``async_sessionmaker``, the
same unit-of-work shape the request handlers use.

State consumption is a single conditional ``UPDATE ... RETURNING``: PostgreSQL row locking
lets exactly one concurrent consumer match ``consumed_at IS NULL``. When nothing matches, a
follow-up read explains why.

Token columns are Fernet ciphertext. Plaintext only leaves this module through
``get_social_connection_with_decrypted_tokens``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from cryptography.fernet import Fernet
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from ulid import ULID

from social.graze.connect.model.connections import (
    OAuthState,
    SocialConnection as SocialConnectionRow,
)
from social.graze.connect.oauth.errors import (
    DuplicateState,
    ProviderMismatch,
    StateAlreadyConsumed,
    StateExpired,
    StateNotFound,
)
from social.graze.connect.oauth.types import (
    ConsumedOAuthState,
    NewSocialConnection,
    SocialConnection,
    TokenUpdate,
)
from social.graze.connect.store.base import ConnectionStore, OAuthStateStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_connection_id() -> str:
    return str(ULID())


class SqlOAuthStateStore(OAuthStateStore):
    def __init__(
        self,
        database_session_maker: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._database_session_maker = database_session_maker
        self._clock = clock

    async def store_oauth_state(
        self,
        state: str,
        provider: str,
        ttl_seconds: int,
        user_id: str,
        metadata: Dict[str, Any],
    ) -> None:
        now = self._clock()
        try:
            async with self._database_session_maker() as database_session:
                async with database_session.begin():
                    database_session.add(
                        OAuthState(
                            state=state,
                            provider=provider,
                            user_id=user_id,
                            payload=metadata,
                            created_at=now,
                            expires_at=now + timedelta(seconds=ttl_seconds),
                            consumed_at=None,
                        )
                    )
        except IntegrityError as e:
            raise DuplicateState(state) from e

    async def validate_and_consume_oauth_state(
        self, state: str, provider: str
    ) -> ConsumedOAuthState:
        now = self._clock()
        async with self._database_session_maker() as database_session:
            async with database_session.begin():
                consume_stmt = (
                    update(OAuthState)
                    .where(
                        OAuthState.state == state,
                        OAuthState.provider == provider,
                        OAuthState.consumed_at.is_(None),
                        OAuthState.expires_at > now,
                    )
                    .values(consumed_at=now)
                    .returning(OAuthState.user_id, OAuthState.payload)
                    .execution_options(synchronize_session=False)
                )
                consumed = (await database_session.execute(consume_stmt)).first()
                if consumed is not None:
                    return ConsumedOAuthState(
                        user_id=consumed.user_id, metadata=dict(consumed.payload or {})
                    )

                record: Optional[OAuthState] = (
                    await database_session.scalars(
                        select(OAuthState).where(OAuthState.state == state)
                    )
                ).first()

                if record is None:
                    raise StateNotFound(state)
                if record.provider != provider:
                    raise ProviderMismatch(state, record.provider, provider)
                if record.consumed_at is not None:
                    raise StateAlreadyConsumed(state)
                if record.expires_at <= now:
                    raise StateExpired(state)

                # Lost the row lock to a consumer that committed between the update and the read.
                raise StateAlreadyConsumed(state)

    async def purge_oauth_states(self, older_than: datetime) -> int:
        async with self._database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    delete(OAuthState).where(OAuthState.expires_at < older_than)
                )
                return result.rowcount or 0


class SqlConnectionStore(ConnectionStore):
    def __init__(
        self,
        database_session_maker: async_sessionmaker[AsyncSession],
        encryption_key: Fernet,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_connection_id,
    ) -> None:
        self._database_session_maker = database_session_maker
        self._encryption_key = encryption_key
        self._clock = clock
        self._id_factory = id_factory

    def _encrypt(self, value: str) -> str:
        return self._encryption_key.encrypt(value.encode()).decode()

    def _decrypt(self, value: str) -> str:
        return self._encryption_key.decrypt(value.encode()).decode()

    def _to_connection(
        self, row: SocialConnectionRow, with_tokens: bool = False
    ) -> SocialConnection:
        connection = SocialConnection(
            id=row.id,
            user_id=row.user_id,
            provider=row.provider,
            external_id=row.external_id,
            display_name=row.display_name,
            token_expires_at=row.token_expires_at,
            scopes=row.scopes or "",
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
        if with_tokens:
            connection.access_token = self._decrypt(row.access_token)
            if row.refresh_token is not None:
                connection.refresh_token = self._decrypt(row.refresh_token)
        return connection

    async def create_social_connection(
        self, connection: NewSocialConnection
    ) -> SocialConnection:
        now = self._clock()
        row = SocialConnectionRow(
            id=self._id_factory(),
            user_id=connection.user_id,
            provider=connection.provider,
            access_token=self._encrypt(connection.access_token),
            refresh_token=(
                self._encrypt(connection.refresh_token)
                if connection.refresh_token
                else None
            ),
            external_id=connection.external_id,
            display_name=connection.display_name,
            token_expires_at=connection.token_expires_at,
            scopes=connection.scopes,
            created_at=now,
            updated_at=now,
        )
        created = self._to_connection(row)
        async with self._database_session_maker() as database_session:
            async with database_session.begin():
                database_session.add(row)

        logger.debug(
            "Created %s connection %s for %s",
            created.provider,
            created.id,
            created.user_id,
        )
        return created

    async def get_social_connections_by_user(
        self, user_id: str
    ) -> List[SocialConnection]:
        async with self._database_session_maker() as database_session:
            stmt = (
                select(SocialConnectionRow)
                .where(SocialConnectionRow.user_id == user_id)
                .order_by(
                    SocialConnectionRow.created_at.desc(),
                    SocialConnectionRow.id.desc(),
                )
            )
            rows = (await database_session.scalars(stmt)).all()
            return [self._to_connection(row) for row in rows]

    async def get_social_connection_with_decrypted_tokens(
        self, connection_id: str
    ) -> Optional[SocialConnection]:
        async with self._database_session_maker() as database_session:
            row: Optional[SocialConnectionRow] = await database_session.get(
                SocialConnectionRow, connection_id
            )
            if row is None:
                return None
            return self._to_connection(row, with_tokens=True)

    async def update_social_connection_tokens(
        self, connection_id: str, tokens: TokenUpdate
    ) -> None:
        async with self._database_session_maker() as database_session:
            async with database_session.begin():
                await database_session.execute(
                    update(SocialConnectionRow)
                    .where(SocialConnectionRow.id == connection_id)
                    .values(
                        access_token=self._encrypt(tokens.access_token),
                        refresh_token=(
                            self._encrypt(tokens.refresh_token)
                            if tokens.refresh_token
                            else None
                        ),
                        token_expires_at=tokens.token_expires_at,
                        updated_at=self._clock(),
                    )
                    .execution_options(synchronize_session=False)
                )

    async def delete_social_connection(self, connection_id: str) -> bool:
        async with self._database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    delete(SocialConnectionRow).where(
                        SocialConnectionRow.id == connection_id
                    )
                )
                return (result.rowcount or 0) > 0

    async def has_valid_social_connection(self, user_id: str, provider: str) -> bool:
        now = int(self._clock().timestamp())
        async with self._database_session_maker() as database_session:
            stmt = (
                select(SocialConnectionRow.id)
                .where(
                    SocialConnectionRow.user_id == user_id,
                    SocialConnectionRow.provider == provider,
                    or_(
                        SocialConnectionRow.token_expires_at.is_(None),
                        SocialConnectionRow.token_expires_at > now,
                    ),
                )
                .limit(1)
            )
            return (await database_session.scalars(stmt)).first() is not None
