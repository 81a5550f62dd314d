"""OAuth state and social connection tables."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import BigInteger, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column

from social.graze.connect.model.base import Base, str64, str512, ulidpk


class OAuthState(Base):
    """Single-use authorization state with the PKCE verifier in its payload.

    Rows are kept past ``expires_at`` until the cleanup task purges them, so a late callback
    is diagnosed as expired rather than unknown.
    """

    __tablename__ = "oauth_states"
    __table_args__ = (Index("idx_oauth_states_expires", "expires_at"),)

    state: Mapped[str] = mapped_column(String(64), primary_key=True)
    provider: Mapped[str64]
    user_id: Mapped[str512]
    payload: Mapped[Any] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    consumed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class SocialConnection(Base):
    """Encrypted provider credentials for one user and provider."""

    __tablename__ = "social_connections"
    __table_args__ = (
        Index(
            "idx_social_connections_user_provider",
            "user_id",
            "provider",
            "created_at",
        ),
    )

    id: Mapped[ulidpk]
    user_id: Mapped[str512]
    provider: Mapped[str64]
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_id: Mapped[str512]
    display_name: Mapped[str512]
    token_expires_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    scopes: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
