"""Domain types shared by the OAuth layer and its persistence collaborators.

Connections are exchanged as pydantic models. Token fields are plain strings; whether they are
encrypted at rest is the concern of the store that persists them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class Provider(str, Enum):
    """Third-party platforms a user can connect for publishing.

    The value is the provider slug used in URLs, state records and stored connections.
    """

    twitter = "twitter"
    linkedin = "linkedin"


class TokenResult(BaseModel):
    """Token endpoint response for an authorization code or refresh grant.

    ``expires_in_seconds`` is None when the provider did not say the token expires.
    """

    access_token: str
    refresh_token: Optional[str] = None
    expires_in_seconds: Optional[int] = None
    scope: Optional[str] = None

    def expires_at(self, now: int) -> Optional[int]:
        if self.expires_in_seconds is None:
            return None
        return now + self.expires_in_seconds


class ProviderIdentity(BaseModel):
    """The external account a token belongs to."""

    external_id: str
    display_name: str


class ConsumedOAuthState(BaseModel):
    """Payload released by a successful state consumption."""

    user_id: str
    metadata: Dict[str, Any]


class NewSocialConnection(BaseModel):
    user_id: str
    provider: str
    access_token: str
    refresh_token: Optional[str] = None
    external_id: str
    display_name: str
    token_expires_at: Optional[int] = None
    scopes: str = ""


class SocialConnection(BaseModel):
    """A stored credential for one user on one provider.

    Listings leave ``access_token`` and ``refresh_token`` unset; only
    ``get_social_connection_with_decrypted_tokens`` fills them in.
    ``token_expires_at`` is epoch seconds, None meaning the token does not expire.
    """

    id: str
    user_id: str
    provider: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    external_id: str
    display_name: str
    token_expires_at: Optional[int] = None
    scopes: str = ""
    created_at: datetime
    updated_at: datetime

    def recency_key(self):
        """Sort key for "most recently created wins" among duplicates."""
        return (self.created_at, self.id)

    def public_dict(self) -> Dict[str, Any]:
        return self.model_dump(
            mode="json", exclude={"access_token", "refresh_token"}
        )


class TokenUpdate(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_expires_at: Optional[int] = None


class PublishableToken(BaseModel):
    """A token that is safe to use right now, with the account it acts as."""

    connection_id: str
    provider: str
    access_token: str
    external_id: str
    display_name: str
    token_expires_at: Optional[int] = None
