"""Issuing and consuming authorization state around an ``OAuthStateStore``."""

import logging
import secrets
from dataclasses import dataclass

from social.graze.connect.oauth.errors import DuplicateState, InvalidStateMetadata
from social.graze.connect.store.base import OAuthStateStore

logger = logging.getLogger(__name__)

STATE_TOKEN_BYTES = 32
STATE_ISSUE_ATTEMPTS = 3


@dataclass(frozen=True)
class AuthorizationGrant:
    user_id: str
    code_verifier: str


def generate_state_token() -> str:
    return secrets.token_urlsafe(STATE_TOKEN_BYTES)


async def issue_state(
    store: OAuthStateStore,
    provider: str,
    user_id: str,
    code_verifier: str,
    ttl_seconds: int,
) -> str:
    """
    Store a fresh state token bound to ``user_id``, ``provider`` and a PKCE verifier.

    A collision with an existing token is regenerated a bounded number of times; the last
    ``DuplicateState`` propagates if every attempt collides.
    """
    attempt = 0
    while True:
        attempt += 1
        state = generate_state_token()
        try:
            await store.store_oauth_state(
                state,
                provider,
                ttl_seconds,
                user_id,
                {"code_verifier": code_verifier},
            )
            return state
        except DuplicateState:
            if attempt >= STATE_ISSUE_ATTEMPTS:
                raise
            logger.warning("State token collision on attempt %d", attempt)


async def consume_state(
    store: OAuthStateStore, state: str, provider: str
) -> AuthorizationGrant:
    consumed = await store.validate_and_consume_oauth_state(state, provider)
    code_verifier = consumed.metadata.get("code_verifier", None)
    if not isinstance(code_verifier, str) or len(code_verifier) == 0:
        raise InvalidStateMetadata(state)
    return AuthorizationGrant(user_id=consumed.user_id, code_verifier=code_verifier)
