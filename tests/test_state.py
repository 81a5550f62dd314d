"""
Tests for issuing and consuming authorization state through the store interface.
"""

from unittest.mock import AsyncMock

import pytest

from social.graze.connect.oauth.errors import (
    DuplicateState,
    InvalidStateMetadata,
    ProviderMismatch,
    StateAlreadyConsumed,
    StateExpired,
    StateNotFound,
)
from social.graze.connect.oauth.state import (
    STATE_ISSUE_ATTEMPTS,
    AuthorizationGrant,
    consume_state,
    issue_state,
)


class TestIssueState:
    async def test_stores_verifier_under_fresh_token(self, state_store):
        state = await issue_state(state_store, "twitter", "user-1", "verifier", 600)

        assert len(state) >= 43
        record = state_store.records[state]
        assert record["provider"] == "twitter"
        assert record["user_id"] == "user-1"
        assert record["metadata"] == {"code_verifier": "verifier"}

    async def test_tokens_are_unique(self, state_store):
        states = {
            await issue_state(state_store, "twitter", "user-1", "verifier", 600)
            for _ in range(20)
        }
        assert len(states) == 20

    async def test_collision_is_regenerated(self):
        store = AsyncMock()
        store.store_oauth_state.side_effect = [DuplicateState("a"), None]

        state = await issue_state(store, "twitter", "user-1", "verifier", 600)

        assert store.store_oauth_state.await_count == 2
        first_state = store.store_oauth_state.await_args_list[0].args[0]
        second_state = store.store_oauth_state.await_args_list[1].args[0]
        assert first_state != second_state
        assert state == second_state

    async def test_gives_up_after_bounded_attempts(self):
        store = AsyncMock()
        store.store_oauth_state.side_effect = DuplicateState("a")

        with pytest.raises(DuplicateState):
            await issue_state(store, "twitter", "user-1", "verifier", 600)

        assert store.store_oauth_state.await_count == STATE_ISSUE_ATTEMPTS


class TestConsumeState:
    async def test_returns_grant_once(self, state_store):
        state = await issue_state(state_store, "twitter", "user-1", "verifier", 600)

        grant = await consume_state(state_store, state, "twitter")
        assert grant == AuthorizationGrant(user_id="user-1", code_verifier="verifier")

        with pytest.raises(StateAlreadyConsumed):
            await consume_state(state_store, state, "twitter")

    async def test_unknown_state(self, state_store):
        with pytest.raises(StateNotFound):
            await consume_state(state_store, "missing", "twitter")

    async def test_expires_exactly_at_ttl(self, state_store, clock):
        state = await issue_state(state_store, "twitter", "user-1", "verifier", 600)

        clock.advance(600)

        with pytest.raises(StateExpired):
            await consume_state(state_store, state, "twitter")

    async def test_valid_just_before_ttl(self, state_store, clock):
        state = await issue_state(state_store, "twitter", "user-1", "verifier", 600)

        clock.advance(599)

        grant = await consume_state(state_store, state, "twitter")
        assert grant.user_id == "user-1"

    async def test_provider_mismatch_does_not_consume(self, state_store):
        state = await issue_state(state_store, "twitter", "user-1", "verifier", 600)

        with pytest.raises(ProviderMismatch) as excinfo:
            await consume_state(state_store, state, "linkedin")
        assert excinfo.value.expected == "twitter"
        assert excinfo.value.actual == "linkedin"

        grant = await consume_state(state_store, state, "twitter")
        assert grant.code_verifier == "verifier"

    async def test_missing_verifier_is_invalid_metadata(self, state_store):
        await state_store.store_oauth_state("bare", "twitter", 600, "user-1", {})

        with pytest.raises(InvalidStateMetadata):
            await consume_state(state_store, "bare", "twitter")
