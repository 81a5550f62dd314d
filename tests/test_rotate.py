"""
Tests for create-before-delete connection rotation.
"""

from datetime import timedelta

import pytest

from social.graze.connect.oauth import rotate
from social.graze.connect.oauth.errors import RotationPartialFailure
from social.graze.connect.oauth.rotate import rotate_connection
from social.graze.connect.oauth.types import (
    NewSocialConnection,
    ProviderIdentity,
    TokenResult,
)

IDENTITY = ProviderIdentity(external_id="1460000000", display_name="graze_writer")


def _tokens(access_token: str) -> TokenResult:
    return TokenResult(
        access_token=access_token, refresh_token="refresh", expires_in_seconds=7200
    )


async def _rotate(connection_store, clock, access_token, provider="twitter"):
    return await rotate_connection(
        connection_store,
        "user-1",
        provider,
        _tokens(access_token),
        IDENTITY,
        scopes="tweet.read tweet.write",
        now=clock(),
    )


class TestRotateConnection:
    async def test_first_connection(self, connection_store, clock):
        connection = await _rotate(connection_store, clock, "access-1")

        assert connection.user_id == "user-1"
        assert connection.external_id == "1460000000"
        assert connection.token_expires_at == clock() + 7200
        assert connection.scopes == "tweet.read tweet.write"
        assert [c.id for c in connection_store.for_user("user-1", "twitter")] == [
            connection.id
        ]

    async def test_granted_scope_wins_over_requested(self, connection_store, clock):
        connection = await rotate_connection(
            connection_store,
            "user-1",
            "twitter",
            TokenResult(access_token="a", scope="tweet.read"),
            IDENTITY,
            scopes="tweet.read tweet.write",
            now=clock(),
        )
        assert connection.scopes == "tweet.read"

    async def test_rotation_leaves_exactly_one(self, connection_store, clock):
        await _rotate(connection_store, clock, "access-1")
        clock.advance(60)
        newest = await _rotate(connection_store, clock, "access-2")

        remaining = connection_store.for_user("user-1", "twitter")
        assert [c.id for c in remaining] == [newest.id]
        assert remaining[0].access_token == "access-2"

    async def test_other_providers_are_untouched(self, connection_store, clock):
        linkedin = await _rotate(connection_store, clock, "li-1", provider="linkedin")
        clock.advance(60)
        await _rotate(connection_store, clock, "access-1")

        assert [c.id for c in connection_store.for_user("user-1", "linkedin")] == [
            linkedin.id
        ]

    async def test_failed_delete_keeps_both_and_returns_newest(
        self, connection_store, clock, monkeypatch
    ):
        reported = []
        monkeypatch.setattr(rotate.sentry_sdk, "capture_exception", reported.append)

        old = await _rotate(connection_store, clock, "access-1")
        clock.advance(60)
        connection_store.fail_deletes = True

        newest = await _rotate(connection_store, clock, "access-2")

        remaining = connection_store.for_user("user-1", "twitter")
        assert {c.id for c in remaining} == {old.id, newest.id}
        assert newest.recency_key() > old.recency_key()

        [partial_failure] = reported
        assert isinstance(partial_failure, RotationPartialFailure)
        assert partial_failure.stale_connection_id == old.id
        assert partial_failure.new_connection_id == newest.id

    async def test_newer_connection_is_never_deleted(self, connection_store, clock):
        """A rotation that loses a race must not delete the connection created after it."""
        newer = await connection_store.create_social_connection(
            NewSocialConnection(
                user_id="user-1",
                provider="twitter",
                access_token="from-racing-rotation",
                external_id="1460000000",
                display_name="graze_writer",
            )
        )
        newer_row = connection_store.connections[newer.id]
        connection_store.connections[newer.id] = newer_row.model_copy(
            update={"created_at": clock.now() + timedelta(seconds=5)}
        )

        slower = await _rotate(connection_store, clock, "access-slow")

        remaining_ids = {c.id for c in connection_store.for_user("user-1", "twitter")}
        assert remaining_ids == {newer.id, slower.id}

    @pytest.mark.parametrize("count", [2, 3])
    async def test_heals_accumulated_duplicates(self, connection_store, clock, count):
        connection_store.fail_deletes = True
        for i in range(count):
            await _rotate(connection_store, clock, f"access-{i}")
            clock.advance(1)
        connection_store.fail_deletes = False

        newest = await _rotate(connection_store, clock, "access-final")

        assert [c.id for c in connection_store.for_user("user-1", "twitter")] == [
            newest.id
        ]
