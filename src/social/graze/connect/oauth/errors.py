"""
Error taxonomy for the OAuth connection lifecycle.

Authorization state failures (replay and CSRF class) and provider failures are kept apart so
that callers can react differently: a failed exchange aborts the connect flow, while a failed
refresh only makes a stored connection unusable. Every message carries a stable
``error-<area>-<code>`` prefix so that log searches and client error mapping do not depend on
the free text that follows it.
"""

from typing import Optional


BODY_TRUNCATE_LENGTH = 512


class ConnectException(Exception):
    """Base class for every failure raised by the connection lifecycle."""


class AuthorizationStateException(ConnectException):
    """The OAuth ``state`` presented on a callback could not be used."""


class DuplicateState(AuthorizationStateException):
    def __init__(self, state: str) -> None:
        super().__init__("error-state-1000 State token already exists")
        self.state = state


class StateNotFound(AuthorizationStateException):
    def __init__(self, state: str) -> None:
        super().__init__("error-state-1001 No matching state")
        self.state = state


class StateExpired(AuthorizationStateException):
    def __init__(self, state: str) -> None:
        super().__init__("error-state-1002 State has expired")
        self.state = state


class StateAlreadyConsumed(AuthorizationStateException):
    def __init__(self, state: str) -> None:
        super().__init__("error-state-1003 State has already been used")
        self.state = state


class ProviderMismatch(AuthorizationStateException):
    def __init__(self, state: str, expected: str, actual: str) -> None:
        super().__init__(
            f"error-state-1004 State was issued for {expected}, not {actual}"
        )
        self.state = state
        self.expected = expected
        self.actual = actual


class InvalidStateMetadata(AuthorizationStateException):
    def __init__(self, state: str) -> None:
        super().__init__("error-state-1005 State is missing its PKCE verifier")
        self.state = state


class ProviderRequestException(ConnectException):
    """
    The provider answered, but not with something usable.

    Carries the HTTP status (0 when the request never produced a response) and the response
    body truncated to ``BODY_TRUNCATE_LENGTH`` characters for diagnostics.
    """

    code = "error-provider-2000"
    operation = "request"

    def __init__(self, provider: str, status: int, body: Optional[str] = None) -> None:
        self.provider = provider
        self.status = status
        self.body = truncate_body(body)
        super().__init__(
            f"{self.code} {provider} {self.operation} failed: {status} {self.body}".rstrip()
        )


class TokenExchangeFailed(ProviderRequestException):
    code = "error-provider-2001"
    operation = "token exchange"


class RefreshFailed(ProviderRequestException):
    code = "error-provider-2002"
    operation = "token refresh"


class NetworkTimeout(ConnectException):
    def __init__(self, provider: str, operation: str, timeout: float) -> None:
        super().__init__(
            f"error-provider-2003 {provider} {operation} timed out after {timeout:g}s"
        )
        self.provider = provider
        self.operation = operation
        self.timeout = timeout


class ProviderNotConfigured(ConnectException):
    def __init__(self, provider: str) -> None:
        super().__init__(f"error-provider-2004 Provider {provider} is not configured")
        self.provider = provider


class RotationPartialFailure(ConnectException):
    """
    The new connection was stored but a superseded one could not be deleted.

    This is never raised out of a rotation. It is built so that it can be logged and reported
    with a traceback, and the duplicate heals on the next rotation or disconnect.
    """

    def __init__(self, new_connection_id: str, stale_connection_id: str) -> None:
        super().__init__(
            f"error-rotation-3000 Failed to delete connection {stale_connection_id} "
            f"superseded by {new_connection_id}"
        )
        self.new_connection_id = new_connection_id
        self.stale_connection_id = stale_connection_id


def truncate_body(body: Optional[str]) -> str:
    if not body:
        return ""
    if len(body) <= BODY_TRUNCATE_LENGTH:
        return body
    return body[:BODY_TRUNCATE_LENGTH] + "..."
