import json
import logging
from typing import Any, Dict, Optional, Type

from aiohttp import web
from jwcrypto import jwt
from jwcrypto.common import JWException

from social.graze.connect.app.config import SettingsAppKey
from social.graze.connect.oauth.types import Provider

logger = logging.getLogger(__name__)


class AuthenticationException(Exception):
    """
    Exception raised for authentication failures on the internal API.

    Static constructors give each failure a stable error code.
    """

    @staticmethod
    def bearer_missing() -> "AuthenticationException":
        return AuthenticationException(
            "error-auth-helper-1000 Missing bearer token"
        )

    @staticmethod
    def jwt_invalid(msg: str = "") -> "AuthenticationException":
        message = "error-auth-helper-1001 Invalid bearer token"
        if msg:
            message = f"{message}: {msg}"
        return AuthenticationException(message)

    @staticmethod
    def jwt_subject_missing() -> "AuthenticationException":
        """JWT is missing the required 'sub' claim."""
        return AuthenticationException("error-auth-helper-1002 JWT missing subject")


def json_error(
    exception_class: Type[web.HTTPException],
    error: str,
    message: Optional[str] = None,
    **extra: Any,
) -> web.HTTPException:
    """Build an HTTP exception with a JSON ``{"error", "message"}`` body."""
    body: Dict[str, Any] = {"error": error}
    if message is not None:
        body["message"] = message
    body.update(extra)
    return exception_class(
        body=json.dumps(body),
        content_type="application/json",
    )


def authenticated_user_id(request: web.Request) -> str:
    """
    Return the user id of an internal API caller.

    Callers send ``Authorization: Bearer <JWT>``. The token must be ES256-signed by a key in
    the configured JWK set; its ``sub`` claim is the user id. Expiry is enforced when the token
    carries an ``exp`` claim.

    Raises:
        HTTPUnauthorized: The header is missing or the token does not verify
    """
    try:
        return _verify_bearer(request)
    except AuthenticationException as e:
        logger.info("Rejected internal API call: %s", e)
        raise json_error(web.HTTPUnauthorized, "Not Authorized", str(e))


def _verify_bearer(request: web.Request) -> str:
    authorization: Optional[str] = request.headers.getone("Authorization", None)
    if (
        authorization is None
        or not authorization.startswith("Bearer ")
        or len(authorization) < 8
    ):
        raise AuthenticationException.bearer_missing()

    settings = request.app[SettingsAppKey]

    try:
        validated_auth_token = jwt.JWT(
            jwt=authorization[7:], key=settings.json_web_keys, algs=["ES256"]
        )
        claims: Dict[str, Any] = json.loads(validated_auth_token.claims)
    except (JWException, ValueError, TypeError) as e:
        raise AuthenticationException.jwt_invalid(str(e)) from e

    subject = claims.get("sub", None)
    if not isinstance(subject, str) or len(subject) == 0:
        raise AuthenticationException.jwt_subject_missing()
    return subject


def provider_from_request(request: web.Request) -> Provider:
    """Resolve the ``{provider}`` path segment, answering 404 for unknown providers."""
    value = request.match_info.get("provider", "")
    try:
        return Provider(value)
    except ValueError:
        raise json_error(
            web.HTTPNotFound, "Unknown provider", f"No provider named {value!r}"
        )
