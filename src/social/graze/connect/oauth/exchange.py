"""
OAuth 2.0 token endpoint and identity endpoint client.

These functions speak the generic wire protocol shared by every provider:

- Authorization code grant with a PKCE verifier (RFC 6749 section 4.1, RFC 7636)
- Refresh token grant (RFC 6749 section 6)
- A bearer-authenticated GET against the provider's identity endpoint

Requests are form encoded and authenticate the client with HTTP Basic by default
(``client_secret_basic``); providers that only accept credentials in the body use
``client_secret_post``. Every request is bounded by a total timeout and nothing is retried:
a failure is reported immediately and only a new caller-initiated attempt tries again.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Literal, Optional, Type

import aiohttp
from aiohttp import BasicAuth, ClientSession, ClientTimeout

from social.graze.connect.oauth.errors import (
    NetworkTimeout,
    ProviderRequestException,
    RefreshFailed,
    TokenExchangeFailed,
)
from social.graze.connect.oauth.types import TokenResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

ClientAuthentication = Literal["client_secret_basic", "client_secret_post"]


def _parse_token_response(
    provider: str,
    status: int,
    text: str,
    failure: Type[ProviderRequestException],
) -> TokenResult:
    try:
        body = json.loads(text)
    except ValueError:
        raise failure(provider, status, text)

    if not isinstance(body, dict):
        raise failure(provider, status, text)

    access_token = body.get("access_token", None)
    if not isinstance(access_token, str) or len(access_token) == 0:
        raise failure(provider, status, text)

    expires_in = body.get("expires_in", None)
    try:
        expires_in_seconds = int(expires_in) if expires_in is not None else None
    except (TypeError, ValueError):
        raise failure(provider, status, text)

    refresh_token = body.get("refresh_token", None)
    scope = body.get("scope", None)
    for optional in (refresh_token, scope):
        if optional is not None and not isinstance(optional, str):
            raise failure(provider, status, text)

    return TokenResult(
        access_token=access_token,
        refresh_token=refresh_token or None,
        expires_in_seconds=expires_in_seconds,
        scope=scope,
    )


async def _post_token_request(
    http_session: ClientSession,
    provider: str,
    operation: str,
    token_endpoint: str,
    client_id: str,
    client_secret: str,
    form: Dict[str, str],
    client_authentication: ClientAuthentication,
    timeout: float,
    failure: Type[ProviderRequestException],
) -> TokenResult:
    auth: Optional[BasicAuth] = None
    if client_authentication == "client_secret_basic":
        auth = BasicAuth(client_id, client_secret)
    else:
        form = {**form, "client_id": client_id, "client_secret": client_secret}

    try:
        async with http_session.post(
            token_endpoint,
            data=form,
            auth=auth,
            headers={"Accept": "application/json"},
            timeout=ClientTimeout(total=timeout),
        ) as resp:
            text = await resp.text(errors="replace")
            status = resp.status
    except asyncio.TimeoutError:
        raise NetworkTimeout(provider, operation, timeout)
    except aiohttp.ClientError as e:
        raise failure(provider, 0, str(e)) from e

    if status < 200 or status >= 300:
        logger.warning("%s %s rejected with status %s", provider, operation, status)
        raise failure(provider, status, text)

    return _parse_token_response(provider, status, text, failure)


async def exchange_code(
    http_session: ClientSession,
    token_endpoint: str,
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    code_verifier: str,
    *,
    provider: str = "provider",
    client_authentication: ClientAuthentication = "client_secret_basic",
    timeout: float = DEFAULT_TIMEOUT,
) -> TokenResult:
    """
    Trade an authorization code and its PKCE verifier for tokens.

    Raises:
        TokenExchangeFailed: non-2xx status, unparsable body or no access token
        NetworkTimeout: the provider did not answer within ``timeout`` seconds
    """
    return await _post_token_request(
        http_session,
        provider,
        "token exchange",
        token_endpoint,
        client_id,
        client_secret,
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        },
        client_authentication,
        timeout,
        TokenExchangeFailed,
    )


async def refresh_access_token(
    http_session: ClientSession,
    token_endpoint: str,
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    provider: str = "provider",
    client_authentication: ClientAuthentication = "client_secret_basic",
    timeout: float = DEFAULT_TIMEOUT,
) -> TokenResult:
    """
    Use a refresh token to obtain a new access token.

    Raises:
        RefreshFailed: non-2xx status, unparsable body or no access token
        NetworkTimeout: the provider did not answer within ``timeout`` seconds
    """
    return await _post_token_request(
        http_session,
        provider,
        "token refresh",
        token_endpoint,
        client_id,
        client_secret,
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        },
        client_authentication,
        timeout,
        RefreshFailed,
    )


async def fetch_identity_document(
    http_session: ClientSession,
    identity_endpoint: str,
    access_token: str,
    *,
    provider: str = "provider",
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    """
    Fetch the JSON identity document for the account that owns ``access_token``.

    The envelope is provider specific; provider variants turn it into a ``ProviderIdentity``.
    Failures are reported as ``TokenExchangeFailed`` because the identity lookup is the last
    step of completing a connection.
    """
    try:
        async with http_session.get(
            identity_endpoint,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=ClientTimeout(total=timeout),
        ) as resp:
            text = await resp.text(errors="replace")
            status = resp.status
    except asyncio.TimeoutError:
        raise NetworkTimeout(provider, "identity fetch", timeout)
    except aiohttp.ClientError as e:
        raise TokenExchangeFailed(provider, 0, str(e)) from e

    if status < 200 or status >= 300:
        logger.warning("%s identity fetch rejected with status %s", provider, status)
        raise TokenExchangeFailed(provider, status, text)

    try:
        body = json.loads(text)
    except ValueError:
        raise TokenExchangeFailed(provider, status, text)

    if not isinstance(body, dict):
        raise TokenExchangeFailed(provider, status, text)

    return body
