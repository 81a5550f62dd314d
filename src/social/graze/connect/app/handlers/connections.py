"""
Connection Handlers

Request handlers for the connection lifecycle. Internal API endpoints are called by other
services on behalf of a user identified by a bearer JWT; the callback endpoint is where the
provider sends the user back after consent.

Endpoints:
- GET /internal/api/connections - List the caller's connections (no token values)
- POST /internal/api/connections/{provider}/authorize - Start connecting a provider
- GET /internal/api/connections/{provider}/status - Whether a usable connection exists
- GET /internal/api/connections/{provider}/token - A token usable right now, or 404
- DELETE /internal/api/connections/{provider} - Remove every connection for the provider
- GET /auth/{provider}/callback - Provider redirect target

Error mapping:
- Unknown or unconfigured provider: 404
- Callback with ``error``, missing ``code``/``state``, or an unusable state: 400
- Provider rejected the code or the identity lookup: 502
- Provider did not answer in time: 504
"""

import logging

import sentry_sdk
from aiohttp import web

from social.graze.connect.app.config import (
    ConnectionManagerAppKey,
    HealthGaugeAppKey,
    SettingsAppKey,
)
from social.graze.connect.app.handlers.helpers import (
    authenticated_user_id,
    json_error,
    provider_from_request,
)
from social.graze.connect.oauth.errors import (
    AuthorizationStateException,
    NetworkTimeout,
    ProviderNotConfigured,
    TokenExchangeFailed,
)

logger = logging.getLogger(__name__)


async def _internal_error(
    request: web.Request, e: Exception, handler_name: str
) -> web.HTTPException:
    logger.exception(f"Unexpected error in {handler_name}: {type(e).__name__}")
    sentry_sdk.capture_exception(e)
    await request.app[HealthGaugeAppKey].record_error()

    settings = request.app.get(SettingsAppKey)
    if settings is not None and settings.debug:
        return json_error(
            web.HTTPInternalServerError,
            "Internal Server Error",
            str(e),
            error_type=type(e).__name__,
        )
    return json_error(
        web.HTTPInternalServerError,
        "Internal Server Error",
        error_type=type(e).__name__,
    )


def _not_configured(e: ProviderNotConfigured) -> web.HTTPException:
    return json_error(web.HTTPNotFound, "Provider not configured", str(e))


async def handle_list_connections(request: web.Request):
    user_id = authenticated_user_id(request)
    connection_manager = request.app[ConnectionManagerAppKey]
    try:
        connections = await connection_manager.list_connections(user_id)
    except Exception as e:
        raise await _internal_error(request, e, "handle_list_connections")

    return web.json_response(
        {"connections": [connection.public_dict() for connection in connections]}
    )


async def handle_authorize(request: web.Request):
    """
    Start the authorization code flow for the caller.

    Returns ``{"provider", "authorize_url"}``; the caller redirects the user's browser to the
    URL. The state behind it is already stored when this responds.
    """
    user_id = authenticated_user_id(request)
    provider = provider_from_request(request)
    connection_manager = request.app[ConnectionManagerAppKey]
    try:
        authorize_url = await connection_manager.begin_authorization(user_id, provider)
    except ProviderNotConfigured as e:
        raise _not_configured(e)
    except Exception as e:
        raise await _internal_error(request, e, "handle_authorize")

    return web.json_response(
        {"provider": provider.value, "authorize_url": authorize_url}
    )


async def handle_status(request: web.Request):
    user_id = authenticated_user_id(request)
    provider = provider_from_request(request)
    connection_manager = request.app[ConnectionManagerAppKey]
    try:
        connected = await connection_manager.has_valid_connection(user_id, provider)
    except Exception as e:
        raise await _internal_error(request, e, "handle_status")

    return web.json_response({"provider": provider.value, "connected": connected})


async def handle_token(request: web.Request):
    user_id = authenticated_user_id(request)
    provider = provider_from_request(request)
    connection_manager = request.app[ConnectionManagerAppKey]
    try:
        token = await connection_manager.get_publishable_token(user_id, provider)
    except ProviderNotConfigured as e:
        raise _not_configured(e)
    except Exception as e:
        raise await _internal_error(request, e, "handle_token")

    if token is None:
        raise json_error(
            web.HTTPNotFound,
            "No valid connection",
            f"Connect {provider.value} again to publish",
        )
    return web.json_response(token.model_dump(mode="json"))


async def handle_disconnect(request: web.Request):
    user_id = authenticated_user_id(request)
    provider = provider_from_request(request)
    connection_manager = request.app[ConnectionManagerAppKey]
    try:
        deleted = await connection_manager.disconnect(user_id, provider)
    except Exception as e:
        raise await _internal_error(request, e, "handle_disconnect")

    return web.json_response({"provider": provider.value, "deleted": deleted})


async def handle_callback(request: web.Request):
    """
    Complete a connection when the provider redirects the user back.

    Query Parameters:
        code: Authorization code to exchange for tokens
        state: The state token issued with the authorization URL
        error: Set by the provider when the user denied consent or the request was invalid
        error_description: Optional human readable detail for ``error``

    Returns:
        ``{"connected": true, "connection": {...}}`` with the new connection, without tokens
    """
    provider = provider_from_request(request)

    error = request.query.get("error", None)
    if error is not None:
        logger.info("%s authorization returned error %s", provider.value, error)
        raise json_error(
            web.HTTPBadRequest,
            "Authorization failed",
            request.query.get("error_description", None) or error,
            provider_error=error,
        )

    code = request.query.get("code", None)
    state = request.query.get("state", None)
    if not code or not state:
        raise json_error(
            web.HTTPBadRequest, "Invalid request", "Missing code or state parameter"
        )

    connection_manager = request.app[ConnectionManagerAppKey]
    try:
        connection = await connection_manager.complete_authorization(
            provider, code, state
        )
    except ProviderNotConfigured as e:
        raise _not_configured(e)
    except AuthorizationStateException as e:
        logger.warning("Rejected %s callback: %s", provider.value, e)
        raise json_error(web.HTTPBadRequest, "Invalid state", str(e))
    except TokenExchangeFailed as e:
        logger.warning("%s", e)
        raise json_error(web.HTTPBadGateway, "Provider error", str(e))
    except NetworkTimeout as e:
        logger.warning("%s", e)
        raise json_error(web.HTTPGatewayTimeout, "Provider timeout", str(e))
    except Exception as e:
        raise await _internal_error(request, e, "handle_callback")

    return web.json_response(
        {"connected": True, "connection": connection.public_dict()}
    )
