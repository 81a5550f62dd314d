import asyncio
import contextlib
import logging
from time import time
from typing import Optional

import aiohttp
from aiohttp import web
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
)
import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration

from social.graze.connect.app.config import (
    ConnectionManagerAppKey,
    DatabaseAppKey,
    DatabaseSessionMakerAppKey,
    HealthGaugeAppKey,
    MetricsClientAppKey,
    RedisClientAppKey,
    SessionAppKey,
    Settings,
    SettingsAppKey,
    StateCleanupTaskAppKey,
    TickHealthTaskAppKey,
)
from social.graze.connect.app.handlers.connections import (
    handle_authorize,
    handle_callback,
    handle_disconnect,
    handle_list_connections,
    handle_status,
    handle_token,
)
from social.graze.connect.app.handlers.internal import (
    handle_internal_alive,
    handle_internal_ready,
)
from social.graze.connect.app.metrics import create_metrics_client
from social.graze.connect.app.tasks import oauth_state_cleanup_task, tick_health_task
from social.graze.connect.model.health import HealthGauge
from social.graze.connect.oauth.manager import ConnectionManager
from social.graze.connect.oauth.providers import ProviderRegistry
from social.graze.connect.store.base import OAuthStateStore
from social.graze.connect.store.database import SqlConnectionStore, SqlOAuthStateStore
from social.graze.connect.store.redis_state import RedisOAuthStateStore

logger = logging.getLogger(__name__)


async def background_tasks(app):
    logger.info("Starting up")
    settings: Settings = app[SettingsAppKey]

    engine = create_async_engine(str(settings.pg_dsn))
    app[DatabaseAppKey] = engine
    database_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    app[DatabaseSessionMakerAppKey] = database_session

    trace_config = aiohttp.TraceConfig()

    if settings.debug:

        async def on_request_start(
            session, trace_config_ctx, params: aiohttp.TraceRequestStartParams
        ):
            logger.info("Starting request: %s %s", params.method, params.url)

        async def on_request_end(
            session, trace_config_ctx, params: aiohttp.TraceRequestEndParams
        ):
            logger.info(
                "Ending request: %s %s %s",
                params.method,
                params.url,
                params.response.status,
            )

        trace_config.on_request_start.append(on_request_start)
        trace_config.on_request_end.append(on_request_end)

    app[SessionAppKey] = aiohttp.ClientSession(trace_configs=[trace_config])

    metrics_client = create_metrics_client(
        settings.metrics_backend,
        host=settings.statsd_host,
        port=settings.statsd_port,
        prefix=settings.statsd_prefix,
        debug=settings.debug,
    )
    await metrics_client.connect()
    app[MetricsClientAppKey] = metrics_client

    state_store: OAuthStateStore
    if settings.state_backend == "redis":
        app[RedisClientAppKey] = redis.Redis.from_url(str(settings.redis_dsn))
        state_store = RedisOAuthStateStore(
            app[RedisClientAppKey], retention_seconds=settings.oauth_state_retention
        )
    else:
        state_store = SqlOAuthStateStore(database_session)

    providers = ProviderRegistry.from_credentials(
        settings.provider_credentials(),
        app[SessionAppKey],
        metrics_client,
        timeout=settings.provider_request_timeout,
    )
    if len(providers.configured()) == 0:
        logger.warning("No provider credentials configured")

    app[ConnectionManagerAppKey] = ConnectionManager(
        providers,
        SqlConnectionStore(database_session, settings.encryption_key),
        state_store,
        metrics_client,
        state_ttl=settings.oauth_state_ttl,
        refresh_buffer=settings.token_refresh_buffer,
    )

    logger.info("Startup complete")

    app[TickHealthTaskAppKey] = asyncio.create_task(tick_health_task(app))
    app[StateCleanupTaskAppKey] = asyncio.create_task(
        oauth_state_cleanup_task(app, state_store)
    )

    yield

    logger.info("Shutting down background tasks")

    app[TickHealthTaskAppKey].cancel()
    app[StateCleanupTaskAppKey].cancel()

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[TickHealthTaskAppKey]

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[StateCleanupTaskAppKey]

    await app[DatabaseAppKey].dispose()
    await app[SessionAppKey].close()
    if RedisClientAppKey in app:
        await app[RedisClientAppKey].aclose()
    await app[MetricsClientAppKey].close()


@web.middleware
async def sentry_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status >= 500:
            sentry_sdk.capture_exception(e)
        raise e
    except Exception as e:
        sentry_sdk.capture_exception(e)
        raise e


@web.middleware
async def statsd_middleware(request: web.Request, handler):
    metrics_client = request.app[MetricsClientAppKey]
    request_method: str = request.method
    # Route templates keep provider names and ids out of tag cardinality.
    resource = request.match_info.route.resource
    request_path = resource.canonical if resource is not None else request.path

    start_time: float = time()
    response_status_code = 0

    try:
        response = await handler(request)
        response_status_code = response.status
        return response
    except web.HTTPException as e:
        response_status_code = e.status
        raise e
    except Exception as e:
        metrics_client.increment(
            "server.request.exception",
            1,
            tag_dict={
                "exception": type(e).__name__,
                "path": request_path,
                "method": request_method,
            },
        )
        raise e
    finally:
        metrics_client.timer(
            "server.request.time",
            time() - start_time,
            tag_dict={"path": request_path, "method": request_method},
        )
        metrics_client.increment(
            "server.request.count",
            1,
            tag_dict={
                "path": request_path,
                "method": request_method,
                "status": response_status_code,
            },
        )


def add_routes(app: web.Application) -> None:
    app.add_routes(
        [
            web.get("/internal/alive", handle_internal_alive),
            web.get("/internal/ready", handle_internal_ready),
            web.get("/internal/api/connections", handle_list_connections),
            web.post(
                "/internal/api/connections/{provider}/authorize", handle_authorize
            ),
            web.get("/internal/api/connections/{provider}/status", handle_status),
            web.get("/internal/api/connections/{provider}/token", handle_token),
            web.delete("/internal/api/connections/{provider}", handle_disconnect),
            web.get("/auth/{provider}/callback", handle_callback),
        ]
    )


async def start_web_server(settings: Optional[Settings] = None):

    if settings is None:
        settings = Settings()  # type: ignore
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            send_default_pii=False,
            integrations=[AioHttpIntegration()],
        )
    app = web.Application(middlewares=[statsd_middleware, sentry_middleware])

    app[SettingsAppKey] = settings
    app[HealthGaugeAppKey] = HealthGauge()

    add_routes(app)

    app.cleanup_ctx.append(background_tasks)

    return app
