import asyncio
from datetime import datetime, timedelta, timezone
import logging
from typing import NoReturn

from aiohttp import web
import sentry_sdk

from social.graze.connect.app.config import (
    STATE_CLEANUP_INTERVAL,
    HealthGaugeAppKey,
    MetricsClientAppKey,
    SettingsAppKey,
)
from social.graze.connect.app.metrics import MetricsClient
from social.graze.connect.model.health import HealthGauge
from social.graze.connect.store.base import OAuthStateStore

logger = logging.getLogger(__name__)


async def publish_health(
    health_gauge: HealthGauge, metrics_client: MetricsClient
) -> None:
    """Decay the gauge by one tick and report the remaining pressure."""
    await health_gauge.decay()
    metrics_client.gauge("health.pressure", await health_gauge.pressure())


async def tick_health_task(app: web.Application) -> NoReturn:
    """
    Decay the health gauge every 30 seconds.
    """

    logger.info("Starting health gauge task")

    health_gauge = app[HealthGaugeAppKey]
    metrics_client = app[MetricsClientAppKey]
    while True:
        await publish_health(health_gauge, metrics_client)
        await asyncio.sleep(30)


async def purge_expired_states(
    state_store: OAuthStateStore, retention_seconds: int, now: datetime
) -> int:
    """Remove state records that expired more than ``retention_seconds`` before ``now``."""
    return await state_store.purge_oauth_states(
        now - timedelta(seconds=retention_seconds)
    )


async def oauth_state_cleanup_task(
    app: web.Application, state_store: OAuthStateStore
) -> NoReturn:
    """
    Background task to purge expired OAuth state records.

    Runs every hour. Records are kept for the retention window after they expire so that late
    callbacks are reported as expired; after that they are only dead weight.
    """
    logger.info("Starting OAuth state cleanup task")

    settings = app[SettingsAppKey]
    metrics_client = app[MetricsClientAppKey]

    while True:
        try:
            await asyncio.sleep(STATE_CLEANUP_INTERVAL)

            purged = await purge_expired_states(
                state_store,
                settings.oauth_state_retention,
                datetime.now(timezone.utc),
            )
            if purged > 0:
                logger.info("Purged %d expired OAuth states", purged)

            metrics_client.increment("task.state_cleanup.purged", purged)

        except Exception as e:
            sentry_sdk.capture_exception(e)
            logger.exception("OAuth state cleanup task failed")
            await app[HealthGaugeAppKey].record_error()
