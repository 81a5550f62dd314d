"""
Configuration Module for the Connect Service

Settings are loaded from the environment with Pydantic and shared resources are handed to
handlers and tasks through typed aiohttp AppKeys.

The configuration follows these principles:
1. Environment-based configuration with defaults suitable for development
2. Strong validation and typing through Pydantic
3. Dependency injection through the aiohttp application context
4. Cryptographic material validated at startup, never at first use

Key configuration areas include:
- Service identification and networking
- Database and cache connections
- Cryptographic materials (JWT verification keys, token encryption)
- OAuth state lifetime and token refresh policy
- Provider client credentials
- Monitoring and observability
"""

import asyncio
from typing import Annotated, Dict, Final, Literal, Optional

from aiohttp import ClientSession, web
from cryptography.fernet import Fernet
from jwcrypto import jwk
from pydantic import (
    AliasChoices,
    Field,
    PostgresDsn,
    RedisDsn,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from redis import asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from social.graze.connect.app.metrics import MetricsClient
from social.graze.connect.model.health import HealthGauge
from social.graze.connect.oauth.manager import ConnectionManager
from social.graze.connect.oauth.providers import ProviderCredentials
from social.graze.connect.oauth.types import Provider


class Settings(BaseSettings):
    """
    Application settings for the connect service.

    Environment variables map onto fields by name; aliases keep the deployment variable
    names used elsewhere (``PORT``, ``DATABASE_URL``, ``TELEGRAF_HOST``).
    """

    model_config = SettingsConfigDict(arbitrary_types_allowed=True)

    debug: bool = False
    """
    Enable debug mode for verbose logging and outbound request tracing.
    Set with DEBUG=true environment variable.
    """

    http_port: int = Field(alias="port", default=5100)
    """
    HTTP port for the service to listen on.
    Set with PORT environment variable.
    """

    external_hostname: str = "connect_service"
    """
    Public hostname for the service, used for default provider callback URLs.
    Set with EXTERNAL_HOSTNAME environment variable.
    """

    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    pg_dsn: PostgresDsn = Field(
        "postgresql+asyncpg://postgres:password@db/connect",
        validation_alias=AliasChoices("pg_dsn", "database_url"),
    )  # type: ignore
    """
    PostgreSQL connection string for connections and OAuth state.
    Set with PG_DSN or DATABASE_URL environment variables.
    """

    redis_dsn: RedisDsn = Field(
        "redis://valkey:6379/1?decode_responses=True",
        validation_alias=AliasChoices("redis_dsn", "redis_url"),
    )  # type: ignore
    """
    Redis connection string, used when OAuth state lives in Redis.
    Set with REDIS_DSN or REDIS_URL environment variables.
    """

    state_backend: Literal["database", "redis"] = "database"
    """
    Where OAuth state records are stored.
    Set with STATE_BACKEND environment variable.
    """

    json_web_keys: Annotated[jwk.JWKSet, NoDecode] = jwk.JWKSet()
    """
    JSON Web Key Set used to verify internal API bearer tokens.
    Can be set to a JWKSet object or path to a JSON file containing keys.
    Set with JSON_WEB_KEYS environment variable.
    """

    encryption_key: Fernet = Fernet(Fernet.generate_key())
    """
    Fernet key that encrypts stored provider tokens.
    Can be set to a Fernet object or a url-safe base64 Fernet key string.
    Set with ENCRYPTION_KEY environment variable.
    """

    oauth_state_ttl: int = 600
    """
    Seconds an authorization state stays valid after it is issued.
    Set with OAUTH_STATE_TTL environment variable.
    """

    oauth_state_retention: int = 86400
    """
    Seconds an expired state record is kept so late callbacks are reported as expired.
    Set with OAUTH_STATE_RETENTION environment variable.
    """

    token_refresh_buffer: int = 300
    """
    Tokens expiring within this many seconds are refreshed before they are handed out.
    Set with TOKEN_REFRESH_BUFFER environment variable.
    """

    provider_request_timeout: float = 10.0
    """
    Total timeout in seconds for each request to a provider.
    Set with PROVIDER_REQUEST_TIMEOUT environment variable.
    """

    twitter_client_id: Optional[str] = None
    twitter_client_secret: Optional[str] = None
    twitter_redirect_uri: Optional[str] = None
    """
    X (Twitter) OAuth 2.0 client. The provider is enabled when both the id and secret are
    set; the redirect URI defaults to https://EXTERNAL_HOSTNAME/auth/twitter/callback.
    """

    linkedin_client_id: Optional[str] = None
    linkedin_client_secret: Optional[str] = None
    linkedin_redirect_uri: Optional[str] = None
    """
    LinkedIn OAuth 2.0 client, enabled the same way as the Twitter client.
    """

    metrics_backend: Literal["telegraf", "none"] = "telegraf"
    """
    Metrics backend.
    Set with METRICS_BACKEND environment variable.
    """

    statsd_host: str = Field(alias="TELEGRAF_HOST", default="telegraf")
    """
    StatsD/Telegraf host for metrics collection.
    Set with TELEGRAF_HOST environment variable.
    """

    statsd_port: int = Field(alias="TELEGRAF_PORT", default=8125)
    """
    StatsD/Telegraf port for metrics collection.
    Set with TELEGRAF_PORT environment variable.
    """

    statsd_prefix: str = "connect"
    """
    Prefix for all StatsD metrics from this service.
    Set with STATSD_PREFIX environment variable.
    """

    @field_validator("json_web_keys", mode="before")
    @classmethod
    def decode_json_web_keys(cls, v) -> jwk.JWKSet:
        """
        Accept a JWKSet or the path of a JSON file containing one.

        Raises:
            ValueError: If the input is neither a JWKSet nor a valid file path
        """
        if isinstance(v, jwk.JWKSet):
            return v
        elif isinstance(v, str):
            with open(v) as fd:
                return jwk.JWKSet.from_json(fd.read())
        raise ValueError(
            "json_web_keys must be a JWKSet object or a valid JSON file path"
        )

    @field_validator("encryption_key", mode="before")
    @classmethod
    def decode_encryption_key(cls, v) -> Fernet:
        if isinstance(v, Fernet):
            return v
        elif isinstance(v, (str, bytes)):
            return Fernet(v)
        raise ValueError("encryption_key must be a Fernet object or a Fernet key string")

    @model_validator(mode="after")
    def check_provider_credentials(self) -> "Settings":
        for provider in Provider:
            client_id = getattr(self, f"{provider.value}_client_id")
            client_secret = getattr(self, f"{provider.value}_client_secret")
            if bool(client_id) != bool(client_secret):
                raise ValueError(
                    f"{provider.value}_client_id and {provider.value}_client_secret "
                    "must be set together"
                )
        return self

    def provider_credentials(self) -> Dict[Provider, ProviderCredentials]:
        """Credentials for every provider this deployment is configured for."""
        credentials: Dict[Provider, ProviderCredentials] = {}
        for provider in Provider:
            client_id = getattr(self, f"{provider.value}_client_id")
            client_secret = getattr(self, f"{provider.value}_client_secret")
            if not client_id or not client_secret:
                continue
            redirect_uri = (
                getattr(self, f"{provider.value}_redirect_uri")
                or f"https://{self.external_hostname}/auth/{provider.value}/callback"
            )
            credentials[provider] = ProviderCredentials(
                client_id=client_id,
                client_secret=client_secret,
                redirect_uri=redirect_uri,
            )
        return credentials


STATE_CLEANUP_INTERVAL = 3600
"""Seconds between purges of expired OAuth state records."""

# Application context keys for dependency injection
SettingsAppKey: Final = web.AppKey("settings", Settings)
"""AppKey for accessing the application settings"""

DatabaseAppKey: Final = web.AppKey("database", AsyncEngine)
"""AppKey for accessing the SQLAlchemy async database engine"""

DatabaseSessionMakerAppKey: Final = web.AppKey(
    "database_session_maker", async_sessionmaker[AsyncSession]
)
"""AppKey for accessing the SQLAlchemy async session factory"""

SessionAppKey: Final = web.AppKey("http_session", ClientSession)
"""AppKey for accessing the shared aiohttp client session"""

RedisClientAppKey: Final = web.AppKey("redis_client", redis.Redis)
"""AppKey for the Redis client, present when OAuth state is stored in Redis"""

HealthGaugeAppKey: Final = web.AppKey("health_gauge", HealthGauge)
"""AppKey for accessing the health monitoring gauge"""

MetricsClientAppKey: Final = web.AppKey("metrics_client", MetricsClient)
"""AppKey for the metrics client"""

ConnectionManagerAppKey: Final = web.AppKey("connection_manager", ConnectionManager)
"""AppKey for the connection lifecycle operations"""

TickHealthTaskAppKey: Final = web.AppKey("tick_health_task", asyncio.Task[None])
"""AppKey for the background task that decays the health gauge"""

StateCleanupTaskAppKey: Final = web.AppKey("state_cleanup_task", asyncio.Task[None])
"""AppKey for the background task that purges expired OAuth state"""
