"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``STABLEPAY_``, nested via ``__``)
2. YAML config file (``STABLEPAY_CONFIG_PATH`` env var)
3. Defaults defined here

Every component receives its own section at construction; nothing reads
configuration from module-level state.
"""

from __future__ import annotations

import enum
import math
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stablecoin_pay.engine.models.transaction import TxStatus

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class Environment(enum.StrEnum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


class DatabaseEngine(enum.StrEnum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class Finality(enum.StrEnum):
    """Solana commitment level treated as final for ledger purposes."""

    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------

_USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
_HELIUS_URL = "https://mainnet.helius-rpc.com/?api-key={key}"


class ServerConfig(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="STABLEPAY_SERVER__",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    log_level: str = "info"


class DatabaseConfig(BaseSettings):
    """Database settings."""

    model_config = SettingsConfigDict(
        env_prefix="STABLEPAY_DB__",
        case_sensitive=False,
    )

    engine: DatabaseEngine = Field(
        default=DatabaseEngine.SQLITE,
        description="Database backend: sqlite or postgresql",
    )
    dsn: str = Field(
        default="sqlite+aiosqlite:///./stablecoin_pay.db",
        description="Async database connection string",
    )
    max_idle_connections: int = 5
    max_open_connections: int = 10
    debug_sql: bool = False
    auto_migrate: bool = Field(
        default=True,
        description="Create missing tables on start-up; disable when Alembic owns the schema",
    )


class SolanaConfig(BaseSettings):
    """Solana JSON-RPC settings."""

    model_config = SettingsConfigDict(
        env_prefix="STABLEPAY_SOLANA__",
        case_sensitive=False,
    )

    rpc_url: str = "https://api.mainnet-beta.solana.com"
    helius_api_key: str = ""
    usdc_mint: str = _USDC_MINT
    token_symbol: str = "USDC"
    token_name: str = "USD Coin"
    token_decimals: int = 6
    finality: Finality = Finality.FINALIZED
    request_timeout: float = 30.0

    @property
    def endpoint(self) -> str:
        """RPC endpoint, preferring Helius when an API key is configured."""
        if self.helius_api_key:
            return _HELIUS_URL.format(key=self.helius_api_key)
        return self.rpc_url


class WatcherConfig(BaseSettings):
    """Chain watcher (per-wallet poller) settings."""

    model_config = SettingsConfigDict(
        env_prefix="STABLEPAY_WATCHER__",
        case_sensitive=False,
    )

    enabled: bool = True
    poll_interval: float = 30.0
    concurrency: int = 4
    page_limit: int = Field(default=100, ge=1, le=1000)
    max_pages: int = Field(default=50, ge=1)
    backfill_limit: int = 20
    batch_size: int = 20
    max_rpc_attempts: int = 4
    rpc_backoff_base: float = 0.5
    rpc_backoff_cap: float = 8.0

    @model_validator(mode="after")
    def _walk_can_progress(self) -> Self:
        # A resumed walk keeps the oldest signature of a capped cycle
        if self.page_limit * self.max_pages < 2:
            msg = "page_limit * max_pages must be at least 2"
            raise ValueError(msg)
        return self


class WebhookConfig(BaseSettings):
    """Webhook event creation and delivery settings."""

    model_config = SettingsConfigDict(
        env_prefix="STABLEPAY_WEBHOOK__",
        case_sensitive=False,
    )

    secret: str = "default-webhook-secret-change-in-production"  # noqa: S105
    notify_on: list[TxStatus] = Field(
        default_factory=lambda: [TxStatus.CONFIRMED, TxStatus.FAILED],
        description="Ledger statuses whose transitions produce a webhook event",
    )
    max_attempts: int = Field(default=10, ge=1)
    backoff_base: float = 30.0
    backoff_factor: float = 2.0
    backoff_cap: float = 3600.0
    backoff_jitter: float = Field(default=0.0, ge=0.0, lt=1.0)
    lease_seconds: float = 60.0
    batch_size: int = 50
    concurrency: int = Field(default=10, ge=1)
    delivery_interval: float = 5.0
    request_timeout: float = 10.0

    @model_validator(mode="after")
    def _lease_outlives_pass(self) -> Self:
        # A claimed batch is sent in ceil(batch_size / concurrency) waves
        waves = math.ceil(self.batch_size / self.concurrency)
        if self.lease_seconds <= waves * self.request_timeout:
            msg = (
                f"lease_seconds ({self.lease_seconds}) must exceed "
                f"ceil(batch_size / concurrency) * request_timeout ({waves * self.request_timeout})"
            )
            raise ValueError(msg)
        return self


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="STABLEPAY_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


class TaskConfig(BaseSettings):
    """Background task settings."""

    model_config = SettingsConfigDict(
        env_prefix="STABLEPAY_TASK__",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``STABLEPAY_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="STABLEPAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    solana: SolanaConfig = Field(default_factory=SolanaConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    task: TaskConfig = Field(default_factory=TaskConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                merged = {**val, **values[key]}
                values[key] = merged
        return values

    @property
    def is_production(self) -> bool:
        """Whether the service runs in the production environment."""
        return self.environment == Environment.PRODUCTION

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
