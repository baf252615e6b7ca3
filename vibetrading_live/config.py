"""
Centralized Configuration for the Live Strategy Engine
Uses Pydantic Settings with .env loading.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vibetrading_live.models import TradingMode


class DatabaseSettings(BaseSettings):
    """PostgreSQL database settings."""
    model_config = SettingsConfigDict(env_prefix="POSTGRES_", extra="ignore")

    host: str = "localhost"
    port: int = 5432
    user: str = "trading"
    password: str = "trading_dev"
    db: str = "trading_db"
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build database URL."""
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"


class NatsSettings(BaseSettings):
    """NATS JetStream settings."""
    model_config = SettingsConfigDict(env_prefix="NATS_", extra="ignore")

    url: str = "nats://localhost:4222"
    connect_timeout: int = 10
    reconnect_time_wait: int = 2
    max_reconnect_attempts: int = 60
    stream_name: str = "STRATEGY"


class QuestDBSettings(BaseSettings):
    """QuestDB candle store settings."""
    model_config = SettingsConfigDict(env_prefix="QUESTDB_", extra="ignore")

    host: str = "localhost"
    http_port: int = 9000
    query_timeout: int = 30

    @property
    def http_url(self) -> str:
        """HTTP API URL."""
        return f"http://{self.host}:{self.http_port}"


class EngineSettings(BaseSettings):
    """Live engine sizing and bar-series settings."""
    model_config = SettingsConfigDict(env_prefix="ENGINE_", extra="ignore")

    seed_bar_count: int = Field(default=100, ge=1)
    max_bar_count: Optional[int] = Field(default=500, ge=1)
    bar_timezone: str = "UTC"
    default_trade_amount: Decimal = Decimal("100")


class PaperSettings(BaseSettings):
    """Paper execution settings."""
    model_config = SettingsConfigDict(env_prefix="PAPER_", extra="ignore")

    fee_bps: Decimal = Decimal("10")
    slippage_bps: Decimal = Decimal("0")
    quote_currency: str = "USDT"


class LoggingSettings(BaseSettings):
    """Logging settings."""
    model_config = SettingsConfigDict(extra="ignore")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="text", alias="LOG_FORMAT")


class LiveTradingSettings(BaseSettings):
    """Main live trading settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    mode: TradingMode = Field(default=TradingMode.PAPER, alias="TRADING_MODE")
    standalone_mode: bool = Field(default=False, alias="STANDALONE_MODE")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    nats: NatsSettings = Field(default_factory=NatsSettings)
    questdb: QuestDBSettings = Field(default_factory=QuestDBSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    paper: PaperSettings = Field(default_factory=PaperSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("mode", mode="before")
    @classmethod
    def validate_mode(cls, v: str) -> TradingMode:
        """Validate and convert trading mode."""
        if isinstance(v, TradingMode):
            return v
        return TradingMode(v.lower())


@lru_cache()
def get_settings() -> LiveTradingSettings:
    """Get cached settings instance."""
    return LiveTradingSettings()


def reload_settings() -> LiveTradingSettings:
    """Force reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
