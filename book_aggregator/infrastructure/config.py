"""
Configuration loader with Pydantic validation.

Supports:
- YAML file loading
- Environment variable overrides for exchange endpoints
- Validation of rate limits and deadlines at load time

The loaded AppConfig is frozen and passed explicitly to the components that
need it.
"""

from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SUPPORTED_FORMATS = ("coinbase", "gemini", "binance", "kraken")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "text", "clean")


class ConfigError(Exception):
    """Configuration file could not be read as a mapping."""


class ExchangeConfig(BaseModel):
    """One upstream exchange and its request budget."""

    model_config = ConfigDict(frozen=True)

    exchange_id: str
    format: str
    url: str
    symbol: str = ""
    enabled: bool = True
    rate_limit_requests: int = 1
    rate_limit_interval_seconds: float = 2.0

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        v = v.lower()
        if v not in SUPPORTED_FORMATS:
            raise ValueError(f"format must be one of {', '.join(SUPPORTED_FORMATS)}")
        return v

    @field_validator("rate_limit_requests")
    @classmethod
    def validate_requests(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit_requests must be at least 1")
        return v

    @field_validator("rate_limit_interval_seconds")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("rate_limit_interval_seconds must be positive")
        return v

    @property
    def resolved_url(self) -> str:
        """URL with the exchange symbol substituted."""
        return self.url.replace("{symbol}", self.symbol)


def _default_exchanges() -> tuple[ExchangeConfig, ...]:
    return (
        ExchangeConfig(
            exchange_id="coinbase",
            format="coinbase",
            url="https://api.exchange.coinbase.com/products/{symbol}/book?level=2",
            symbol="BTC-USD",
        ),
        ExchangeConfig(
            exchange_id="gemini",
            format="gemini",
            url="https://api.gemini.com/v1/book/{symbol}?limit_bids=0&limit_asks=0",
            symbol="btcusd",
        ),
    )


class AggregationConfig(BaseModel):
    """Aggregation cycle parameters."""

    model_config = ConfigDict(frozen=True)

    pair: str = "BTC-USD"
    deadline_seconds: float = 10.0
    default_quantity: Decimal = Decimal("10.0")
    tiny_level_threshold: Decimal = Decimal("0.0001")

    @field_validator("deadline_seconds")
    @classmethod
    def validate_deadline(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("deadline_seconds must be positive")
        return v

    @field_validator("default_quantity")
    @classmethod
    def validate_quantity(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v <= 0:
            raise ValueError("default_quantity must be a positive number")
        return v

    @property
    def base_asset(self) -> str:
        """Base asset of the pair (BTC for BTC-USD)."""
        return self.pair.replace("/", "-").split("-")[0]


class HTTPConfig(BaseModel):
    """HTTP client parameters shared by all exchange sources."""

    model_config = ConfigDict(frozen=True)

    request_timeout_seconds: float = 30.0
    user_agent: str = "book-aggregator/0.1"


class ObservabilityConfig(BaseModel):
    """Logging and metrics configuration."""

    model_config = ConfigDict(frozen=True)

    log_level: str = "INFO"
    log_format: str = "clean"  # json, text or clean
    metrics_port: int = 0  # 0 disables the metrics server

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        return v

    @field_validator("metrics_port")
    @classmethod
    def validate_metrics_port(cls, v: int) -> int:
        if not 0 <= v <= 65535:
            raise ValueError("metrics_port must be between 0 and 65535")
        return v


class EndpointOverrides(BaseSettings):
    """
    Endpoint URLs taken from the environment.

    COINBASE_API, GEMINI_API, BINANCE_API and KRAKEN_API replace the
    configured URL of the exchange with the matching id.
    """

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False, extra="ignore")

    coinbase_api: str = ""
    gemini_api: str = ""
    binance_api: str = ""
    kraken_api: str = ""

    def for_exchange(self, exchange_id: str) -> str:
        return getattr(self, f"{exchange_id.lower()}_api", "") or ""


class AppConfig(BaseModel):
    """Complete application configuration."""

    model_config = ConfigDict(frozen=True)

    environment: str = "local"

    exchanges: tuple[ExchangeConfig, ...] = Field(default_factory=_default_exchanges)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    @model_validator(mode="after")
    def validate_exchange_ids(self) -> "AppConfig":
        ids = [exchange.exchange_id for exchange in self.exchanges]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"duplicate exchange ids: {', '.join(duplicates)}")
        return self

    @property
    def enabled_exchanges(self) -> tuple[ExchangeConfig, ...]:
        return tuple(exchange for exchange in self.exchanges if exchange.enabled)


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def apply_endpoint_overrides(
    config: AppConfig,
    overrides: EndpointOverrides | None = None,
) -> AppConfig:
    """Return a copy of config with environment endpoint URLs applied."""
    overrides = overrides or EndpointOverrides()

    exchanges = []
    for exchange in config.exchanges:
        url = overrides.for_exchange(exchange.exchange_id)
        exchanges.append(exchange.model_copy(update={"url": url}) if url else exchange)

    return config.model_copy(update={"exchanges": tuple(exchanges)})


def load_config(
    config_path: str | Path | None = None,
    env_overrides: bool = True,
) -> AppConfig:
    """
    Load configuration from YAML file with environment overrides.

    Priority (highest to lowest):
    1. Environment variables (endpoint URLs only)
    2. Specified config file
    3. Defaults
    """
    config_dict: dict[str, Any] = {}

    if config_path:
        config_dict = load_yaml_config(Path(config_path))

    config = AppConfig.model_validate(config_dict)

    if env_overrides:
        config = apply_endpoint_overrides(config)

    return config
