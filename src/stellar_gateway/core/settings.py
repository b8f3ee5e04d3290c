"""Application settings and configuration.

This module defines all configuration options for the Stellar AI gateway.
Settings are loaded from environment variables with sensible defaults.
"""

from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Stellar AI Gateway", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(
        default="sqlite:///./data/ai-gateway.db",
        alias="DATABASE_URL",
    )
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Stellar network
    stellar_network: str = Field(default="testnet", alias="STELLAR_NETWORK")
    stellar_horizon_url: str = Field(
        default="https://horizon-testnet.stellar.org",
        alias="STELLAR_HORIZON_URL",
    )
    stellar_http_timeout_seconds: float = Field(
        default=20.0,
        alias="STELLAR_HTTP_TIMEOUT_SECONDS",
    )
    stellar_base_fee: int = Field(default=100, alias="STELLAR_BASE_FEE")
    stellar_tx_timeout_seconds: int = Field(default=180, alias="STELLAR_TX_TIMEOUT_SECONDS")
    stellar_settlement_destination: str | None = Field(
        default=None,
        alias="STELLAR_SETTLEMENT_DESTINATION",
    )
    stellar_min_tx_balance: Decimal = Field(
        default=Decimal("0.0001"),
        alias="STELLAR_MIN_TX_BALANCE",
    )

    # AI providers
    ai_provider: str = Field(default="ollama", alias="AI_PROVIDER")
    ollama_base_url: str = Field(default="http://localhost:11434", alias="OLLAMA_BASE_URL")
    ollama_model: str = Field(default="llama3.2:1b", alias="OLLAMA_MODEL")
    ollama_timeout_seconds: float = Field(default=120.0, alias="OLLAMA_TIMEOUT_SECONDS")
    openai_api_base: str | None = Field(default=None, alias="OPENAI_API_BASE")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-3.5-turbo", alias="OPENAI_MODEL")
    openai_timeout_seconds: float = Field(default=30.0, alias="OPENAI_TIMEOUT_SECONDS")
    ai_status_timeout_seconds: float = Field(default=5.0, alias="AI_STATUS_TIMEOUT_SECONDS")
    mock_min_latency_seconds: float = Field(default=1.0, alias="MOCK_MIN_LATENCY_SECONDS")
    mock_max_latency_seconds: float = Field(default=3.0, alias="MOCK_MAX_LATENCY_SECONDS")

    # Pricing and credits
    price_short_xlm: Decimal = Field(default=Decimal("0.02"), alias="PRICE_SHORT_XLM")
    price_long_xlm: Decimal = Field(default=Decimal("0.05"), alias="PRICE_LONG_XLM")
    short_limit_tokens: int = Field(default=300, alias="SHORT_LIMIT_TOKENS")
    default_asset: str = Field(default="XLM", alias="DEFAULT_ASSET")
    initial_credit_balance: Decimal = Field(
        default=Decimal("5.0"),
        alias="INITIAL_CREDIT_BALANCE",
    )
    max_topup_amount: Decimal = Field(default=Decimal("10"), alias="MAX_TOPUP_AMOUNT")
    max_prompt_length: int = Field(default=10_000, alias="MAX_PROMPT_LENGTH")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_production(self) -> bool:
        """Return True when running with production safeguards enabled."""
        return self.environment.lower() == "production"

    @property
    def is_testnet(self) -> bool:
        """Return True when the gateway targets the Stellar test network."""
        return self.stellar_network.lower() != "public"

    @property
    def friendbot_url(self) -> str | None:
        """Return the account funding helper URL on testnet, otherwise None."""
        return "https://friendbot.stellar.org" if self.is_testnet else None


settings = Settings()
