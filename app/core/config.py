"""Configuration management for the machine audit escrow service.

Configuration is loaded from environment variables. The inference credential
and the custodial account secret are mandatory; the lifespan refuses to start
without them.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LAMPORTS_PER_SOL = 1_000_000_000
DEVNET_RPC_URL = "https://api.devnet.solana.com"


def _split_csv(v: str | list[str]) -> list[str]:
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


class AppEnvironment(StrEnum):
    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class FallbackMode(StrEnum):
    GENERIC = "generic"
    FILENAME_TRIGGER = "filename_trigger"


class AppConfig(BaseSettings):
    name: str = Field(default="machine-audit-escrow")
    env: AppEnvironment = Field(default=AppEnvironment.LOCAL)
    version: str = Field(default="0.1.0")
    debug: bool = Field(default=False)
    log_level: LogLevel = Field(default=LogLevel.INFO)

    model_config = SettingsConfigDict(env_prefix="APP_")

    @field_validator("env", mode="before")
    @classmethod
    def validate_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        if isinstance(v, AppEnvironment):
            return v
        return AppEnvironment(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        if isinstance(v, LogLevel):
            return v
        return LogLevel(v.upper())


class ServerConfig(BaseSettings):
    host: str = Field(default="0.0.0.0")
    port: int = Field(
        default=3000,
        validation_alias=AliasChoices("server_port", "port"),
    )
    workers: int = Field(default=1)

    model_config = SettingsConfigDict(env_prefix="SERVER_", populate_by_name=True)


class SecurityConfig(BaseSettings):
    cors_allowed_origins: str = Field(default="*")
    cors_allow_methods: list[str] = Field(default=["GET", "POST"])
    cors_allow_headers: list[str] = Field(
        default=["Content-Type", "X-Request-ID", "Idempotency-Key"]
    )
    # Three 10 MiB evidence files plus multipart framing.
    max_request_size_bytes: int = Field(default=32 * 1024 * 1024)

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    @field_validator("cors_allowed_origins", mode="after")
    @classmethod
    def validate_cors_allowed_origins(cls, v: str | list[str]) -> list[str]:
        return _split_csv(v)


class ObservabilityConfig(BaseSettings):
    service_name: str = Field(default="machine-audit-escrow")
    otlp_endpoint: str | None = Field(
        default=None,
        validation_alias=AliasChoices("otel_exporter_otlp_endpoint", "otel_otlp_endpoint"),
    )
    otlp_insecure: bool = Field(
        default=True,
        validation_alias=AliasChoices("otel_exporter_otlp_insecure", "otel_otlp_insecure"),
    )
    log_record_format: str = Field(default="json")

    model_config = SettingsConfigDict(env_prefix="OTEL_", populate_by_name=True)


class LLMConfig(BaseSettings):
    """Multimodal inference service (Gemini) settings."""

    api_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("llm_api_key", "gemini_api_key"),
    )
    model: str = Field(default="gemini-1.5-flash")
    enabled: bool = Field(default=True)
    timeout_seconds: int = Field(default=60)

    model_config = SettingsConfigDict(env_prefix="LLM_", populate_by_name=True)


class LedgerConfig(BaseSettings):
    """Custodial account and Solana RPC settings."""

    rpc_url: str = Field(default=DEVNET_RPC_URL)
    cluster: str = Field(default="devnet")
    private_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("ledger_private_key", "solana_private_key"),
    )
    transfer_amount_sol: float = Field(default=0.01, gt=0)
    fee_reserve_lamports: int = Field(default=5000, ge=0)
    commitment: str = Field(default="confirmed")
    request_timeout_seconds: float = Field(default=15.0)
    confirm_timeout_seconds: float = Field(default=60.0)
    confirm_poll_interval_seconds: float = Field(default=1.0)
    explorer_base_url: str = Field(default="https://explorer.solana.com")

    model_config = SettingsConfigDict(env_prefix="LEDGER_", populate_by_name=True)

    @property
    def transfer_amount_lamports(self) -> int:
        return int(round(self.transfer_amount_sol * LAMPORTS_PER_SOL))

    def explorer_url(self, signature: str) -> str:
        return f"{self.explorer_base_url.rstrip('/')}/tx/{signature}?cluster={self.cluster}"


class EvidenceConfig(BaseSettings):
    upload_dir: str = Field(default="uploads")
    max_file_size_bytes: int = Field(default=10 * 1024 * 1024)
    allowed_media_types: list[str] = Field(
        default=[
            "image/jpeg",
            "image/png",
            "image/jpg",
            "image/webp",
            "application/pdf",
            "video/mp4",
            "video/quicktime",
            "video/webm",
            "audio/mpeg",
            "audio/wav",
            "audio/x-wav",
            "audio/ogg",
            "audio/webm",
        ]
    )

    model_config = SettingsConfigDict(env_prefix="EVIDENCE_")


class PolicyConfig(BaseSettings):
    """Verdict and settlement policy knobs."""

    fallback_mode: FallbackMode = Field(default=FallbackMode.FILENAME_TRIGGER)
    trigger_tokens: list[str] = Field(default=["bad", "fail", "broken", "error"])
    authorization_threshold: int = Field(default=70, ge=0, le=100)
    enforce_authorization_guard: bool = Field(default=True)
    idempotency_ttl_seconds: int = Field(default=900)

    model_config = SettingsConfigDict(env_prefix="AUDIT_")

    @field_validator("fallback_mode", mode="before")
    @classmethod
    def validate_fallback_mode(cls, v: str | FallbackMode) -> FallbackMode:
        if isinstance(v, FallbackMode):
            return v
        return FallbackMode(v.strip().lower())

    @field_validator("trigger_tokens", mode="after")
    @classmethod
    def lowercase_tokens(cls, v: list[str]) -> list[str]:
        return [token.lower() for token in v if token]


class Settings(BaseSettings):
    app: AppConfig = Field(default_factory=AppConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    evidence: EvidenceConfig = Field(default_factory=EvidenceConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    metrics_token: str | None = Field(default=None)

    def missing_credentials(self) -> list[str]:
        """Names of mandatory credentials that are not configured."""
        missing: list[str] = []
        if not self.llm.api_key.get_secret_value().strip():
            missing.append("GEMINI_API_KEY")
        if not self.ledger.private_key.get_secret_value().strip():
            missing.append("SOLANA_PRIVATE_KEY")
        return missing


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()
