"""Application configuration using Pydantic Settings V2."""

import socket
from functools import cached_property
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.settings import (
    AppConfig,
    AuthConfig,
    ChatConfig,
    DatabaseConfig,
    LLMConfig,
    QueueConfig,
    RedisConfig,
    ServerConfig,
    WeatherConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.queue.max_attempts).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Provider
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="openai",
        description="LLM provider to use",
    )
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-3.5-turbo",
        description="OpenAI model name",
    )
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Anthropic API key",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Anthropic model name",
    )
    llm_max_tokens: int = Field(
        default=1000,
        ge=1,
        le=16000,
        description="Completion token limit per call",
    )
    llm_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )
    llm_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single completion call",
    )
    llm_response_language: str = Field(
        default="English",
        description="Language the assistant answers in",
    )

    # Weather provider
    weather_geocoding_url: str = Field(
        default="https://geocoding-api.open-meteo.com/v1/search",
        description="Geocoding endpoint",
    )
    weather_forecast_url: str = Field(
        default="https://api.open-meteo.com/v1/forecast",
        description="Daily forecast endpoint",
    )
    weather_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single weather call",
    )
    weather_language: str = Field(
        default="en",
        description="Language hint for geocoding results",
    )

    # App
    app_name: str = Field(
        default="chat-relay",
        description="Application name",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum log level",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8004,
        ge=1,
        le=65535,
        description="Server port",
    )
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins",
    )

    # JWT Auth
    jwt_secret_key: SecretStr = Field(
        description="JWT secret key used to validate access tokens",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )

    # Chat
    chat_history_limit: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Number of persisted messages replayed to the model",
    )
    max_message_length: int = Field(
        default=1000,
        ge=1,
        le=4000,
        description="Maximum characters per message",
    )
    send_message_rate_limit: str = Field(
        default="30/minute",
        description="Send message endpoint rate limit",
    )

    # Queue
    queue_name: str = Field(
        default="default",
        description="Job queue name",
    )
    worker_id: str = Field(
        default_factory=socket.gethostname,
        description="Stable worker identity; unfinished jobs are recovered by it",
    )
    job_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per job before terminal failure",
    )
    job_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Wall-clock budget for a single job attempt",
    )
    job_retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Linear backoff between attempts",
    )
    worker_poll_timeout_seconds: int = Field(
        default=5,
        ge=1,
        description="Blocking pop timeout for the worker loop",
    )
    worker_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Jobs processed in parallel per worker process",
    )
    chat_lock_timeout_seconds: float = Field(
        default=420.0,
        gt=0,
        description="Expiry of the per-chat processing lock",
    )
    job_status_ttl_seconds: int = Field(
        default=86400,
        ge=60,
        description="How long job status records are kept",
    )

    # Database
    database_url: SecretStr = Field(
        default=SecretStr("sqlite+aiosqlite:///./chat_relay.db"),
        description="Async database URL (mysql+aiomysql://..., sqlite+aiosqlite://...)",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # --- Domain properties ---

    @cached_property
    def llm(self) -> LLMConfig:
        """LLM provider configuration."""
        return LLMConfig(
            provider=self.llm_provider,
            openai_api_key=self.openai_api_key,
            openai_model=self.openai_model,
            anthropic_api_key=self.anthropic_api_key,
            anthropic_model=self.anthropic_model,
            max_tokens=self.llm_max_tokens,
            temperature=self.llm_temperature,
            timeout_seconds=self.llm_timeout_seconds,
            response_language=self.llm_response_language,
        )

    @cached_property
    def weather(self) -> WeatherConfig:
        """Weather provider configuration."""
        return WeatherConfig(
            geocoding_url=self.weather_geocoding_url,
            forecast_url=self.weather_forecast_url,
            timeout_seconds=self.weather_timeout_seconds,
            language=self.weather_language,
        )

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            env=self.app_env,
            debug=self.debug,
            log_level=self.log_level,
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
            cors_origins=self.cors_origins,
        )

    @cached_property
    def auth(self) -> AuthConfig:
        """JWT validation configuration."""
        return AuthConfig(
            secret_key=self.jwt_secret_key,
            algorithm=self.jwt_algorithm,
        )

    @cached_property
    def chat(self) -> ChatConfig:
        """Chat history and message limits."""
        return ChatConfig(
            history_limit=self.chat_history_limit,
            max_message_length=self.max_message_length,
            send_rate_limit=self.send_message_rate_limit,
        )

    @cached_property
    def queue(self) -> QueueConfig:
        """Job queue and worker configuration."""
        return QueueConfig(
            name=self.queue_name,
            worker_id=self.worker_id,
            max_attempts=self.job_max_attempts,
            job_timeout_seconds=self.job_timeout_seconds,
            retry_backoff_seconds=self.job_retry_backoff_seconds,
            poll_timeout_seconds=self.worker_poll_timeout_seconds,
            concurrency=self.worker_concurrency,
            chat_lock_timeout_seconds=self.chat_lock_timeout_seconds,
            status_ttl_seconds=self.job_status_ttl_seconds,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(url=self.database_url)

    @cached_property
    def redis(self) -> RedisConfig:
        """Redis connection configuration."""
        return RedisConfig(url=self.redis_url)

    # --- Convenience properties (delegate to domain configs) ---

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.is_development


# Global settings instance
settings = Settings()
