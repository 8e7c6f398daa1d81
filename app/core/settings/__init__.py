"""Domain-specific configuration models."""

from app.core.settings.app_config import AppConfig
from app.core.settings.auth_config import AuthConfig
from app.core.settings.chat_config import ChatConfig
from app.core.settings.database_config import DatabaseConfig
from app.core.settings.llm_config import LLMConfig
from app.core.settings.queue_config import QueueConfig
from app.core.settings.redis_config import RedisConfig
from app.core.settings.server_config import ServerConfig
from app.core.settings.weather_config import WeatherConfig

__all__ = [
    "AppConfig",
    "AuthConfig",
    "ChatConfig",
    "DatabaseConfig",
    "LLMConfig",
    "QueueConfig",
    "RedisConfig",
    "ServerConfig",
    "WeatherConfig",
]
