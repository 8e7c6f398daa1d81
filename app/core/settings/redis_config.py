"""Redis connection configuration."""

from pydantic import BaseModel


class RedisConfig(BaseModel, frozen=True):
    """Redis connection settings shared by queue, locks and pub/sub."""

    url: str
    socket_timeout_seconds: float | None = None
