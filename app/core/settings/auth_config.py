"""JWT validation configuration."""

from pydantic import BaseModel, SecretStr


class AuthConfig(BaseModel, frozen=True):
    """Settings used to validate externally issued access tokens."""

    secret_key: SecretStr
    algorithm: str
