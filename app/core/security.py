"""Access token validation.

Tokens are issued by the external identity service; this module only
verifies them and extracts the principal.
"""

from typing import Any

import jwt
from pydantic import BaseModel, ConfigDict

from app.core.config import settings
from app.core.exceptions import InvalidTokenError, TokenExpiredError


class TokenPayload(BaseModel):
    """Claims carried by a validated access token."""

    model_config = ConfigDict(frozen=True)

    sub: str
    email: str | None = None
    role: str = "user"
    type: str
    exp: int

    @property
    def user_id(self) -> int:
        """Numeric principal id."""
        return int(self.sub)


def decode_access_token(token: str) -> TokenPayload:
    """Decode and validate an access token."""
    secret = settings.auth.secret_key.get_secret_value()
    try:
        payload: dict[str, Any] = jwt.decode(
            token, secret, algorithms=[settings.auth.algorithm]
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError from e
    except jwt.InvalidTokenError as e:
        raise InvalidTokenError from e

    if payload.get("type") != "access" or not str(payload.get("sub", "")).isdigit():
        raise InvalidTokenError
    return TokenPayload.model_validate(payload)
