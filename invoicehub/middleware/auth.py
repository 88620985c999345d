from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
import structlog

from invoicehub.errors import AuthenticationError
from invoicehub.services.auth_service import verify_access_token

logger = structlog.get_logger()

bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> dict:
    """Claims of the bearer token as {"user_id", "role", "email"}."""
    if credentials is None:
        raise AuthenticationError("Not authenticated", code="AUTH_TOKEN_MISSING")
    try:
        claims = verify_access_token(credentials.credentials)
        user = {"user_id": claims["sub"], "role": claims["role"], "email": claims["email"]}
    except (JWTError, KeyError) as exc:
        logger.warning("auth_token_invalid", error=str(exc))
        raise AuthenticationError("Invalid or expired token", code="AUTH_TOKEN_INVALID")
    structlog.contextvars.bind_contextvars(user_id=user["user_id"])
    return user
