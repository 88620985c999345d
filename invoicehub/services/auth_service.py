"""
Accounts and tokens.

Passwords are bcrypt hashes (passlib). Tokens are python-jose JWTs carrying
a "type" claim so a refresh token can never pass as an access token. HS*
algorithms sign with JWT_SECRET_KEY, RS*/ES* with the PEM files named in
settings.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from invoicehub.config import settings
from invoicehub.errors import AuthenticationError, ConflictError
from invoicehub.models.user import User

logger = structlog.get_logger()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


@lru_cache(maxsize=2)
def _read_pem(path: str) -> str:
    with open(path, "r") as fh:
        return fh.read()


def _key(private: bool) -> str:
    if not settings.JWT_ALGORITHM.startswith(("RS", "ES")):
        return settings.JWT_SECRET_KEY
    return _read_pem(settings.JWT_PRIVATE_KEY_PATH if private else settings.JWT_PUBLIC_KEY_PATH)


def _encode(subject: str, token_type: str, lifetime: timedelta, **claims) -> str:
    issued = datetime.now(timezone.utc)
    claims.update(sub=str(subject), type=token_type, iat=issued, exp=issued + lifetime)
    return jwt.encode(claims, _key(private=True), algorithm=settings.JWT_ALGORITHM)


def _decode(token: str, token_type: str) -> dict:
    claims = jwt.decode(token, _key(private=False), algorithms=[settings.JWT_ALGORITHM])
    if claims.get("type") != token_type:
        raise JWTError(f"Expected a {token_type} token")
    return claims


def create_access_token(user_id: str, role: str, email: str) -> str:
    return _encode(
        user_id,
        ACCESS,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        role=role,
        email=email,
    )


def create_refresh_token(user_id: str) -> str:
    return _encode(user_id, REFRESH, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))


def verify_access_token(token: str) -> dict:
    """Claims of a valid access token. Raises JWTError otherwise."""
    return _decode(token, ACCESS)


def verify_refresh_token(token: str) -> dict:
    return _decode(token, REFRESH)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


def issue_tokens(user: User) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(str(user.id), user.role, user.email),
        refresh_token=create_refresh_token(str(user.id)),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


def _active_users():
    return select(User).where(
        User.is_active == True,  # noqa: E712
        User.deleted_at == None,  # noqa: E711
    )


async def register_user(
    session: AsyncSession,
    email: str,
    password: str,
    name: str,
    company_name=None,
) -> User:
    taken = await session.execute(select(User.id).where(User.email == email))
    if taken.scalar_one_or_none() is not None:
        raise ConflictError(f"Email '{email}' is already registered", code="USER_EMAIL_EXISTS")

    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name,
        company_name=company_name,
        role="user",
        is_active=True,
    )
    session.add(user)
    await session.flush()
    logger.info("user_registered", user_id=str(user.id))
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> User:
    """The active user owning these credentials; stamps last_login_at."""
    user = (await session.execute(_active_users().where(User.email == email))).scalar_one_or_none()
    if user is None or not user.password_hash or not verify_password(password, user.password_hash):
        logger.info("login_failed", email=email)
        raise AuthenticationError("Invalid email or password")

    # column is TIMESTAMP WITHOUT TIME ZONE
    user.last_login_at = datetime.utcnow()
    await session.flush()
    logger.info("user_logged_in", user_id=str(user.id), role=user.role)
    return user


async def user_from_refresh_token(session: AsyncSession, token: str) -> User:
    try:
        subject = verify_refresh_token(token)["sub"]
    except (JWTError, KeyError):
        raise AuthenticationError("Invalid or expired refresh token", code="AUTH_REFRESH_INVALID")

    user = (await session.execute(_active_users().where(User.id == subject))).scalar_one_or_none()
    if user is None:
        raise AuthenticationError(
            "User no longer exists or is deactivated", code="AUTH_USER_NOT_FOUND"
        )
    return user


async def change_password(session: AsyncSession, user: User, current: str, new: str) -> None:
    if not user.password_hash or not verify_password(current, user.password_hash):
        raise AuthenticationError(
            "Incorrect current password", code="AUTH_WRONG_PASSWORD", status_code=400
        )
    user.password_hash = hash_password(new)
    await session.flush()
    logger.info("password_changed", user_id=str(user.id))
