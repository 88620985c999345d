"""Unit tests for invoicehub/services/auth_service.py (HS256 tokens, bcrypt hashes)."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from jose import JWTError

from invoicehub.errors import AuthenticationError, ConflictError
from invoicehub.services.auth_service import (
    authenticate,
    change_password,
    issue_tokens,
    register_user,
    user_from_refresh_token,
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)


def test_password_hash_round_trip():
    hashed = hash_password("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed) is True
    assert verify_password("wrong", hashed) is False


def test_access_token_claims():
    token = create_access_token(user_id="u-1", role="admin", email="a@example.com")
    claims = verify_access_token(token)
    assert claims["sub"] == "u-1"
    assert claims["role"] == "admin"
    assert claims["email"] == "a@example.com"
    assert claims["type"] == "access"


def test_refresh_token_not_accepted_as_access():
    refresh = create_refresh_token("u-1")
    assert verify_refresh_token(refresh)["sub"] == "u-1"
    with pytest.raises(JWTError):
        verify_access_token(refresh)


def test_access_token_not_accepted_as_refresh():
    access = create_access_token(user_id="u-1", role="user", email="a@example.com")
    with pytest.raises(JWTError):
        verify_refresh_token(access)


def test_tampered_token_rejected():
    token = create_access_token(user_id="u-1", role="user", email="a@example.com")
    forged = create_access_token(user_id="u-1", role="admin", email="a@example.com")
    header, _, signature = token.split(".")
    with pytest.raises(JWTError):
        verify_access_token(".".join([header, forged.split(".")[1], signature]))


# ---------------------------------------------------------------------------
# account operations (mocked session)
# ---------------------------------------------------------------------------


def _session(found=None):
    session = MagicMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = found
    session.execute = AsyncMock(return_value=result)
    session.flush = AsyncMock()
    return session


def _user(password="Sup3rSecret!"):
    return SimpleNamespace(
        id=uuid.uuid4(),
        email="dana@example.com",
        role="user",
        password_hash=hash_password(password),
        last_login_at=None,
    )


async def test_register_rejects_taken_email():
    with pytest.raises(ConflictError) as exc:
        await register_user(_session(found=uuid.uuid4()), "dana@example.com", "x", "Dana")
    assert exc.value.code == "USER_EMAIL_EXISTS"
    assert exc.value.status_code == 409


async def test_register_hashes_password():
    session = _session()
    user = await register_user(session, "dana@example.com", "Sup3rSecret!", "Dana", "Studio")
    session.add.assert_called_once_with(user)
    assert user.role == "user"
    assert verify_password("Sup3rSecret!", user.password_hash)


async def test_authenticate_success_stamps_login():
    user = _user()
    session = _session(found=user)
    assert await authenticate(session, user.email, "Sup3rSecret!") is user
    assert user.last_login_at is not None
    session.flush.assert_awaited_once()


async def test_authenticate_wrong_password():
    with pytest.raises(AuthenticationError) as exc:
        await authenticate(_session(found=_user()), "dana@example.com", "nope")
    assert exc.value.status_code == 401
    assert exc.value.message == "Invalid email or password"


async def test_authenticate_unknown_user():
    with pytest.raises(AuthenticationError):
        await authenticate(_session(found=None), "ghost@example.com", "whatever")


async def test_refresh_with_access_token_rejected():
    access = create_access_token(user_id=str(uuid.uuid4()), role="user", email="a@example.com")
    with pytest.raises(AuthenticationError) as exc:
        await user_from_refresh_token(_session(found=_user()), access)
    assert exc.value.code == "AUTH_REFRESH_INVALID"


async def test_refresh_for_deactivated_user():
    token = create_refresh_token(str(uuid.uuid4()))
    with pytest.raises(AuthenticationError) as exc:
        await user_from_refresh_token(_session(found=None), token)
    assert exc.value.code == "AUTH_USER_NOT_FOUND"


async def test_change_password_requires_current():
    user = _user()
    with pytest.raises(AuthenticationError) as exc:
        await change_password(_session(), user, "wrong", "N3wSecret!")
    assert exc.value.status_code == 400

    await change_password(_session(), user, "Sup3rSecret!", "N3wSecret!")
    assert verify_password("N3wSecret!", user.password_hash)


def test_issue_tokens_pair():
    user = _user()
    pair = issue_tokens(user)
    assert verify_access_token(pair.access_token)["sub"] == str(user.id)
    assert verify_refresh_token(pair.refresh_token)["sub"] == str(user.id)
    assert pair.expires_in > 0
