import os
import uuid

import pytest

# Fixed HS256 secret so tokens minted in tests verify without key files
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

# Integration tests run against TEST_DATABASE_URL; settings are read at import
if os.getenv("TEST_DATABASE_URL"):
    os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]
    os.environ.setdefault("DEBUG", "true")

from invoicehub.services.auth_service import create_access_token  # noqa: E402

TEST_USER_ID = "a0000000-0000-0000-0000-000000000002"


@pytest.fixture
def user_id():
    return uuid.UUID(TEST_USER_ID)


@pytest.fixture
def user_token():
    return create_access_token(
        user_id=TEST_USER_ID,
        role="user",
        email="demo@invoicehub.example.com",
    )


@pytest.fixture
def admin_token():
    return create_access_token(
        user_id="a0000000-0000-0000-0000-000000000001",
        role="admin",
        email="admin@invoicehub.example.com",
    )


@pytest.fixture
def auth_headers(user_token):
    return {"Authorization": f"Bearer {user_token}"}
