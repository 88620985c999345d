import os
import uuid

import pytest
from httpx import ASGITransport, AsyncClient

if not os.getenv("TEST_DATABASE_URL"):
    pytest.skip("TEST_DATABASE_URL not set", allow_module_level=True)

from invoicehub.database import Base, engine  # noqa: E402
from invoicehub.main import app  # noqa: E402


@pytest.fixture
async def client():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    # Pooled connections are bound to this test's event loop
    await engine.dispose()


@pytest.fixture
async def auth(client):
    """Register a fresh user and return their auth headers."""
    email = f"user-{uuid.uuid4().hex[:10]}@example.com"
    res = await client.post(
        "/auth/register",
        json={"email": email, "password": "Sup3rSecret!", "name": "Test User"},
    )
    assert res.status_code == 201, res.text
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.fixture
async def client_id(client, auth):
    res = await client.post(
        "/api/v1/clients",
        json={"name": "Acme", "email": "billing@acme.example.com"},
        headers=auth,
    )
    assert res.status_code == 201, res.text
    return res.json()["id"]
