from __future__ import annotations
# invoicehub/services/cache.py
import httpx
from invoicehub.config import settings

# Module-level singleton, one connection pool for every Redis call
_http = httpx.AsyncClient(
    limits=httpx.Limits(max_connections=20, max_keepalive_connections=10, keepalive_expiry=30)
)


class UpstashClient:
    """Minimal Upstash Redis REST client used for idempotency keys and health checks."""

    def __init__(self):
        self.url = settings.UPSTASH_REDIS_REST_URL
        self.headers = {"Authorization": f"Bearer {settings.UPSTASH_REDIS_REST_TOKEN}"}

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def _command(self, *args) -> object:
        # POST the command as a JSON array so values never end up in the URL path
        r = await _http.post(self.url, headers=self.headers, json=[str(a) for a in args])
        r.raise_for_status()
        return r.json().get("result")

    async def get(self, key: str) -> str | None:
        return await self._command("GET", key)

    async def set(self, key: str, value: str, ex: int = 300):
        await self._command("SET", key, value, "EX", ex)

    async def delete(self, key: str):
        await self._command("DEL", key)

    async def setnx(self, key: str, value: str, ex: int = 300) -> bool:
        """Set key only if it does not exist. Returns True if the key was set."""
        return await self._command("SET", key, value, "NX", "EX", ex) == "OK"

    async def ping(self) -> bool:
        return await self._command("PING") == "PONG"


cache = UpstashClient()
