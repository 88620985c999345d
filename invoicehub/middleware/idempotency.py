"""
Idempotency-Key handling for POSTs under /api/v1/.

A client retrying a payment (or invoice creation) with the same
Idempotency-Key gets the first response back instead of a second payment.
Responses below 500 are kept in Redis for 24h; while the first request is
still running a duplicate gets 409 CONCURRENT_REQUEST. Keys are scoped per
bearer token and path. Without Redis configured the middleware is inert,
and Redis errors degrade to normal processing.
"""

import hashlib
import json
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware
import httpx
import structlog

from invoicehub.services.cache import cache

logger = structlog.get_logger()

REPLAY_TTL = 86_400
IN_FLIGHT_TTL = 30
PATH_PREFIX = "/api/v1/"


class IdempotencyStore:
    def __init__(self, request: Request, key: str):
        auth = request.headers.get("Authorization", "")
        caller = hashlib.sha256(auth.encode()).hexdigest()[:32] if auth else "anonymous"
        base = f"{caller}:{request.url.path}:{key}"
        self.response_key = f"idempotency:{base}"
        self.lock_key = f"idempotency_lock:{base}"

    async def replay(self) -> Optional[JSONResponse]:
        stored = await cache.get(self.response_key)
        if not stored:
            return None
        saved = json.loads(stored)
        return JSONResponse(
            status_code=saved["status_code"],
            content=saved["body"],
            headers={"X-Idempotent-Replayed": "true"},
        )

    async def claim(self) -> bool:
        return await cache.setnx(self.lock_key, "1", ex=IN_FLIGHT_TTL)

    async def remember(self, status_code: int, body: bytes) -> None:
        if status_code < 500:
            try:
                content = json.loads(body.decode("utf-8"))
            except ValueError:
                content = {"raw": body.decode("utf-8", errors="replace")}
            await cache.set(
                self.response_key,
                json.dumps({"status_code": status_code, "body": content}),
                REPLAY_TTL,
            )
        await cache.delete(self.lock_key)


class IdempotencyMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        key = request.headers.get("Idempotency-Key")
        if (
            request.method != "POST"
            or not request.url.path.startswith(PATH_PREFIX)
            or not key
            or not cache.configured
        ):
            return await call_next(request)

        store = IdempotencyStore(request, key)
        try:
            replayed = await store.replay()
            if replayed is not None:
                logger.info("idempotent_replay", key=key, path=request.url.path)
                return replayed
            if not await store.claim():
                return JSONResponse(
                    status_code=409,
                    content={
                        "error": {
                            "code": "CONCURRENT_REQUEST",
                            "message": "A request with this Idempotency-Key is already being processed",
                        }
                    },
                )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("idempotency_lookup_failed", error=str(exc))
            return await call_next(request)

        response = await call_next(request)
        body = b"".join([chunk async for chunk in response.body_iterator])

        try:
            await store.remember(response.status_code, body)
        except httpx.HTTPError as exc:
            logger.warning("idempotency_store_failed", error=str(exc))

        return Response(
            content=body,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type,
        )
